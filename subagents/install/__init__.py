"""Installing agents into a scope and keeping track of them.

The engine is the only writer of scope directories: every successful
operation ends with an atomic index save, and every failed one leaves the
files and the index as they were before it started.
"""
