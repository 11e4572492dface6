"""Catalog — the bundled, read-only set of agent definitions.

Covers parsing definition documents, validating their headers, grouping
them into categories, and ranked search over them.
"""
