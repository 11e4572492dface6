"""Local package manager for declarative agent definitions."""

__version__ = "0.3.0"
