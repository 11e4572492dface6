"""Error taxonomy for sub-agents.

Per-name operations catch these and report them as that name's outcome;
only the pre-flight errors (config, project init, index corruption) abort
a whole command invocation.
"""

from __future__ import annotations


class SubAgentsError(Exception):
    """Base exception for all sub-agents errors."""


# ── Definition errors ────────────────────────────────────────────────


class ParseError(SubAgentsError):
    """Document has no front matter or it is not a key/value mapping."""


class ValidationError(SubAgentsError):
    """Definition violates the schema or a semantic rule."""

    def __init__(self, name: str, errors: list[str]):
        self.name = name
        self.errors = list(errors)
        super().__init__(f"Agent '{name or '<unnamed>'}' is invalid: " + "; ".join(self.errors))


class InvalidVersionError(SubAgentsError, ValueError):
    """Version string is not MAJOR.MINOR.PATCH semver."""


# ── Resolution errors ────────────────────────────────────────────────


class NotFoundError(SubAgentsError):
    """Unknown agent, category, or installed record."""


class CyclicDependencyError(SubAgentsError):
    """Dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__("Dependency cycle detected: " + " -> ".join(self.cycle))


class ConflictError(SubAgentsError):
    """A declared mutual exclusion would be violated."""

    def __init__(self, name: str, other: str):
        self.name = name
        self.other = other
        super().__init__(f"Agent '{name}' conflicts with '{other}'")


class DependentInstalledError(SubAgentsError):
    """Uninstall blocked because installed agents depend on the target."""

    def __init__(self, name: str, dependents: list[str]):
        self.name = name
        self.dependents = sorted(dependents)
        super().__init__(
            f"Cannot uninstall '{name}': required by {', '.join(self.dependents)}"
        )


# ── Storage errors ───────────────────────────────────────────────────


class AgentIOError(SubAgentsError):
    """Filesystem failure while copying, removing, or writing the index."""


class IndexCorruptError(AgentIOError):
    """index.json exists but cannot be decoded as a record list."""


class IntegrationError(AgentIOError):
    """External integration tool exited abnormally."""


# ── Pre-flight errors ────────────────────────────────────────────────


class ConfigError(SubAgentsError):
    """Invalid or unknown configuration."""


class CatalogError(SubAgentsError):
    """The catalog directory is missing or unreadable."""


class ProjectNotInitializedError(SubAgentsError):
    """The project has no .claude directory yet."""
