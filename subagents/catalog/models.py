"""Data models for catalog entries, categories and installed records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path


class Scope(Enum):
    """Where an agent is installed."""

    LOCAL = "local"  # <project>/.claude
    GLOBAL = "global"  # <home>/.claude

    @classmethod
    def parse(cls, value: str | Scope) -> Scope:
        if isinstance(value, Scope):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown scope '{value}'. Must be 'local' or 'global'") from None


@dataclass(frozen=True)
class AgentDescriptor:
    """One installable agent definition: validated header plus body.

    Only built by the validator from a parsed document; never mutated.
    """

    name: str
    category: str
    description: str
    version: str
    author: str
    license: str
    tools: frozenset[str] = frozenset()
    tags: frozenset[str] = frozenset()
    keywords: frozenset[str] = frozenset()
    dependencies: frozenset[str] = frozenset()
    conflicts: frozenset[str] = frozenset()
    repository: str | None = None
    homepage: str | None = None
    body: str = ""
    source_path: Path | None = None

    def to_header(self) -> dict:
        """Return the header mapping this descriptor was built from."""
        header = {
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "version": self.version,
            "author": self.author,
            "license": self.license,
            "tools": sorted(self.tools),
            "tags": sorted(self.tags),
            "keywords": sorted(self.keywords),
            "dependencies": sorted(self.dependencies),
            "conflicts": sorted(self.conflicts),
        }
        if self.repository:
            header["repository"] = self.repository
        if self.homepage:
            header["homepage"] = self.homepage
        return header

    def to_dict(self) -> dict:
        data = self.to_header()
        data["content"] = self.body
        data["path"] = str(self.source_path) if self.source_path else None
        return data


@dataclass
class Category:
    """A group of catalog agents. Derived from the catalog, never persisted."""

    name: str
    description: str
    agents: list[str] = field(default_factory=list)


@dataclass
class InstalledRecord:
    """One installed agent in one scope."""

    name: str
    version: str
    scope: Scope
    category: str
    installed_at: str = ""  # ISO 8601

    def __post_init__(self):
        self.scope = Scope.parse(self.scope)
        if not self.installed_at:
            self.installed_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "scope": self.scope.value,
            "category": self.category,
            "installedAt": self.installed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> InstalledRecord:
        return cls(
            name=data["name"],
            version=data["version"],
            scope=data["scope"],
            category=data["category"],
            installed_at=data.get("installedAt", ""),
        )


@dataclass
class ValidationResult:
    """Outcome of validating one definition."""

    name: str = ""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    descriptor: AgentDescriptor | None = None

    @property
    def valid(self) -> bool:
        return not self.errors
