"""Read-only set of agent definitions bundled with the tool.

Loaded once per invocation from a directory of ``<category>/<name>.md``
files. Definitions that fail to parse or validate are skipped and recorded
in ``rejected``; a second definition claiming an already-loaded name is
recorded in ``duplicates``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

from subagents.catalog.categories import describe_category
from subagents.catalog.models import AgentDescriptor, Category
from subagents.catalog.parser import parse_file
from subagents.catalog.validator import Validator
from subagents.errors import CatalogError, ParseError
from subagents.logging import get_logger

logger = get_logger("catalog")

SKIP_DIRS = {"commons"}


class Catalog:
    """Read-only lookup over AgentDescriptors."""

    def __init__(self, descriptors: Iterable[AgentDescriptor] = ()):
        self._agents: dict[str, AgentDescriptor] = {}
        self.rejected: dict[Path, list[str]] = {}
        self.duplicates: dict[str, list[Path]] = {}
        for descriptor in descriptors:
            self._add(descriptor)

    @classmethod
    def load(cls, catalog_dir: str | Path) -> Catalog:
        """Load every definition under ``catalog_dir``.

        Raises:
            CatalogError: If the directory does not exist or holds no definitions.
        """
        root = Path(catalog_dir)
        if not root.is_dir():
            raise CatalogError(f"Catalog directory not found: {root}")

        catalog = cls()
        validator = Validator()
        for path in sorted(root.rglob("*.md")):
            if SKIP_DIRS.intersection(path.relative_to(root).parts):
                continue
            try:
                document = parse_file(path)
            except ParseError as e:
                catalog._reject(path, [str(e)])
                continue
            result = validator.validate_document(document)
            if not result.valid:
                catalog._reject(path, result.errors)
                continue
            catalog._add(result.descriptor)

        if not catalog and not catalog.rejected:
            raise CatalogError(f"No agent definitions found in {root}")
        logger.debug("Loaded %d agent(s) from %s", len(catalog), root)
        return catalog

    def get(self, name: str) -> AgentDescriptor | None:
        return self._agents.get(name)

    def list(
        self,
        category: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> list[AgentDescriptor]:
        """Return agents sorted by name, filtered by category and any-of tags."""
        wanted_tags = set(tags or ())
        results = []
        for agent in self._agents.values():
            if category and agent.category != category:
                continue
            if wanted_tags and not (agent.tags & wanted_tags):
                continue
            results.append(agent)
        return sorted(results, key=lambda a: a.name)

    def by_category(self) -> dict[str, list[AgentDescriptor]]:
        grouped: dict[str, list[AgentDescriptor]] = {}
        for agent in self.list():
            grouped.setdefault(agent.category, []).append(agent)
        return dict(sorted(grouped.items()))

    def categories(self) -> list[Category]:
        return [
            Category(
                name=name,
                description=describe_category(name),
                agents=[a.name for a in agents],
            )
            for name, agents in self.by_category().items()
        ]

    def names(self) -> list[str]:
        return sorted(self._agents)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self) -> Iterator[AgentDescriptor]:
        return iter(self.list())

    def _add(self, descriptor: AgentDescriptor) -> None:
        if descriptor.name in self._agents:
            paths = self.duplicates.setdefault(descriptor.name, [])
            paths.append(descriptor.source_path)
            logger.warning(
                "Duplicate agent name '%s' in %s; keeping %s",
                descriptor.name,
                descriptor.source_path,
                self._agents[descriptor.name].source_path,
            )
            return
        self._agents[descriptor.name] = descriptor

    def _reject(self, path: Path, errors: list[str]) -> None:
        self.rejected[path] = errors
        logger.warning("Skipping invalid definition %s: %s", path, "; ".join(errors))
