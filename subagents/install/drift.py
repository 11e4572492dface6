"""Drift detection — divergence between a scope's index and its files.

The engine keeps the two in step, but files can still be edited or deleted
by hand. A drift report lists what no longer lines up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from subagents.catalog.catalog import Catalog
from subagents.catalog.models import Scope
from subagents.install.index import AGENT_EXT, InstalledIndex
from subagents.install.versions import VersionResolver


@dataclass
class DriftReport:
    """Result of comparing one scope's index against its disk tree."""

    scope: Scope
    missing_files: list[str] = field(default_factory=list)  # indexed, file gone
    untracked_files: list[Path] = field(default_factory=list)  # file, no record
    outdated: list[tuple[str, str, str]] = field(default_factory=list)  # (name, installed, catalog)

    @property
    def has_drift(self) -> bool:
        return bool(self.missing_files or self.untracked_files)

    def summary(self) -> str:
        status = "DRIFT" if self.has_drift else "OK"
        return (
            f"[{status}] {self.scope.value}: {len(self.missing_files)} missing, "
            f"{len(self.untracked_files)} untracked, {len(self.outdated)} outdated"
        )


def check_drift(index: InstalledIndex, catalog: Catalog | None = None) -> DriftReport:
    report = DriftReport(scope=index.scope)

    tracked: set[Path] = set()
    for record in index.all():
        path = index.path_for(record)
        tracked.add(path.resolve())
        if not path.exists():
            report.missing_files.append(record.name)

        descriptor = catalog.get(record.name) if catalog else None
        if descriptor is None:
            continue
        try:
            if VersionResolver.has_update(record.version, descriptor.version):
                report.outdated.append((record.name, record.version, descriptor.version))
        except ValueError:
            continue

    if index.agents_dir.is_dir():
        for path in sorted(index.agents_dir.rglob(f"*{AGENT_EXT}")):
            if path.resolve() not in tracked:
                report.untracked_files.append(path)

    return report
