"""Tests for index/disk drift detection."""

import tempfile
from pathlib import Path

from subagents.catalog.catalog import Catalog
from subagents.catalog.models import AgentDescriptor, InstalledRecord, Scope
from subagents.install.drift import check_drift
from subagents.install.index import InstalledIndex


def _install(index: InstalledIndex, name: str, version: str = "1.0.0") -> Path:
    index.upsert(InstalledRecord(name=name, version=version, scope=index.scope, category="generic"))
    path = index.agent_path(name, "generic")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\nname: {name}\n---\n")
    return path


def test_clean_scope():
    with tempfile.TemporaryDirectory() as tmpdir:
        index = InstalledIndex(tmpdir, Scope.LOCAL)
        _install(index, "alpha")
        report = check_drift(index)
        assert not report.has_drift
        assert report.summary().startswith("[OK] local")


def test_missing_and_untracked_files():
    with tempfile.TemporaryDirectory() as tmpdir:
        index = InstalledIndex(tmpdir, Scope.LOCAL)
        _install(index, "alpha").unlink()
        stray = index.agent_path("stray", "backend")
        stray.parent.mkdir(parents=True)
        stray.write_text("hand-copied")

        report = check_drift(index)
        assert report.has_drift
        assert report.missing_files == ["alpha"]
        assert report.untracked_files == [stray]
        assert "1 missing, 1 untracked" in report.summary()


def test_outdated_is_not_drift():
    with tempfile.TemporaryDirectory() as tmpdir:
        index = InstalledIndex(tmpdir, Scope.GLOBAL)
        _install(index, "alpha", "1.0.0")
        catalog = Catalog(
            [
                AgentDescriptor(
                    name="alpha",
                    category="generic",
                    description="a",
                    version="1.2.0",
                    author="Test",
                    license="MIT",
                )
            ]
        )
        report = check_drift(index, catalog)
        assert report.outdated == [("alpha", "1.0.0", "1.2.0")]
        assert not report.has_drift
