"""Backups of installed definitions taken before a forced overwrite."""

from __future__ import annotations

import tarfile
from datetime import datetime, timezone
from pathlib import Path

from subagents.errors import AgentIOError, NotFoundError
from subagents.logging import get_logger

logger = get_logger("install.backup")

BACKUP_DIR = "backups"
BACKUP_PREFIX = "backup-"
BACKUP_SUFFIX = ".tar.gz"


class BackupManager:
    """Writes gzip'd tar snapshots under ``<scope-root>/backups``."""

    def __init__(self, scope_root: str | Path, keep: int = 5):
        self.scope_root = Path(scope_root)
        self.backup_dir = self.scope_root / BACKUP_DIR
        self.keep = keep

    def create(self, paths: list[Path]) -> Path:
        """Archive ``paths`` (relative to the scope root) and prune old backups."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        backup_path = self.backup_dir / f"{BACKUP_PREFIX}{timestamp}{BACKUP_SUFFIX}"
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            with tarfile.open(backup_path, "w:gz") as tar:
                for path in paths:
                    path = Path(path)
                    tar.add(path, arcname=str(path.relative_to(self.scope_root)))
        except (OSError, tarfile.TarError) as e:
            backup_path.unlink(missing_ok=True)
            raise AgentIOError(f"Cannot create backup {backup_path}: {e}") from e

        logger.info("Backed up %d file(s) to %s", len(paths), backup_path)
        self._prune()
        return backup_path

    def list_backups(self) -> list[Path]:
        """Backups, newest first."""
        if not self.backup_dir.is_dir():
            return []
        return sorted(
            (
                p
                for p in self.backup_dir.iterdir()
                if p.name.startswith(BACKUP_PREFIX) and p.name.endswith(BACKUP_SUFFIX)
            ),
            key=lambda p: p.name,
            reverse=True,
        )

    def restore(self, backup: str | Path) -> list[Path]:
        """Extract a backup over the scope root. Returns the restored paths."""
        backup = Path(backup)
        if not backup.is_absolute():
            backup = self.backup_dir / backup
        if not backup.exists():
            raise NotFoundError(f"Backup not found: {backup}")

        restored = []
        try:
            with tarfile.open(backup, "r:gz") as tar:
                members = [m for m in tar.getmembers() if _is_safe_member(m)]
                tar.extractall(self.scope_root, members=members)
                restored = [self.scope_root / m.name for m in members if m.isfile()]
        except (OSError, tarfile.TarError) as e:
            raise AgentIOError(f"Cannot restore backup {backup}: {e}") from e
        return restored

    def _prune(self) -> None:
        for old in self.list_backups()[self.keep:]:
            try:
                old.unlink()
            except OSError as e:
                logger.warning("Could not remove old backup %s: %s", old, e)


def _is_safe_member(member: tarfile.TarInfo) -> bool:
    name = Path(member.name)
    return (
        (member.isfile() or member.isdir())
        and not name.is_absolute()
        and ".." not in name.parts
    )
