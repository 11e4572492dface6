"""InstalledIndex — the persisted record of what is installed in one scope.

Stored as a JSON array in ``<scope-root>/index.json``. ``save()`` writes a
temp file next to the index and renames it over the old one, so an
interrupted write never leaves a truncated index behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from subagents.catalog.models import InstalledRecord, Scope
from subagents.errors import AgentIOError, IndexCorruptError
from subagents.logging import get_logger

logger = get_logger("install.index")

INDEX_FILE = "index.json"
AGENTS_DIR = "agents"
AGENT_EXT = ".md"


class InstalledIndex:
    """Installed records for a single scope root."""

    def __init__(self, root: str | Path, scope: Scope):
        self.root = Path(root)
        self.scope = Scope.parse(scope)
        self.index_path = self.root / INDEX_FILE
        self.agents_dir = self.root / AGENTS_DIR
        self._records: dict[str, InstalledRecord] = {}

    def load(self) -> InstalledIndex:
        """Read the index from disk. A missing file is an empty index.

        Raises:
            IndexCorruptError: If the file is not a JSON array of records.
        """
        self._records = {}
        if not self.index_path.exists():
            return self

        try:
            with open(self.index_path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise IndexCorruptError(f"Cannot decode {self.index_path}: {e}") from e
        except OSError as e:
            raise AgentIOError(f"Cannot read {self.index_path}: {e}") from e

        if not isinstance(data, list):
            raise IndexCorruptError(f"{self.index_path} must contain a JSON array")

        for i, item in enumerate(data):
            try:
                record = InstalledRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                raise IndexCorruptError(
                    f"Malformed record #{i + 1} in {self.index_path}: {e}"
                ) from e
            if record.scope is not self.scope:
                logger.warning(
                    "Record '%s' in %s has scope '%s'; treating it as '%s'",
                    record.name,
                    self.index_path,
                    record.scope.value,
                    self.scope.value,
                )
                record.scope = self.scope
            self._records[record.name] = record
        return self

    def save(self) -> None:
        """Atomically write the index: temp file, fsync, rename."""
        payload = [r.to_dict() for r in self._records.values()]
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".index-", suffix=".tmp", dir=self.root
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(payload, f, indent=2)
                    f.write("\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.index_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise AgentIOError(f"Cannot write {self.index_path}: {e}") from e

    def upsert(self, record: InstalledRecord) -> None:
        record.scope = self.scope
        self._records[record.name] = record

    def remove(self, name: str, scope: Scope | str | None = None) -> InstalledRecord | None:
        if scope is not None and Scope.parse(scope) is not self.scope:
            return None
        return self._records.pop(name, None)

    def find(self, name: str, scope: Scope | str | None = None) -> InstalledRecord | None:
        if scope is not None and Scope.parse(scope) is not self.scope:
            return None
        return self._records.get(name)

    def all(self, scope: Scope | str | None = None) -> list[InstalledRecord]:
        if scope is not None and Scope.parse(scope) is not self.scope:
            return []
        return list(self._records.values())

    def snapshot(self) -> dict[str, dict]:
        return {name: r.to_dict() for name, r in self._records.items()}

    def restore(self, snapshot: dict[str, dict]) -> None:
        self._records = {
            name: InstalledRecord.from_dict(data) for name, data in snapshot.items()
        }

    def agent_path(self, name: str, category: str) -> Path:
        return self.agents_dir / category / f"{name}{AGENT_EXT}"

    def path_for(self, record: InstalledRecord) -> Path:
        return self.agent_path(record.name, record.category)

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)
