"""Serena code-indexing integration.

Shells out to the ``claude`` and ``uvx`` executables. Any non-zero exit,
timeout or missing executable is returned as a failed IntegrationResult;
nothing here raises into the caller for a tool failure.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from subagents.catalog.models import Scope
from subagents.config import Settings
from subagents.errors import IntegrationError
from subagents.logging import get_logger

logger = get_logger("integrations.serena")

SERENA_SOURCE = "git+https://github.com/oraios/serena"
PROJECT_CONFIG = "config.json"
DEFAULT_TIMEOUT = 600


@dataclass
class IntegrationStatus:
    name: str
    initialized: bool = False
    enabled: bool = False
    indexed_at: str | None = None


@dataclass
class IntegrationResult:
    ok: bool
    error: str = ""
    commands: list[str] = field(default_factory=list)


class SerenaIntegration:
    """Registers Serena as an MCP server and indexes the project with it."""

    name = "serena"

    def __init__(self, settings: Settings, runner=subprocess.run, timeout: int = DEFAULT_TIMEOUT):
        self.project_dir = Path(settings.project_dir)
        self.config_path = settings.scope_root(Scope.LOCAL) / PROJECT_CONFIG
        self._run = runner
        self.timeout = timeout

    def status(self) -> IntegrationStatus:
        entry = self._read_config().get("integrations", {}).get(self.name) or {}
        return IntegrationStatus(
            name=self.name,
            initialized=bool(entry.get("initialized", False)),
            enabled=bool(entry.get("enabled", False)),
            indexed_at=entry.get("indexedAt"),
        )

    def install(self) -> IntegrationResult:
        commands = [
            [
                "claude", "mcp", "add", self.name, "--",
                "uvx", "--from", SERENA_SOURCE, "serena-mcp-server",
                "--context", "ide-assistant", "--project", str(self.project_dir),
            ],
            self._index_command(),
        ]
        return self._run_all(commands)

    def refresh(self) -> IntegrationResult:
        return self._run_all([self._index_command()])

    def _index_command(self) -> list[str]:
        return ["uvx", "--from", SERENA_SOURCE, "index-project"]

    def _run_all(self, commands: list[list[str]]) -> IntegrationResult:
        result = IntegrationResult(ok=True)
        try:
            for command in commands:
                result.commands.append(" ".join(command))
                self._execute(command)
            self._record_indexed()
        except IntegrationError as e:
            logger.warning("%s integration failed: %s", self.name, e)
            result.ok = False
            result.error = str(e)
        return result

    def _execute(self, command: list[str]) -> None:
        logger.debug("Running: %s", " ".join(command))
        try:
            proc = self._run(
                command,
                cwd=self.project_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise IntegrationError(f"Executable not found: {command[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise IntegrationError(f"'{command[0]}' timed out after {self.timeout}s") from e
        except OSError as e:
            raise IntegrationError(f"Could not run '{command[0]}': {e}") from e

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip()
            raise IntegrationError(
                f"'{' '.join(command[:3])}' exited with {proc.returncode}"
                + (f": {detail}" if detail else "")
            )

    def _record_indexed(self) -> None:
        config = self._read_config()
        integrations = config.setdefault("integrations", {})
        integrations[self.name] = {
            "name": self.name,
            "enabled": True,
            "initialized": True,
            "indexedAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w") as f:
                json.dump(config, f, indent=2)
        except OSError as e:
            raise IntegrationError(f"Cannot write {self.config_path}: {e}") from e

    def _read_config(self) -> dict:
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable %s: %s", self.config_path, e)
            return {}
        return data if isinstance(data, dict) else {}
