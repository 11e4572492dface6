"""Settings — the explicit configuration value passed into the core.

Built once per command invocation and handed to Catalog, InstalledIndex,
InstallationEngine and the integration clients. Nothing in the core looks
configuration up on its own.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path

from subagents.catalog.models import Scope
from subagents.errors import ConfigError

BUNDLED_CATALOG_DIR = Path(__file__).resolve().parent / "agents"
SCOPE_DIRNAME = ".claude"

ENV_CATALOG_DIR = "SUB_AGENTS_CATALOG_DIR"
ENV_HOME = "SUB_AGENTS_HOME"

# Keys a user may persist with `sub-agents config set`.
USER_KEYS = {
    "backup_before_install": True,
    "prefer_global": False,
    "color_output": True,
    "max_backups": 5,
    "search_limit": 20,
}


@dataclass(frozen=True)
class Settings:
    project_dir: Path
    home_dir: Path
    catalog_dir: Path = BUNDLED_CATALOG_DIR
    backup_before_install: bool = True
    prefer_global: bool = False
    color_output: bool = True
    max_backups: int = 5
    search_limit: int = 20

    @classmethod
    def load(
        cls,
        project_dir: str | Path | None = None,
        home_dir: str | Path | None = None,
    ) -> Settings:
        """Load settings with defaults → user config file → environment layering."""
        env_home = os.environ.get(ENV_HOME)
        home = Path(home_dir) if home_dir else Path(env_home) if env_home else Path.home()
        project = Path(project_dir) if project_dir else Path.cwd()

        settings = cls(project_dir=project, home_dir=home)
        stored = ConfigStore(config_path(home)).all()
        settings = replace(settings, **stored)

        env_catalog = os.environ.get(ENV_CATALOG_DIR)
        if env_catalog:
            settings = replace(settings, catalog_dir=Path(env_catalog))
        return settings

    def scope_root(self, scope: Scope) -> Path:
        base = self.home_dir if scope is Scope.GLOBAL else self.project_dir
        return base / SCOPE_DIRNAME

    def default_scope(self, global_flag: bool = False) -> Scope:
        return Scope.GLOBAL if global_flag or self.prefer_global else Scope.LOCAL

    def is_project_initialized(self) -> bool:
        return self.scope_root(Scope.LOCAL).is_dir()


def config_path(home_dir: Path) -> Path:
    return home_dir / ".config" / "sub-agents" / "config.json"


class ConfigStore:
    """JSON-file store for the user-editable subset of Settings."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def all(self) -> dict:
        """Return stored values merged over defaults. Unknown keys are dropped.

        Raises:
            ConfigError: If a stored value cannot be coerced to its key's type.
        """
        values = dict(USER_KEYS)
        for key, value in self._read().items():
            if key in USER_KEYS:
                values[key] = _coerce(key, value)
        return values

    def get(self, key: str):
        _check_key(key)
        return self.all()[key]

    def set(self, key: str, value) -> object:
        _check_key(key)
        coerced = _coerce(key, value)
        data = self._read()
        data[key] = coerced
        self._write(data)
        return coerced

    def reset(self) -> None:
        self._write(dict(USER_KEYS))

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.path} must contain a JSON object")
        return data

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)


def _check_key(key: str) -> None:
    if key not in USER_KEYS:
        raise ConfigError(
            f"Unknown configuration key '{key}'. Available: {', '.join(sorted(USER_KEYS))}"
        )


def _coerce(key: str, value):
    default = USER_KEYS[key]
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("true", "yes", "1", "on"):
            return True
        if text in ("false", "no", "0", "off"):
            return False
        raise ConfigError(f"'{key}' expects true/false, got {value!r}")
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"'{key}' expects an integer, got {value!r}") from None
    return value
