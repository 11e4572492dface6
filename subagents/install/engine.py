"""InstallationEngine — install, update and uninstall agents in a scope.

Per (name, scope) an agent moves NotInstalled → Installing → Installed →
Uninstalling → NotInstalled, or Installed → Updating → Installed. Transient
states live only in this process; on disk an agent is either in the index
with its file present, or neither.

Every operation prepares everything it can before touching the disk
(validation, dependency closure, conflict checks), then writes files, then
saves the index as its last step. A failure after the first write undoes
the files written so far and restores the in-memory index.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml

from subagents.catalog.catalog import Catalog
from subagents.catalog.models import AgentDescriptor, InstalledRecord, Scope
from subagents.catalog.parser import parse_file
from subagents.catalog.validator import Validator
from subagents.config import Settings
from subagents.errors import (
    AgentIOError,
    ConflictError,
    CyclicDependencyError,
    DependentInstalledError,
    IndexCorruptError,
    NotFoundError,
    ParseError,
    SubAgentsError,
    ValidationError,
)
from subagents.install.backup import BackupManager
from subagents.install.index import InstalledIndex
from subagents.install.versions import VersionResolver
from subagents.logging import get_logger

logger = get_logger("install.engine")


class AgentState(Enum):
    NOT_INSTALLED = "not-installed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    UPDATING = "updating"
    UNINSTALLING = "uninstalling"


class OutcomeStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    UP_TO_DATE = "up-to-date"
    FAILED = "failed"


@dataclass
class Outcome:
    """What happened to one requested name."""

    name: str
    status: OutcomeStatus
    reason: str = ""
    version: str = ""
    previous_version: str = ""
    installed: list[str] = field(default_factory=list)  # install order, dependencies first
    backup: Path | None = None

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED


@dataclass
class BatchResult:
    """Per-name outcomes of one command, in request order."""

    operation: str
    outcomes: list[Outcome] = field(default_factory=list)

    def _with(self, status: OutcomeStatus) -> list[Outcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def succeeded(self) -> list[Outcome]:
        return self._with(OutcomeStatus.SUCCESS)

    @property
    def skipped(self) -> list[Outcome]:
        return self._with(OutcomeStatus.SKIPPED)

    @property
    def up_to_date(self) -> list[Outcome]:
        return self._with(OutcomeStatus.UP_TO_DATE)

    @property
    def failed(self) -> list[Outcome]:
        return self._with(OutcomeStatus.FAILED)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


@dataclass
class AgentStatus:
    """Catalog entry and installed records for one name across scopes."""

    name: str
    descriptor: AgentDescriptor | None
    records: dict[Scope, InstalledRecord] = field(default_factory=dict)

    @property
    def installed(self) -> bool:
        return bool(self.records)

    def update_available(self, scope: Scope) -> str | None:
        """Catalog version when it is newer than the one installed in ``scope``."""
        record = self.records.get(scope)
        if record is None or self.descriptor is None:
            return None
        try:
            if VersionResolver.has_update(record.version, self.descriptor.version):
                return self.descriptor.version
        except ValueError:
            return None
        return None


class _Journal:
    """Undo log for the files one operation touches."""

    def __init__(self):
        self.created: list[Path] = []
        self.replaced: list[tuple[Path, bytes]] = []

    def write(self, target: Path, data: bytes) -> None:
        if target.exists():
            self.replaced.append((target, target.read_bytes()))
        else:
            self.created.append(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def remove(self, target: Path) -> None:
        self.replaced.append((target, target.read_bytes()))
        target.unlink()

    def rollback(self) -> None:
        for path in reversed(self.created):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Rollback could not remove %s: %s", path, e)
        for path, data in reversed(self.replaced):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
            except OSError as e:
                logger.error("Rollback could not restore %s: %s", path, e)


class InstallationEngine:
    """Executes install/update/uninstall against the catalog and scope indexes."""

    def __init__(
        self,
        settings: Settings,
        catalog: Catalog,
        validator: Validator | None = None,
    ):
        self.settings = settings
        self.catalog = catalog
        self.validator = validator or Validator(catalog)
        self._indexes: dict[Scope, InstalledIndex] = {}
        self._transient: dict[tuple[str, Scope], AgentState] = {}

    # ── State ───────────────────────────────────────────────────────

    def index(self, scope: Scope) -> InstalledIndex:
        """The loaded index for ``scope`` (loaded on first use)."""
        scope = Scope.parse(scope)
        if scope not in self._indexes:
            self._indexes[scope] = InstalledIndex(
                self.settings.scope_root(scope), scope
            ).load()
        return self._indexes[scope]

    def state(self, name: str, scope: Scope) -> AgentState:
        scope = Scope.parse(scope)
        if (name, scope) in self._transient:
            return self._transient[(name, scope)]
        if self.index(scope).find(name):
            return AgentState.INSTALLED
        return AgentState.NOT_INSTALLED

    def status(self, name: str) -> AgentStatus:
        records = {}
        for scope in Scope:
            record = self.index(scope).find(name)
            if record is not None:
                records[scope] = record
        return AgentStatus(name=name, descriptor=self.catalog.get(name), records=records)

    def statuses(self) -> list[AgentStatus]:
        """Status for every catalog agent plus anything installed outside it."""
        names = set(self.catalog.names())
        for scope in Scope:
            names.update(r.name for r in self.index(scope).all())
        return [self.status(name) for name in sorted(names)]

    # ── Install ─────────────────────────────────────────────────────

    def install(
        self,
        name: str,
        scope: Scope = Scope.LOCAL,
        force: bool = False,
        skip_dependencies: bool = False,
        backup: bool | None = None,
    ) -> Outcome:
        """Install ``name`` and, unless skipped, its missing dependencies.

        Raises:
            NotFoundError, ValidationError, CyclicDependencyError,
            ConflictError, AgentIOError
        """
        scope = Scope.parse(scope)
        descriptor = self._catalog_descriptor(name)
        self._validate(descriptor)

        index = self.index(scope)
        existing = index.find(name)
        if existing is not None and not force:
            return Outcome(
                name=name,
                status=OutcomeStatus.SKIPPED,
                reason=f"already installed (v{existing.version})",
                version=existing.version,
            )

        return self._install(
            descriptor,
            scope,
            skip_dependencies=skip_dependencies,
            backup=backup,
            transition=AgentState.INSTALLING,
        )

    def update(
        self,
        name: str,
        scope: Scope = Scope.LOCAL,
        force: bool = False,
        backup: bool | None = None,
    ) -> Outcome:
        scope = Scope.parse(scope)
        record = self.index(scope).find(name)
        if record is None:
            raise NotFoundError(f"Agent '{name}' is not installed ({scope.value})")
        descriptor = self._catalog_descriptor(name)

        if not force and not VersionResolver.has_update(record.version, descriptor.version):
            return Outcome(
                name=name,
                status=OutcomeStatus.UP_TO_DATE,
                reason=f"already at v{record.version}",
                version=record.version,
                previous_version=record.version,
            )

        self._validate(descriptor)
        outcome = self._install(
            descriptor,
            scope,
            skip_dependencies=False,
            backup=backup,
            transition=AgentState.UPDATING,
        )
        outcome.previous_version = record.version
        return outcome

    def _install(
        self,
        descriptor: AgentDescriptor,
        scope: Scope,
        skip_dependencies: bool,
        backup: bool | None,
        transition: AgentState,
    ) -> Outcome:
        index = self.index(scope)
        plan = [descriptor] if skip_dependencies else self._resolve_plan(descriptor, index)
        self._check_conflicts(plan, index)

        for agent in plan:
            self._transient[(agent.name, scope)] = transition
            logger.debug("%s %s (%s)", transition.value, agent.name, scope.value)

        if backup is None:
            backup = self.settings.backup_before_install

        journal = _Journal()
        snapshot = index.snapshot()
        backup_path = None
        try:
            targets = [(agent, index.agent_path(agent.name, agent.category)) for agent in plan]
            overwritten = [path for _, path in targets if path.exists()]
            if backup and overwritten:
                backup_path = BackupManager(
                    index.root, keep=self.settings.max_backups
                ).create(overwritten)

            for agent, target in targets:
                previous = index.find(agent.name)
                if previous is not None:
                    old_path = index.path_for(previous)
                    if old_path != target and old_path.exists():
                        journal.remove(old_path)
                journal.write(target, _document_bytes(agent))

            for agent in plan:
                index.upsert(
                    InstalledRecord(
                        name=agent.name,
                        version=agent.version,
                        scope=scope,
                        category=agent.category,
                    )
                )
            index.save()
        except (OSError, SubAgentsError) as e:
            logger.warning("Rolling back %s of '%s': %s", transition.value, descriptor.name, e)
            journal.rollback()
            index.restore(snapshot)
            if backup_path is not None:
                _discard_backup(backup_path)
            if isinstance(e, OSError):
                raise AgentIOError(f"Failed to install '{descriptor.name}': {e}") from e
            raise
        finally:
            for agent in plan:
                self._transient.pop((agent.name, scope), None)

        installed = [agent.name for agent in plan]
        logger.info("Installed %s into %s scope", ", ".join(installed), scope.value)
        return Outcome(
            name=descriptor.name,
            status=OutcomeStatus.SUCCESS,
            version=descriptor.version,
            installed=installed,
            backup=backup_path,
        )

    def _resolve_plan(self, root: AgentDescriptor, index: InstalledIndex) -> list[AgentDescriptor]:
        """Dependency closure in install order: dependencies first, ``root`` last.

        Walks the whole closure so cycles are found even through agents that
        are already installed; only the missing ones end up in the plan.
        """
        plan: list[AgentDescriptor] = []
        path: list[str] = []
        visited: set[str] = set()

        def visit(agent: AgentDescriptor) -> None:
            path.append(agent.name)
            for dep in sorted(agent.dependencies):
                if dep in path:
                    raise CyclicDependencyError(path[path.index(dep):] + [dep])
                if dep in visited:
                    continue
                dep_agent = self.catalog.get(dep)
                if dep_agent is None:
                    raise NotFoundError(
                        f"Dependency '{dep}' of '{agent.name}' not found in catalog"
                    )
                self._validate(dep_agent)
                visit(dep_agent)
                if index.find(dep) is None:
                    plan.append(dep_agent)
            path.pop()
            visited.add(agent.name)

        visit(root)
        plan.append(root)
        return plan

    def _check_conflicts(self, plan: list[AgentDescriptor], index: InstalledIndex) -> None:
        planned = {agent.name for agent in plan}
        others: list[AgentDescriptor] = list(plan)
        for record in index.all():
            if record.name in planned:
                continue
            installed = self._installed_descriptor(record, index)
            if installed is not None:
                others.append(installed)
            else:
                others.append(_placeholder(record))

        for agent in plan:
            for other in others:
                if other.name == agent.name:
                    continue
                if other.name in agent.conflicts or agent.name in other.conflicts:
                    raise ConflictError(agent.name, other.name)

    # ── Uninstall ───────────────────────────────────────────────────

    def uninstall(self, name: str, scope: Scope = Scope.LOCAL, force: bool = False) -> Outcome:
        """Remove an installed agent: file first, then its index record.

        Raises:
            NotFoundError, DependentInstalledError, AgentIOError
        """
        scope = Scope.parse(scope)
        index = self.index(scope)
        record = index.find(name)
        if record is None:
            raise NotFoundError(f"Agent '{name}' is not installed ({scope.value})")

        if not force:
            dependents = self.dependents(name, scope)
            if dependents:
                raise DependentInstalledError(name, dependents)

        self._transient[(name, scope)] = AgentState.UNINSTALLING
        logger.debug("uninstalling %s (%s)", name, scope.value)
        journal = _Journal()
        snapshot = index.snapshot()
        path = index.path_for(record)
        try:
            if path.exists():
                journal.remove(path)
            else:
                logger.warning("File for '%s' already missing: %s", name, path)
            index.remove(name)
            index.save()
        except (OSError, SubAgentsError) as e:
            logger.warning("Rolling back uninstall of '%s': %s", name, e)
            journal.rollback()
            index.restore(snapshot)
            if isinstance(e, OSError):
                raise AgentIOError(f"Failed to uninstall '{name}': {e}") from e
            raise
        finally:
            self._transient.pop((name, scope), None)

        _remove_empty_dir(path.parent)
        logger.info("Uninstalled %s from %s scope", name, scope.value)
        return Outcome(name=name, status=OutcomeStatus.SUCCESS, version=record.version)

    def dependents(self, name: str, scope: Scope) -> list[str]:
        """Installed agents in ``scope`` that declare ``name`` as a dependency."""
        index = self.index(scope)
        found = []
        for record in index.all():
            if record.name == name:
                continue
            descriptor = self._installed_descriptor(record, index)
            if descriptor is not None and name in descriptor.dependencies:
                found.append(record.name)
        return sorted(found)

    # ── Batches ─────────────────────────────────────────────────────

    def install_many(
        self,
        names: list[str],
        scope: Scope = Scope.LOCAL,
        force: bool = False,
        skip_dependencies: bool = False,
        backup: bool | None = None,
    ) -> BatchResult:
        return self._batch(
            "install",
            names,
            lambda n: self.install(
                n, scope, force=force, skip_dependencies=skip_dependencies, backup=backup
            ),
        )

    def update_many(
        self,
        names: list[str],
        scope: Scope = Scope.LOCAL,
        force: bool = False,
        backup: bool | None = None,
    ) -> BatchResult:
        return self._batch(
            "update", names, lambda n: self.update(n, scope, force=force, backup=backup)
        )

    def uninstall_many(
        self, names: list[str], scope: Scope = Scope.LOCAL, force: bool = False
    ) -> BatchResult:
        return self._batch("uninstall", names, lambda n: self.uninstall(n, scope, force=force))

    def _batch(self, operation: str, names: list[str], run) -> BatchResult:
        result = BatchResult(operation=operation)
        for name in names:
            try:
                outcome = run(name)
            except IndexCorruptError:
                raise
            except SubAgentsError as e:
                logger.debug("%s of '%s' failed: %s", operation, name, e)
                outcome = Outcome(name=name, status=OutcomeStatus.FAILED, reason=str(e))
            result.outcomes.append(outcome)
        return result

    # ── Helpers ─────────────────────────────────────────────────────

    def _catalog_descriptor(self, name: str) -> AgentDescriptor:
        descriptor = self.catalog.get(name)
        if descriptor is None:
            raise NotFoundError(f"Agent '{name}' not found in catalog")
        return descriptor

    def _validate(self, descriptor: AgentDescriptor) -> None:
        result = self.validator.validate_descriptor(descriptor)
        if not result.valid:
            raise ValidationError(descriptor.name, result.errors)
        for warning in result.warnings:
            logger.debug("%s: %s", descriptor.name, warning)

    def _installed_descriptor(
        self, record: InstalledRecord, index: InstalledIndex
    ) -> AgentDescriptor | None:
        """Descriptor for an installed record: the installed file, then the catalog.

        The installed file is what declares the agent's current dependencies
        and conflicts; the catalog may already hold a newer version.
        """
        path = index.path_for(record)
        if path.exists():
            try:
                descriptor = Validator().validate_document(parse_file(path)).descriptor
            except ParseError as e:
                logger.warning("Cannot read installed definition %s: %s", path, e)
                descriptor = None
            if descriptor is not None:
                return descriptor
        return self.catalog.get(record.name)


def _document_bytes(descriptor: AgentDescriptor) -> bytes:
    """Content to install: the source file, or a rendering of the descriptor."""
    if descriptor.source_path is not None:
        return Path(descriptor.source_path).read_bytes()
    header = yaml.safe_dump(descriptor.to_header(), sort_keys=False).strip()
    return f"---\n{header}\n---\n{descriptor.body}".encode("utf-8")


def _placeholder(record: InstalledRecord) -> AgentDescriptor:
    # Installed agent whose definition is unavailable: it declares nothing.
    return AgentDescriptor(
        name=record.name,
        category=record.category,
        description="",
        version=record.version,
        author="",
        license="",
    )


def _remove_empty_dir(path: Path) -> None:
    with contextlib.suppress(OSError):
        path.rmdir()


def _discard_backup(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove backup %s after rollback: %s", path, e)
