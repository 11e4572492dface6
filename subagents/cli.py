"""sub-agents CLI — the main entry point for managing agent definitions."""

from __future__ import annotations

import json
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from subagents import __version__
from subagents.catalog.catalog import Catalog
from subagents.catalog.models import Scope
from subagents.config import ConfigStore, Settings, config_path
from subagents.errors import (
    CatalogError,
    ConfigError,
    IndexCorruptError,
    ProjectNotInitializedError,
    SubAgentsError,
)
from subagents.install.engine import BatchResult, InstallationEngine
from subagents.logging import setup_logging

console = Console()


@dataclass
class AppContext:
    """Per-invocation state: settings plus lazily built catalog and engine."""

    settings: Settings
    _catalog: Catalog | None = field(default=None, repr=False)
    _engine: InstallationEngine | None = field(default=None, repr=False)

    @property
    def catalog(self) -> Catalog:
        if self._catalog is None:
            self._catalog = Catalog.load(self.settings.catalog_dir)
        return self._catalog

    @property
    def engine(self) -> InstallationEngine:
        if self._engine is None:
            self._engine = InstallationEngine(self.settings, self.catalog)
        return self._engine


pass_app = click.make_pass_decorator(AppContext)


class SubAgentsGroup(click.Group):
    """Turns pre-flight errors raised by any command into exit code 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except (ConfigError, CatalogError, IndexCorruptError, ProjectNotInitializedError) as e:
            console.print(f"[red]Error:[/] {e}")
            sys.exit(1)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(1)


def _split_names(values: tuple[str, ...]) -> list[str]:
    """Flatten repeated and comma-separated option values, keeping order."""
    names: list[str] = []
    for value in values:
        for part in value.split(","):
            part = part.strip()
            if part and part not in names:
                names.append(part)
    return names


def _require_project(app: AppContext, scope: Scope) -> None:
    if scope is Scope.LOCAL and not app.settings.is_project_initialized():
        raise ProjectNotInitializedError(
            'Project not initialized with sub-agents. Run "sub-agents init" first.'
        )


def _select_interactively(title: str, choices: list[tuple[str, str]]) -> list[str]:
    """Numbered multi-select prompt. ``choices`` are (value, label) pairs."""
    if not choices:
        return []
    console.print(f"\n[bold]{title}[/]")
    for i, (_, label) in enumerate(choices, start=1):
        console.print(f"  [cyan]{i:>2}[/] {label}")
    raw = click.prompt("Numbers (comma-separated, empty to cancel)", default="", show_default=False)
    picked = []
    for token in raw.replace(" ", ",").split(","):
        if not token:
            continue
        if not token.isdigit() or not 1 <= int(token) <= len(choices):
            console.print(f"[yellow]Ignoring invalid choice '{token}'[/]")
            continue
        value = choices[int(token) - 1][0]
        if value not in picked:
            picked.append(value)
    return picked


def _print_batch(result: BatchResult, title: str) -> None:
    console.print(f"\n[bold]=== {title} Summary ===[/]\n")

    if result.succeeded:
        console.print(f"[green]v Succeeded: {len(result.succeeded)}[/]")
        for o in result.succeeded:
            line = f"  - {o.name}"
            if o.previous_version and o.previous_version != o.version:
                line += f": v{o.previous_version} -> v{o.version}"
            elif o.version:
                line += f" v{o.version}"
            extra = [n for n in o.installed if n != o.name]
            if extra:
                line += f" (with {', '.join(extra)})"
            console.print(f"[green]{line}[/]")
    if result.skipped:
        console.print(f"[blue]- Skipped: {len(result.skipped)}[/]")
        for o in result.skipped:
            console.print(f"[blue]  - {o.name}: {o.reason}[/]")
    if result.up_to_date:
        console.print(f"[blue]= Up to date: {len(result.up_to_date)}[/]")
        for o in result.up_to_date:
            console.print(f"[blue]  - {o.name}: {o.reason}[/]")
    if result.failed:
        console.print(f"[red]x Failed: {len(result.failed)}[/]")
        for o in result.failed:
            console.print(f"[red]  - {o.name}: {o.reason}[/]")


@click.group(cls=SubAgentsGroup)
@click.version_option(version=__version__, prog_name="sub-agents")
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory)",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--log-json", is_flag=True, help="Log as JSON lines on stderr")
@click.pass_context
def main(ctx: click.Context, project_dir: Path | None, verbose: bool, log_json: bool):
    """Install and manage specialized AI agent definitions.

    Agents are installed from the bundled catalog into the project
    (.claude/agents) or, with --global, into your home directory.
    """
    setup_logging("DEBUG" if verbose else "WARNING", json_output=log_json)
    settings = Settings.load(project_dir=project_dir)
    console.no_color = not settings.color_output
    ctx.obj = AppContext(settings=settings)


# ── Init ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--force", "-f", is_flag=True, help="Re-initialize an existing project")
@click.option("--agents", "-a", multiple=True, help="Agents to install right away")
@click.option("--categories", "-c", multiple=True, help="Categories to install right away")
@pass_app
def init(app: AppContext, force: bool, agents: tuple, categories: tuple):
    """Initialize sub-agents in the current project."""
    root = app.settings.scope_root(Scope.LOCAL)
    if root.is_dir() and not force:
        console.print("[yellow]Project already initialized with sub-agents.[/]")
        console.print('[dim]Use --force to reinitialize, or "sub-agents install".[/]')
        return

    (root / "agents").mkdir(parents=True, exist_ok=True)
    config_file = root / "config.json"
    now = datetime.now(timezone.utc).isoformat()
    config = {}
    if config_file.exists():
        try:
            config = json.loads(config_file.read_text())
        except (OSError, json.JSONDecodeError):
            config = {}
    config.setdefault("name", app.settings.project_dir.resolve().name)
    config.setdefault("createdAt", now)
    config["updatedAt"] = now
    config_file.write_text(json.dumps(config, indent=2))
    console.print(f"[green]v[/] Created {root}")

    names = _resolve_names(app, agents, categories)
    if names:
        result = app.engine.install_many(names, Scope.LOCAL)
        _print_batch(result, "Installation")
        sys.exit(result.exit_code)


def _resolve_names(app: AppContext, agents: tuple, categories: tuple) -> list[str]:
    names = _split_names(agents)
    for category in _split_names(categories):
        members = app.catalog.list(category=category)
        if not members:
            _fail(f'Unknown category "{category}"')
        for agent in members:
            if agent.name not in names:
                names.append(agent.name)
    return names


# ── Catalog browsing ─────────────────────────────────────────────────


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@pass_app
def categories(app: AppContext, as_json: bool):
    """List agent categories in the catalog."""
    cats = app.catalog.categories()
    if as_json:
        click.echo(json.dumps([asdict(c) for c in cats], indent=2))
        return

    table = Table(title="Available Categories")
    table.add_column("Category", style="green")
    table.add_column("Description")
    table.add_column("Agents", justify="right", style="yellow")
    for c in cats:
        table.add_row(c.name, c.description, str(len(c.agents)))
    console.print(table)


@main.command(name="list")
@click.option("--category", "-c", default=None, help="Filter by category")
@click.option("--installed", "-i", is_flag=True, help="Only installed agents")
@click.option("--available", "-a", is_flag=True, help="Only agents not installed")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@pass_app
def list_agents(app: AppContext, category: str | None, installed: bool, available: bool, as_json: bool):
    """List catalog and installed agents."""
    if installed and available:
        _fail("--installed and --available are mutually exclusive")
    rows = []
    for status in app.engine.statuses():
        agent = status.descriptor
        agent_category = agent.category if agent else next(iter(status.records.values())).category
        if category and agent_category != category:
            continue
        if installed and not status.installed:
            continue
        if available and status.installed:
            continue
        rows.append((status, agent_category))

    if as_json:
        payload = []
        for status, agent_category in rows:
            payload.append({
                "name": status.name,
                "category": agent_category,
                "version": status.descriptor.version if status.descriptor else None,
                "description": status.descriptor.description if status.descriptor else "",
                "installed": {
                    scope.value: record.to_dict() for scope, record in status.records.items()
                },
                "availableUpdate": {
                    scope.value: status.update_available(scope)
                    for scope in status.records
                    if status.update_available(scope)
                },
            })
        click.echo(json.dumps(payload, indent=2))
        return

    if not rows:
        console.print("[yellow]No agents found matching your criteria.[/]")
        return

    table = Table(title=f"Agents ({len(rows)})")
    table.add_column("Name", style="cyan")
    table.add_column("Category")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Description")
    for status, agent_category in rows:
        if status.installed:
            parts = []
            for scope, record in status.records.items():
                text = f"[green]{scope.value} v{record.version}[/]"
                newer = status.update_available(scope)
                if newer:
                    text += f" [yellow](update: {newer})[/]"
                parts.append(text)
            state = ", ".join(parts)
        else:
            state = "[dim]available[/]"
        table.add_row(
            status.name,
            agent_category,
            status.descriptor.version if status.descriptor else "-",
            state,
            (status.descriptor.description if status.descriptor else "")[:60],
        )
    console.print(table)


@main.command()
@click.argument("query")
@click.option("--category", "-c", default=None, help="Filter by category")
@click.option("--tags", "-t", multiple=True, help="Filter by tag (any of)")
@click.option("--limit", "-l", type=click.IntRange(min=1), default=None, help="Maximum number of results")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@pass_app
def search(app: AppContext, query: str, category: str | None, tags: tuple, limit: int | None, as_json: bool):
    """Search the catalog by name, tag, description and keywords."""
    from subagents.catalog.search import SearchIndex, SearchQuery

    result = SearchIndex(app.catalog).search(
        SearchQuery(
            text=query,
            category=category,
            tags=_split_names(tags),
            limit=limit if limit is not None else app.settings.search_limit,
        )
    )

    if as_json:
        click.echo(json.dumps([a.to_dict() for a in result.entries], indent=2))
        return

    if not result.entries:
        console.print(f'[yellow]No agents found matching "{query}"[/]')
        if category or tags:
            console.print("[dim]Try broadening your search criteria.[/]")
        return

    table = Table(title=f'Search results for "{query}" ({result.total_count})')
    table.add_column("Name", style="cyan")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Description")
    table.add_column("Tags", style="dim")
    for agent in result.entries:
        status = app.engine.status(agent.name)
        state = "[green]installed[/]" if status.installed else "[dim]available[/]"
        table.add_row(
            agent.name,
            agent.category,
            state,
            agent.description[:50],
            ", ".join(sorted(agent.tags)),
        )
    console.print(table)


@main.command()
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.option("--markdown", is_flag=True, help="Show the raw definition body")
@pass_app
def info(app: AppContext, name: str, as_json: bool, markdown: bool):
    """Show details about one agent."""
    agent = app.catalog.get(name)
    if agent is None:
        _fail(f'Agent "{name}" not found')
    status = app.engine.status(name)

    if as_json:
        data = agent.to_dict()
        data["installed"] = {s.value: r.to_dict() for s, r in status.records.items()}
        click.echo(json.dumps(data, indent=2))
        return
    if markdown:
        click.echo(agent.body)
        return

    border = "green" if status.installed else "dim"
    console.print(Panel(f"[bold]{agent.name}[/]\n{agent.description}", border_style=border))
    console.print("[bold]Package Information:[/]")
    console.print(f"  Category: {agent.category}")
    console.print(f"  Version:  {agent.version}")
    console.print(f"  Author:   {agent.author}")
    console.print(f"  License:  {agent.license}")
    if status.installed:
        for scope, record in status.records.items():
            line = f"  Status:   [green]Installed ({scope.value}, v{record.version})[/]"
            newer = status.update_available(scope)
            if newer:
                line += f" [yellow]update available: {newer}[/]"
            console.print(line)
    else:
        console.print("  Status:   [dim]Not installed[/]")

    if agent.tools:
        console.print("\n[bold]Tools:[/] " + ", ".join(sorted(agent.tools)))
    if agent.tags:
        console.print("[bold]Tags:[/] " + " ".join(f"[cyan]#{t}[/]" for t in sorted(agent.tags)))
    if agent.dependencies:
        console.print("\n[bold]Dependencies:[/]")
        for dep in sorted(agent.dependencies):
            dep_state = "[green]installed[/]" if app.engine.status(dep).installed else "[yellow]not installed[/]"
            console.print(f"  - {dep} {dep_state}")
    if agent.conflicts:
        console.print("\n[bold]Conflicts:[/]")
        for other in sorted(agent.conflicts):
            console.print(f"  - {other}")
    if agent.repository or agent.homepage:
        console.print("\n[bold]Links:[/]")
        if agent.repository:
            console.print(f"  Repository: {agent.repository}")
        if agent.homepage:
            console.print(f"  Homepage:   {agent.homepage}")

    lines = agent.body.strip().splitlines()
    console.print("\n[bold]Description:[/]")
    console.print("\n".join(lines[:10]), style="dim", markup=False)
    if len(lines) > 10:
        console.print("[dim]... (truncated)[/]")
    if not status.installed:
        console.print(f"\n[bold]To install:[/] sub-agents install --agents={agent.name}")


# ── Install / Uninstall / Update ─────────────────────────────────────


@main.command()
@click.option("--agents", "-a", multiple=True, help="Agents to install")
@click.option("--categories", "-c", multiple=True, help="Install every agent in these categories")
@click.option("--interactive", "-i", is_flag=True, help="Pick agents from a list")
@click.option("--force", "-f", is_flag=True, help="Reinstall if already installed")
@click.option("--global", "-g", "global_", is_flag=True, help="Install into the user scope")
@click.option("--skip-dependencies", is_flag=True, help="Do not install dependencies")
@click.option("--backup/--no-backup", default=None, help="Back up files a forced install overwrites")
@pass_app
def install(app: AppContext, agents: tuple, categories: tuple, interactive: bool, force: bool,
            global_: bool, skip_dependencies: bool, backup: bool | None):
    """Install agents from the catalog."""
    scope = app.settings.default_scope(global_)
    _require_project(app, scope)

    if interactive or not (agents or categories):
        choices = []
        for cat in app.catalog.categories():
            for name in cat.agents:
                agent = app.catalog.get(name)
                if app.engine.index(scope).find(name):
                    continue
                choices.append((name, f"{name} [dim]({cat.name})[/] - {agent.description}"))
        names = _select_interactively("Select agents to install:", choices)
        if names and not click.confirm(f"Install {len(names)} agent(s)?", default=True):
            console.print("[yellow]Installation cancelled.[/]")
            return
    else:
        names = _resolve_names(app, agents, categories)

    if not names:
        console.print("[yellow]No agents selected for installation.[/]")
        return

    console.print(f"\n[bold]Installing {len(names)} agent(s) into {scope.value} scope...[/]")
    result = app.engine.install_many(
        names, scope, force=force, skip_dependencies=skip_dependencies, backup=backup
    )
    _print_batch(result, "Installation")
    sys.exit(result.exit_code)


@main.command()
@click.option("--agents", "-a", multiple=True, help="Agents to uninstall")
@click.option("--interactive", "-i", is_flag=True, help="Pick agents from a list")
@click.option("--force", "-f", is_flag=True, help="Uninstall even if other agents depend on it")
@click.option("--global", "-g", "global_", is_flag=True, help="Uninstall from the user scope")
@pass_app
def uninstall(app: AppContext, agents: tuple, interactive: bool, force: bool, global_: bool):
    """Uninstall agents."""
    scope = app.settings.default_scope(global_)

    if interactive:
        records = app.engine.index(scope).all()
        if not records:
            console.print("[yellow]No installed agents to uninstall.[/]")
            return
        choices = [(r.name, f"{r.name} [dim]({r.category}, v{r.version})[/]") for r in records]
        names = _select_interactively("Select agents to uninstall:", choices)
        if names and not click.confirm(f"Uninstall {len(names)} agent(s)?", default=False):
            console.print("[yellow]Uninstallation cancelled.[/]")
            return
    elif agents:
        names = _split_names(agents)
    else:
        _fail("Please specify --agents or use --interactive")

    if not names:
        console.print("[yellow]No agents selected for uninstallation.[/]")
        return

    console.print(f"\n[bold]Uninstalling {len(names)} agent(s) from {scope.value} scope...[/]")
    result = app.engine.uninstall_many(names, scope, force=force)
    _print_batch(result, "Uninstallation")
    sys.exit(result.exit_code)


@main.command()
@click.option("--agents", "-a", multiple=True, help="Agents to update")
@click.option("--all", "all_", is_flag=True, help="Update every installed agent")
@click.option("--force", "-f", is_flag=True, help="Reinstall even when up to date")
@click.option("--global", "-g", "global_", is_flag=True, help="Update the user scope")
@click.option("--backup/--no-backup", default=None, help="Back up files the update overwrites")
@pass_app
def update(app: AppContext, agents: tuple, all_: bool, force: bool, global_: bool, backup: bool | None):
    """Update installed agents to the catalog version."""
    scope = app.settings.default_scope(global_)

    if all_:
        names = []
        for record in app.engine.index(scope).all():
            if force or app.engine.status(record.name).update_available(scope):
                names.append(record.name)
        if not names:
            console.print("[green]All agents are up to date![/]")
            return
    elif agents:
        names = _split_names(agents)
    else:
        _fail("Please specify --agents or use --all")

    console.print(f"\n[bold]Updating {len(names)} agent(s) in {scope.value} scope...[/]")
    result = app.engine.update_many(names, scope, force=force, backup=backup)
    _print_batch(result, "Update")
    sys.exit(result.exit_code)


# ── Validate ─────────────────────────────────────────────────────────


@main.command()
@click.option("--agent", "-a", "agent_name", default=None, help="Validate a catalog agent")
@click.option("--path", "-p", "path", type=click.Path(exists=True, path_type=Path), default=None,
              help="Definition file or directory")
@click.option("--all", "all_", is_flag=True, help="Validate the whole catalog")
@click.option("--strict", is_flag=True, help="Treat warnings as errors")
@pass_app
def validate(app: AppContext, agent_name: str | None, path: Path | None, all_: bool, strict: bool):
    """Validate agent definition files."""
    from subagents.catalog.validator import Validator

    if path is not None:
        files = sorted(path.rglob("*.md")) if path.is_dir() else [path]
    elif agent_name:
        agent = app.catalog.get(agent_name)
        if agent is None:
            _fail(f'Agent "{agent_name}" not found')
        files = [agent.source_path]
    elif all_:
        files = [a.source_path for a in app.catalog] + sorted(app.catalog.rejected)
    else:
        _fail("Please specify --agent, --path, or --all")

    if not files:
        console.print("[yellow]No agent files found to validate.[/]")
        return

    validator = Validator(app.catalog)
    invalid = 0
    for file in files:
        result = validator.validate_file(file, strict=strict)
        label = result.name or str(file)
        if result.valid:
            console.print(f"  [green]v[/] {label}")
        else:
            invalid += 1
            console.print(f"  [red]x[/] {label} [dim]({file})[/]")
            for error in result.errors:
                console.print(f"      [red]{error}[/]")
        for warning in result.warnings:
            console.print(f"      [yellow]! {warning}[/]")

    console.print(f"\n{len(files) - invalid} valid, {invalid} invalid")
    if invalid:
        sys.exit(1)


# ── Doctor ───────────────────────────────────────────────────────────


@main.command()
@click.option("--global", "-g", "global_", is_flag=True, help="Check the user scope")
@pass_app
def doctor(app: AppContext, global_: bool):
    """Check that the installed index matches the files on disk."""
    from subagents.install.drift import check_drift

    scope = app.settings.default_scope(global_)
    report = check_drift(app.engine.index(scope), app.catalog)
    style = "red" if report.has_drift else "green"
    console.print(report.summary(), style=style, markup=False)
    for name in report.missing_files:
        console.print(f"  - indexed but missing on disk: {name}")
    for file in report.untracked_files:
        console.print(f"  - on disk but not indexed: {file}")
    for name, installed, latest in report.outdated:
        console.print(f"  - {name}: v{installed} (catalog has v{latest})")
    if report.has_drift:
        sys.exit(1)


# ── Config ───────────────────────────────────────────────────────────


@main.group()
@pass_app
def config(app: AppContext):
    """Manage user configuration."""


def _store(app: AppContext) -> ConfigStore:
    return ConfigStore(config_path(app.settings.home_dir))


@config.command(name="get")
@click.argument("key")
@pass_app
def config_get(app: AppContext, key: str):
    """Print one configuration value."""
    try:
        click.echo(json.dumps(_store(app).get(key)))
    except SubAgentsError as e:
        _fail(str(e))


@config.command(name="set")
@click.argument("key")
@click.argument("value")
@pass_app
def config_set(app: AppContext, key: str, value: str):
    """Set one configuration value."""
    try:
        stored = _store(app).set(key, value)
    except SubAgentsError as e:
        _fail(str(e))
    console.print(f"[green]v[/] {key} = {json.dumps(stored)}")


@config.command(name="list")
@pass_app
def config_list(app: AppContext):
    """Show all configuration values."""
    try:
        values = _store(app).all()
    except SubAgentsError as e:
        _fail(str(e))
    table = Table(title="Configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in sorted(values.items()):
        table.add_row(key, json.dumps(value))
    console.print(table)


@config.command(name="reset")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@pass_app
def config_reset(app: AppContext, yes: bool):
    """Reset configuration to defaults."""
    if not yes and not click.confirm("Reset all configuration to defaults?", default=False):
        console.print("[yellow]Reset cancelled[/]")
        return
    _store(app).reset()
    console.print("[green]v[/] Configuration reset to defaults")


@config.command(name="path")
@pass_app
def config_file_path(app: AppContext):
    """Show the configuration file path."""
    click.echo(str(config_path(app.settings.home_dir)))


# ── Integrations ─────────────────────────────────────────────────────


@main.group()
def integrations():
    """Manage optional third-party integrations."""


@integrations.command(name="status")
@pass_app
def integrations_status(app: AppContext):
    """Show integration status."""
    from subagents.integrations.serena import SerenaIntegration

    status = SerenaIntegration(app.settings).status()
    state = "[green]initialized[/]" if status.initialized else "[dim]not initialized[/]"
    line = f"  {status.name}: {state}"
    if status.indexed_at:
        line += f" (indexed {status.indexed_at})"
    console.print(line)


@integrations.command(name="install")
@pass_app
def integrations_install(app: AppContext):
    """Register and index the project with Serena."""
    from subagents.integrations.serena import SerenaIntegration

    _require_project(app, Scope.LOCAL)
    _report_integration(SerenaIntegration(app.settings).install(), "installed")


@integrations.command(name="refresh")
@pass_app
def integrations_refresh(app: AppContext):
    """Re-index the project with Serena."""
    from subagents.integrations.serena import SerenaIntegration

    _require_project(app, Scope.LOCAL)
    _report_integration(SerenaIntegration(app.settings).refresh(), "refreshed")


def _report_integration(result, verb: str) -> None:
    if result.ok:
        console.print(f"[green]v[/] serena {verb}")
        return
    console.print(f"[yellow]! serena integration failed:[/] {result.error}")
    sys.exit(1)


if __name__ == "__main__":
    main()
