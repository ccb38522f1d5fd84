"""Typer-based CLI for managing Minecraft server plugins.

Commands read ``package.yml`` and ``package-lock.yml`` from the working
directory (see ``paths`` settings) and share one settings object built with
file < environment < CLI precedence.  Exit codes: ``0`` success, ``1`` when any
plugin failed or validation found problems, ``2`` for configuration or
persistence errors.
"""

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence, Tuple

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .catalogs import get_catalog_client
from .checksums import algorithm_for_digest, digests_match, hash_file
from .compatibility import SERVER_TYPES, evaluate
from .errors import ConfigError, PersistenceError, PluginDownloadError
from .installed import find_installed_file
from .lockfile import LockState, load_lockfile, save_lockfile
from .logging_utils import setup_logging
from .manifest import PackageManifest, default_manifest, load_manifest, save_manifest
from .models import LATEST, ArtifactDeclaration, CatalogProject, ResolvedArtifact, SourceKind
from .pipeline import InstallContext, install_all, install_one, resolve_declaration
from .progress import ProgressRenderer
from .servers import download_server
from .settings import PluginKitSettings, load_settings

console = Console()
app = typer.Typer(help="MCPluginKit: Minecraft server plugin manager", no_args_is_help=True)

LOGGER = logging.getLogger(__name__)

_MAX_SUGGESTIONS = 6


@dataclass
class _CliState:
    config_path: Optional[Path]
    verbose: bool
    settings: PluginKitSettings


@dataclass(frozen=True)
class _SearchHit:
    source: SourceKind
    project: CatalogProject
    distance: int


# ============================================================================
# Helpers
# ============================================================================


def _fail(message: str, code: int = 1) -> NoReturn:
    console.print(f"[red]✗ {escape(message)}[/red]")
    raise typer.Exit(code=code)


def _levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, av in enumerate(a, start=1):
        cur = [i]
        for j, bv in enumerate(b, start=1):
            ins = cur[j - 1] + 1
            delete = prev[j] + 1
            sub = prev[j - 1] + (0 if av == bv else 1)
            cur.append(min(ins, delete, sub))
        prev = cur
    return prev[-1]


def _state(ctx: typer.Context) -> _CliState:
    state = ctx.obj
    if not isinstance(state, _CliState):
        _fail("CLI state not initialised", code=2)
    return state


def _settings_with(ctx: typer.Context, download: Dict[str, Any]) -> PluginKitSettings:
    """Reload settings with per-command download overrides on top."""

    state = _state(ctx)
    if not any(value is not None for value in download.values()):
        return state.settings
    overrides: Dict[str, Any] = {"download": download}
    if state.verbose:
        overrides["logging"] = {"level": "DEBUG"}
    try:
        return load_settings(state.config_path, cli_overrides=overrides)
    except ConfigError as exc:
        _fail(str(exc), code=2)


def _load_project(settings: PluginKitSettings) -> Tuple[PackageManifest, LockState]:
    try:
        manifest = load_manifest(settings.paths.manifest)
        lock_state = load_lockfile(settings.paths.lockfile)
    except (ConfigError, PersistenceError) as exc:
        _fail(str(exc), code=2)
    return manifest, lock_state


def _context(
    settings: PluginKitSettings,
    manifest: PackageManifest,
    lock_state: LockState,
    renderer: Optional[ProgressRenderer] = None,
) -> InstallContext:
    return InstallContext(
        settings=settings,
        lock_state=lock_state,
        server_type=manifest.server.type or None,
        game_version=manifest.server.minecraft_version or None,
        renderer=renderer,
    )


def _save(
    settings: PluginKitSettings,
    lock_state: LockState,
    manifest: Optional[PackageManifest] = None,
) -> None:
    try:
        if manifest is not None:
            save_manifest(settings.paths.manifest, manifest)
        save_lockfile(settings.paths.lockfile, lock_state)
    except PersistenceError as exc:
        _fail(str(exc), code=2)


def _sources(source: str) -> List[SourceKind]:
    normalized = source.strip().lower()
    if normalized == "auto":
        return [SourceKind.HANGAR, SourceKind.MODRINTH]
    try:
        return [SourceKind.parse(normalized)]
    except ValueError:
        _fail(f"unknown source '{source}' (use auto, modrinth or hangar)", code=2)


def _select_declarations(
    declarations: Sequence[ArtifactDeclaration], names: Optional[Sequence[str]]
) -> List[ArtifactDeclaration]:
    if not names:
        return list(declarations)
    wanted = {name.lower() for name in names}
    return [
        declaration
        for declaration in declarations
        if declaration.name.lower() in wanted or declaration.identifier.lower() in wanted
    ]


def _search_ranked(
    query: str, sources: Sequence[SourceKind], context: InstallContext
) -> List[_SearchHit]:
    hits: List[_SearchHit] = []
    for source in sources:
        try:
            projects = context.catalog(source).search(query, context.server_type, strict=False)
        except PluginDownloadError as exc:
            console.print(f"[yellow]⚠ {source.value} search failed: {escape(str(exc))}[/yellow]")
            continue
        for project in projects:
            distance = _levenshtein(query.lower(), project.display_name.lower())
            hits.append(_SearchHit(source, project, distance))
    hits.sort(key=lambda hit: hit.distance)
    return hits


def _choose(query: str, hits: Sequence[_SearchHit], assume_yes: bool) -> Optional[_SearchHit]:
    best = hits[0]
    if best.distance == 0 or assume_yes:
        console.print(
            f"[green]✓ Found {best.project.display_name} ({best.project.stable_id}) "
            f"on {best.source.value}[/green]"
        )
        return best
    shown = list(hits[:_MAX_SUGGESTIONS])
    console.print(f"No exact match for '{query}'. Did you mean:")
    for position, hit in enumerate(shown, start=1):
        console.print(
            f"  {position}. [{hit.source.value.upper()}] {hit.project.display_name} "
            f"({hit.project.stable_id}) - {hit.project.description}",
            markup=False,
        )
    answer = typer.prompt(
        f"Select a number (1-{len(shown)}) or press Enter to cancel",
        default="",
        show_default=False,
    )
    try:
        choice = int(answer.strip())
    except ValueError:
        return None
    if 1 <= choice <= len(shown):
        return shown[choice - 1]
    return None


def _supported_platforms(source: SourceKind, identifier: str, context: InstallContext) -> str:
    try:
        project = context.catalog(source).get_project(identifier)
    except (PluginDownloadError, ConfigError) as exc:
        LOGGER.debug(
            "project lookup failed",
            extra={"stage": "catalog", "identifier": identifier, "error": str(exc)},
        )
        return ""
    known = [platform for platform in SERVER_TYPES if platform in project.categories]
    return ", ".join(known)


def _confirm_fallback(
    resolved: ResolvedArtifact, context: InstallContext, assume_yes: bool
) -> bool:
    """Tell the user which platform a fallback release targets and ask to proceed."""

    declaration = resolved.declaration
    console.print(
        f"[yellow]⚠ {escape(declaration.name)} has no release for "
        f"{context.server_type}; closest is {resolved.version} "
        f"for platform {resolved.platform}[/yellow]",
        soft_wrap=True,
    )
    supported = _supported_platforms(declaration.source, declaration.identifier, context)
    if supported:
        console.print(f"  Supported platforms: {supported}")
    if assume_yes:
        return True
    return typer.confirm(f"Install {resolved.platform} build anyway?", default=False)


def _report_query_failure(declaration: ArtifactDeclaration, exc: Exception) -> None:
    LOGGER.error(
        "plugin install failed",
        extra={
            "stage": "error",
            "identifier": declaration.identifier,
            "error": str(exc),
        },
    )
    console.print(f"[red]✗ Failed to install '{declaration.name}': {escape(str(exc))}[/red]")


# ============================================================================
# Commands
# ============================================================================


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to settings file (YAML or JSON)",
        envvar="MCPK_CONFIG",
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging"),
) -> None:
    """Resolve, download and lock Minecraft server plugins."""

    overrides = {"logging": {"level": "DEBUG"}} if verbose else None
    try:
        settings = load_settings(config, cli_overrides=overrides)
    except ConfigError as exc:
        _fail(str(exc), code=2)
    setup_logging(
        level=settings.logging.level,
        retention_days=settings.logging.retention_days,
        max_log_size_mb=settings.logging.max_log_size_mb,
        log_dir=settings.logging.log_dir,
    )
    ctx.obj = _CliState(config_path=config, verbose=verbose, settings=settings)


@app.command()
def init(
    ctx: typer.Context,
    name: Optional[str] = typer.Option(None, "--name", help="Project name"),
    server_type: str = typer.Option("paper", "--server-type", "-t", help="Server platform"),
    minecraft_version: str = typer.Option(
        "1.20.4", "--minecraft-version", "-m", help="Minecraft version"
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing package.yml"),
) -> None:
    """Create a starter package.yml."""

    settings = _state(ctx).settings
    path = settings.paths.manifest
    normalized = server_type.strip().lower()
    if normalized not in SERVER_TYPES:
        _fail(f"unsupported server type '{server_type}' ({', '.join(SERVER_TYPES)})", code=2)
    if path.exists() and not force:
        _fail(f"{path} already exists (use --force to overwrite)")
    manifest = default_manifest(
        name or Path.cwd().name,
        server_type=normalized,
        minecraft_version=minecraft_version,
    )
    try:
        save_manifest(path, manifest)
    except PersistenceError as exc:
        _fail(str(exc), code=2)
    console.print(f"[green]✓ Created {path}[/green]")


@app.command()
def install(
    ctx: typer.Context,
    queries: Optional[List[str]] = typer.Argument(None, help="Plugins to search and install"),
    directory: Optional[Path] = typer.Option(None, "--dir", "-d", help="Plugins directory"),
    force: bool = typer.Option(False, "--force", "-f", help="Re-download existing files"),
    source: str = typer.Option("auto", "--source", help="auto, modrinth or hangar"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Parallel downloads"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Take the closest match without asking"),
) -> None:
    """Install declared plugins, or search and add new ones."""

    settings = _settings_with(
        ctx,
        {"plugins_dir": directory, "force": True if force else None, "concurrency": workers},
    )
    manifest, lock_state = _load_project(settings)

    if not queries:
        declarations = manifest.to_declarations()
        if not declarations:
            console.print("[yellow]No plugins declared in package.yml[/yellow]")
            return
        console.print(
            f"Installing {len(declarations)} plugins "
            f"({settings.download.concurrency} concurrent downloads)"
        )
        with ProgressRenderer(console=console, enabled=console.is_terminal) as renderer:
            report = install_all(
                declarations, context=_context(settings, manifest, lock_state, renderer)
            )
        _save(settings, lock_state)

        for outcome in report.successes:
            note = "" if outcome.exact else f" [yellow](platform {outcome.platform})[/yellow]"
            console.print(
                f"[green]✓ {outcome.declaration.name} {outcome.version} ({outcome.status})[/green]{note}"
            )
        for outcome in report.failures:
            console.print(f"[red]✗ {outcome.declaration.name}: {escape(str(outcome.error))}[/red]")
        console.print(
            Panel(
                f"Installed: {len(report.successes)}\nFailed: {len(report.failures)}",
                title="Install Summary",
            )
        )
        if report.failures:
            raise typer.Exit(code=1)
        return

    sources = _sources(source)
    context = _context(settings, manifest, lock_state)
    failures = 0
    for query in queries:
        hits = _search_ranked(query, sources, context)
        if not hits:
            console.print(f"[yellow]⚠ No results found for '{query}'[/yellow]")
            failures += 1
            continue
        chosen = _choose(query, hits, yes)
        if chosen is None:
            console.print("Operation cancelled.")
            continue
        declaration = ArtifactDeclaration(
            chosen.project.display_name, chosen.source, chosen.project.stable_id, LATEST
        )
        try:
            resolved = resolve_declaration(declaration, context)
        except (PluginDownloadError, ConfigError) as exc:
            _report_query_failure(declaration, exc)
            failures += 1
            continue
        if not resolved.exact and not _confirm_fallback(resolved, context, yes):
            console.print(f"Skipped {declaration.name}.")
            continue
        with ProgressRenderer(console=console, enabled=console.is_terminal) as renderer:
            try:
                outcome = install_one(
                    declaration,
                    context,
                    progress=renderer.reporter(declaration.name),
                    resolved=resolved,
                )
            except (PluginDownloadError, ConfigError) as exc:
                _report_query_failure(declaration, exc)
                failures += 1
                continue
        manifest.apply_outcomes([outcome])
        _save(settings, lock_state, manifest)
        note = "" if outcome.exact else f" [yellow](platform {outcome.platform})[/yellow]"
        console.print(
            f"[green]✓ Installed {declaration.name} {outcome.version} "
            f"from {declaration.source.value}[/green]{note}"
        )
    if failures:
        raise typer.Exit(code=1)


@app.command()
def update(
    ctx: typer.Context,
    names: Optional[List[str]] = typer.Argument(None, help="Plugins to update (default: all)"),
    check: bool = typer.Option(False, "--check", help="Only report available updates"),
) -> None:
    """Update plugins to their newest compatible versions."""

    settings = _state(ctx).settings
    manifest, lock_state = _load_project(settings)
    declarations = _select_declarations(manifest.to_declarations(), names)
    if names and not declarations:
        _fail(f"no declared plugin matches {', '.join(names)}")

    context = _context(settings, manifest, lock_state)
    table = Table(title="Plugin Updates")
    table.add_column("Name", style="cyan")
    table.add_column("Current", style="yellow")
    table.add_column("Latest", style="green")
    table.add_column("Status", style="magenta")

    pending: List[ArtifactDeclaration] = []
    errors = 0
    for declaration in declarations:
        lock_entry = lock_state.get(declaration.lock_key)
        current = lock_entry.version if lock_entry else declaration.version
        try:
            resolved = resolve_declaration(declaration, context, version=LATEST)
        except (PluginDownloadError, ConfigError) as exc:
            table.add_row(declaration.name, current, "-", f"error: {escape(str(exc))}")
            errors += 1
            continue
        if resolved.version == current:
            table.add_row(declaration.name, current, resolved.version, "up to date")
        else:
            table.add_row(declaration.name, current, resolved.version, "update available")
            pending.append(declaration)
    console.print(table)

    if check or not pending:
        if not pending:
            console.print("[green]✓ Everything is up to date[/green]")
        if errors:
            raise typer.Exit(code=1)
        return

    previous = {decl.lock_key: lock_state.get(decl.lock_key) for decl in pending}
    targets = [dataclasses.replace(decl, version=LATEST) for decl in pending]
    pinned = {decl.lock_key for decl in pending if not decl.is_latest}
    with ProgressRenderer(console=console, enabled=console.is_terminal) as renderer:
        context.renderer = renderer
        report = install_all(targets, context=context)

    for outcome in report.successes:
        old = previous.get(outcome.declaration.lock_key)
        if old is not None and old.filename and outcome.path is not None:
            if old.filename != outcome.path.name:
                (settings.download.plugins_dir / old.filename).unlink(missing_ok=True)
    manifest.apply_outcomes(
        [outcome for outcome in report.successes if outcome.declaration.lock_key in pinned]
    )
    _save(settings, lock_state, manifest)

    for outcome in report.successes:
        console.print(f"[green]✓ Updated {outcome.declaration.name} to {outcome.version}[/green]")
    for outcome in report.failures:
        console.print(f"[red]✗ {outcome.declaration.name}: {escape(str(outcome.error))}[/red]")
    if report.failures or errors:
        raise typer.Exit(code=1)


@app.command("list")
def list_plugins(ctx: typer.Context) -> None:
    """List declared plugins and whether they are installed."""

    settings = _state(ctx).settings
    manifest, lock_state = _load_project(settings)
    table = Table(title="Plugins")
    table.add_column("Name", style="cyan")
    table.add_column("Version", style="yellow")
    table.add_column("Source", style="blue")
    table.add_column("Status")
    for plugin in manifest.plugins:
        entry = lock_state.get(plugin.identifier) if plugin.identifier else None
        path = find_installed_file(settings.download.plugins_dir, plugin.name, entry)
        status = "[green]INSTALLED[/green]" if path else "[red]MISSING[/red]"
        source = plugin.source.value if plugin.source else "-"
        table.add_row(plugin.name, plugin.version, source, status)
    console.print(table)
    console.print(f"Total plugins: {len(manifest.plugins)}")


@app.command()
def validate(ctx: typer.Context) -> None:
    """Check installed files against the digests recorded in the lock file."""

    settings = _state(ctx).settings
    manifest, lock_state = _load_project(settings)
    table = Table(title="Validation")
    table.add_column("Name", style="cyan")
    table.add_column("File")
    table.add_column("Status")
    problems = 0
    for declaration in manifest.to_declarations():
        entry = lock_state.get(declaration.lock_key)
        path = find_installed_file(settings.download.plugins_dir, declaration.name, entry)
        if path is None:
            table.add_row(declaration.name, "-", "[red]MISSING[/red]")
            problems += 1
            continue
        if entry is None or not entry.hash:
            table.add_row(declaration.name, path.name, "[yellow]NOT LOCKED[/yellow]")
            problems += 1
            continue
        algorithm = algorithm_for_digest(entry.hash)
        if algorithm is None:
            table.add_row(declaration.name, path.name, "[red]BAD LOCK HASH[/red]")
            problems += 1
            continue
        if digests_match(entry.hash, hash_file(path, algorithm)):
            table.add_row(declaration.name, path.name, "[green]OK[/green]")
        else:
            table.add_row(declaration.name, path.name, "[red]INVALID[/red]")
            problems += 1
    console.print(table)
    if problems:
        _fail(f"{problems} plugin(s) failed validation")
    console.print("[green]✓ All plugins valid[/green]")


@app.command()
def uninstall(
    ctx: typer.Context,
    names: List[str] = typer.Argument(..., help="Plugin names or identifiers"),
) -> None:
    """Remove plugins from package.yml, the lock file and the plugins directory."""

    settings = _state(ctx).settings
    manifest, lock_state = _load_project(settings)
    removed = manifest.remove_plugins(names)
    matched = {plugin.name.lower() for plugin in removed} | {
        str(plugin.identifier).lower() for plugin in removed
    }
    for name in names:
        if name.lower() not in matched:
            console.print(f"[yellow]⚠ '{name}' is not declared[/yellow]")
    for plugin in removed:
        entry = lock_state.remove(plugin.identifier) if plugin.identifier else None
        path = find_installed_file(settings.download.plugins_dir, plugin.name, entry)
        if path is not None:
            path.unlink(missing_ok=True)
            console.print(f"[green]✓ Removed {plugin.name} ({path.name})[/green]")
        else:
            console.print(f"[green]✓ Removed {plugin.name}[/green]")
    if removed:
        _save(settings, lock_state, manifest)
    else:
        raise typer.Exit(code=1)


@app.command()
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search text"),
    source: str = typer.Option("auto", "--source", help="auto, modrinth or hangar"),
) -> None:
    """Search catalogs and show compatibility with the configured server."""

    settings = _state(ctx).settings
    server_type: Optional[str] = None
    if settings.paths.manifest.exists():
        manifest, _ = _load_project(settings)
        server_type = manifest.server.type or None

    table = Table(title=f"Results for '{query}'")
    table.add_column("Source", style="blue")
    table.add_column("Name", style="cyan")
    table.add_column("ID")
    table.add_column("Compatibility")
    rows = 0
    for kind in _sources(source):
        client = get_catalog_client(kind, settings.http)
        try:
            projects = client.search(query, server_type, strict=False)
        except PluginDownloadError as exc:
            console.print(f"[yellow]⚠ {kind.value} search failed: {escape(str(exc))}[/yellow]")
            continue
        for project in projects:
            verdict = evaluate(kind, server_type, project.categories)
            if verdict.exact:
                label = "[green]exact[/green]"
            elif verdict.usable:
                label = "[yellow]compatible[/yellow]"
            else:
                label = "[red]incompatible[/red]"
            table.add_row(kind.value, project.display_name, project.stable_id, label)
            rows += 1
    if not rows:
        console.print(f"[yellow]No results found for '{query}'[/yellow]")
        return
    console.print(table)


@app.command()
def server(
    ctx: typer.Context,
    output_dir: Path = typer.Option(Path("."), "--dir", "-d", help="Where to save server.jar"),
    force: bool = typer.Option(False, "--force", "-f", help="Re-download server.jar"),
) -> None:
    """Download the server jar for the platform declared in package.yml."""

    settings = _state(ctx).settings
    manifest, _ = _load_project(settings)
    section = manifest.server
    try:
        with ProgressRenderer(console=console, enabled=console.is_terminal) as renderer:
            result = download_server(
                section.type,
                section.minecraft_version,
                section.build,
                output_dir,
                settings=settings.http,
                progress=renderer.reporter("server.jar"),
                force=force,
            )
    except ConfigError as exc:
        _fail(str(exc), code=2)
    except PluginDownloadError as exc:
        _fail(f"server download failed: {exc}")
    console.print(
        f"[green]✓ {section.type} {section.minecraft_version} saved to {result.path} "
        f"({result.status})[/green]"
    )


def run() -> None:
    app()


if __name__ == "__main__":
    run()
