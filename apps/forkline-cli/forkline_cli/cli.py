"""Forkline CLI commands."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import typer
from forkline_core import (
    ComponentManager,
    ForklineConfig,
    ForklineError,
    find_component_manager,
    find_project_root,
    load_config,
    resolve_target_paths,
    write_default_config,
)
from forkline_core.config import CONFIG_FILENAME
from forkline_sync import (
    OperationResult,
    WatchServer,
    delete_version,
    fork_version,
    init_target,
    new_version,
    promote_version,
    rename_label,
    rename_version,
)
from rich.console import Console
from rich.table import Table

# Initialize
app = typer.Typer(help="Forkline - keep several versions of a UI component side by side")
console = Console()

# Configure logging (default to WARNING, can be lowered with --debug)
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M",
)
logger = logging.getLogger(__name__)

_LIBRARY_LOGGERS = ("forkline_core", "forkline_sync", "forkline_client", "forkline_cli")

TARGETS_HELP = "Glob selecting target files (repeatable), e.g. 'src/**/*.tsx'"
PATHS_HELP = "File or directory selecting target files (repeatable)"


@dataclass
class BatchResult:
    target: str
    status: str  # OK | SKIP | FAIL
    detail: str


@dataclass
class Project:
    root: Path
    config: ForklineConfig


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
):
    """Forkline command line."""
    level = logging.DEBUG if debug else logging.WARNING
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def _load_project() -> Project:
    root = find_project_root()
    try:
        config = load_config(root)
    except ForklineError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e
    return Project(root=root, config=config)


def _resolve_manager(project: Project, value: str, lazy: bool | None) -> ComponentManager:
    return find_component_manager(
        value,
        cwd=Path.cwd(),
        root=project.root,
        lazy=project.config.lazy if lazy is None else lazy,
        ignore_dirs=project.config.ignore_dirs,
    )


def _is_batch(targets: list[str] | None, paths: list[str] | None) -> bool:
    return bool(targets) or bool(paths)


def _split_args(args: list[str] | None, batch: bool, required: int, optional: int, usage: str) -> list:
    """
    Positional arguments as [target?, *required, *optional-or-None].

    In batch mode no target is expected among the positionals.
    """
    values = list(args or [])
    expected = required + (0 if batch else 1)
    if len(values) < expected or len(values) > expected + optional:
        console.print(f"[red]Usage:[/red] forkline {usage}")
        raise typer.Exit(1)
    values += [None] * (expected + optional - len(values))
    return ([None] if batch else []) + values


def _run_single(
    project: Project,
    target: str,
    lazy: bool | None,
    op: Callable[[ComponentManager], OperationResult],
) -> None:
    try:
        manager = _resolve_manager(project, target, lazy)
        result = op(manager)
    except ForklineError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e
    except OSError as e:
        console.print(f"[red]Error:[/red] {e}")
        logger.exception("Operation failed")
        raise typer.Exit(1) from e
    _print_result(project, result)


def _print_result(project: Project, result: OperationResult) -> None:
    console.print(f"[green][OK][/green] {result.target_id}: {result.message}")
    if result.path is not None:
        try:
            shown = result.path.relative_to(project.root)
        except ValueError:
            shown = result.path
        console.print(f"  file: {shown}")
    if result.replacements:
        console.print(f"  identifier replacements: {result.replacements}")


def _skip_unversioned(manager: ComponentManager) -> str | None:
    return None if manager.is_initialized() else "not a versioned target"


def _skip_versioned(manager: ComponentManager) -> str | None:
    return "already initialized" if manager.is_initialized() else None


def _run_batch(
    project: Project,
    targets: list[str] | None,
    paths: list[str] | None,
    lazy: bool | None,
    op: Callable[[ComponentManager], OperationResult],
    *,
    skip: Callable[[ComponentManager], str | None] | None = None,
) -> None:
    """Apply op to every selected target; continue past failures, exit 1 if any."""
    selectors = list(targets or []) + list(paths or [])
    try:
        files = resolve_target_paths(selectors, Path.cwd(), project.config.ignore_dirs)
    except ForklineError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e

    if not files:
        console.print("[yellow]No targets matched.[/yellow]")
        raise typer.Exit(1)

    results: list[BatchResult] = []
    for path in files:
        manager = ComponentManager.for_target(
            path, root=project.root, lazy=project.config.lazy if lazy is None else lazy
        )
        label = manager.target_id
        reason = (skip or _skip_unversioned)(manager)
        if reason:
            results.append(BatchResult(label, "SKIP", reason))
            continue
        try:
            result = op(manager)
        except ForklineError as e:
            results.append(BatchResult(label, "FAIL", e.message))
            continue
        except OSError as e:
            logger.exception(f"{label}: operation failed")
            results.append(BatchResult(label, "FAIL", str(e)))
            continue
        results.append(BatchResult(result.target_id, "OK", result.message))

    _print_batch(results)
    if any(r.status == "FAIL" for r in results):
        raise typer.Exit(1)


def _print_batch(results: list[BatchResult]) -> None:
    styles = {"OK": "green", "SKIP": "yellow", "FAIL": "red"}
    table = Table(show_header=True, header_style="bold")
    table.add_column("Status")
    table.add_column("Target")
    table.add_column("Details")
    for r in results:
        style = styles.get(r.status, "")
        table.add_row(f"[{style}]{r.status}[/{style}]", r.target, r.detail)
    console.print(table)

    ok = sum(1 for r in results if r.status == "OK")
    skipped = sum(1 for r in results if r.status == "SKIP")
    failed = sum(1 for r in results if r.status == "FAIL")
    console.print(
        f"Totals: ok: [bold]{ok}[/bold]   skipped: [bold]{skipped}[/bold]   failed: [bold]{failed}[/bold]"
    )


def _serve(project: Project, port: int | None, host: str | None, lazy: bool | None) -> None:
    config = project.config
    server = WatchServer(
        project.root,
        host=host or config.host,
        port=config.port if port is None else port,
        poll_interval=config.poll_interval,
        lazy=config.lazy if lazy is None else lazy,
        ignore_dirs=config.ignore_dirs,
    )
    console.print(f"[cyan]Watching {project.root} on ws://{server.host}:{server.port}/ws[/cyan]")
    try:
        server.run()
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")
    except OSError as e:
        console.print(f"[red]Could not start the watch server:[/red] {e}")
        raise typer.Exit(1) from e


# ---------------------- commands ----------------------


@app.command()
def init(
    target: str | None = typer.Argument(None, help="Component file to version"),
    targets: list[str] | None = typer.Option(None, "--targets", help=TARGETS_HELP),
    paths: list[str] | None = typer.Option(None, "--paths", help=PATHS_HELP),
    lazy: bool | None = typer.Option(None, "--lazy/--eager", help="Index style (default: from config)"),
    watch: bool = typer.Option(False, "--watch", help="Start the watch server afterwards"),
):
    """Turn component files into versioned targets (Foo.tsx -> Foo.v1.tsx + wrapper + index)."""
    project = _load_project()
    if not (project.root / CONFIG_FILENAME).exists():
        write_default_config(project.root)
        console.print(f"[green][OK][/green] Wrote {CONFIG_FILENAME}")

    def op(manager: ComponentManager) -> OperationResult:
        wrapper = manager.wrapper_path or (manager.watch_dir / manager.component_name)
        return init_target(
            wrapper,
            root=project.root,
            runtime_package=project.config.runtime_package,
            lazy=manager.lazy,
        )

    if _is_batch(targets, paths):
        _run_batch(project, targets, paths, lazy, op, skip=_skip_versioned)
    elif target:
        try:
            result = init_target(
                Path.cwd() / target,
                root=project.root,
                runtime_package=project.config.runtime_package,
                lazy=project.config.lazy if lazy is None else lazy,
            )
        except ForklineError as e:
            console.print(f"[red]Error:[/red] {e.message}")
            raise typer.Exit(1) from e
        _print_result(project, result)
    else:
        console.print("[red]Usage:[/red] forkline init <file> | --targets <glob> | --paths <path>")
        raise typer.Exit(1)

    if watch:
        _serve(project, None, None, lazy)


@app.command()
def watch(
    port: int | None = typer.Option(None, "--port", "-p", help="WebSocket port (default: config, 3030)"),
    host: str | None = typer.Option(None, "--host", help="Bind host (default: config, localhost)"),
    lazy: bool | None = typer.Option(None, "--lazy/--eager", help="Index style (default: from config)"),
):
    """Regenerate indexes on change and serve the widget's WebSocket."""
    _serve(_load_project(), port, host, lazy)


@app.command(name="list")
def list_targets():
    """List versioned targets under the project root."""
    from forkline_core import discover_managers

    project = _load_project()
    managers = discover_managers(
        project.root, ignore_dirs=project.config.ignore_dirs, lazy=project.config.lazy
    )
    if not managers:
        console.print("[dim]No versioned targets.[/dim]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Target")
    table.add_column("Kind")
    table.add_column("Versions")
    for m in managers:
        try:
            info = m.describe()
        except ForklineError as e:
            table.add_row(m.target_id, "-", f"[red]{e.message}[/red]")
            continue
        versions = ", ".join(
            v.key if v.label in (None, "") else f"{v.key} ({v.label})" for v in info.versions
        )
        table.add_row(info.target_id, info.kind or "-", versions or "[dim]none[/dim]")
    console.print(table)


@app.command()
def new(
    args: list[str] | None = typer.Argument(None, help="<target> [version]"),
    targets: list[str] | None = typer.Option(None, "--targets", help=TARGETS_HELP),
    paths: list[str] | None = typer.Option(None, "--paths", help=PATHS_HELP),
    lazy: bool | None = typer.Option(None, "--lazy/--eager", help="Index style (default: from config)"),
):
    """Create a placeholder version (next free major unless a key is given)."""
    project = _load_project()
    batch = _is_batch(targets, paths)
    target, version = _split_args(args, batch, 0, 1, "new <target> [version]")

    def op(manager: ComponentManager) -> OperationResult:
        return new_version(manager, version)

    if batch:
        _run_batch(project, targets, paths, lazy, op)
    else:
        _run_single(project, target, lazy, op)


@app.command()
def fork(
    args: list[str] | None = typer.Argument(None, help="<target> <source> [new-version]"),
    targets: list[str] | None = typer.Option(None, "--targets", help=TARGETS_HELP),
    paths: list[str] | None = typer.Option(None, "--paths", help=PATHS_HELP),
    lazy: bool | None = typer.Option(None, "--lazy/--eager", help="Index style (default: from config)"),
):
    """Copy a version to a new key."""
    project = _load_project()
    batch = _is_batch(targets, paths)
    target, source, dest = _split_args(args, batch, 1, 1, "fork <target> <source> [new-version]")

    def op(manager: ComponentManager) -> OperationResult:
        return fork_version(manager, source, dest)

    if batch:
        _run_batch(project, targets, paths, lazy, op)
    else:
        _run_single(project, target, lazy, op)


@app.command()
def rename(
    target: str = typer.Argument(..., help="Target (path, directory or component name)"),
    old: str = typer.Argument(..., help="Current version key"),
    new_key: str = typer.Argument(..., metavar="NEW", help="New version key"),
    lazy: bool | None = typer.Option(None, "--lazy/--eager", help="Index style (default: from config)"),
):
    """Rename a version, rewriting its exported identifier."""
    project = _load_project()
    _run_single(project, target, lazy, lambda m: rename_version(m, old, new_key))


@app.command()
def label(
    target: str = typer.Argument(..., help="Target (path, directory or component name)"),
    version: str = typer.Argument(..., help="Version key"),
    text: str = typer.Argument("", help="New label (empty resets to the default)"),
    lazy: bool | None = typer.Option(None, "--lazy/--eager", help="Index style (default: from config)"),
):
    """Set the display label of a version."""
    project = _load_project()
    _run_single(project, target, lazy, lambda m: rename_label(m, version, text))


@app.command()
def delete(
    args: list[str] | None = typer.Argument(None, help="<target> <version>"),
    targets: list[str] | None = typer.Option(None, "--targets", help=TARGETS_HELP),
    paths: list[str] | None = typer.Option(None, "--paths", help=PATHS_HELP),
    lazy: bool | None = typer.Option(None, "--lazy/--eager", help="Index style (default: from config)"),
):
    """Delete a version (never the last one)."""
    project = _load_project()
    batch = _is_batch(targets, paths)
    target, version = _split_args(args, batch, 1, 0, "delete <target> <version>")

    def op(manager: ComponentManager) -> OperationResult:
        return delete_version(manager, version)

    if batch:
        _run_batch(project, targets, paths, lazy, op)
    else:
        _run_single(project, target, lazy, op)


@app.command()
def promote(
    args: list[str] | None = typer.Argument(None, help="<target> <version>"),
    targets: list[str] | None = typer.Option(None, "--targets", help=TARGETS_HELP),
    paths: list[str] | None = typer.Option(None, "--paths", help=PATHS_HELP),
    lazy: bool | None = typer.Option(None, "--lazy/--eager", help="Index style (default: from config)"),
):
    """Make a version the plain implementation and remove the versioning scaffolding."""
    project = _load_project()
    batch = _is_batch(targets, paths)
    target, version = _split_args(args, batch, 1, 0, "promote <target> <version>")

    def op(manager: ComponentManager) -> OperationResult:
        return promote_version(manager, version)

    if batch:
        _run_batch(project, targets, paths, lazy, op)
    else:
        _run_single(project, target, lazy, op)


# Aliases kept for muscle memory.
app.command(name="create", hidden=True)(new)
app.command(name="duplicate", hidden=True)(fork)

if __name__ == "__main__":
    app()
