"""Main CLI application for pez."""

import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from pez import __version__
from pez.backend.base import GitBackend
from pez.backend.git import SubprocessGitBackend
from pez.config.parser import write_config_template
from pez.config.schemas import ASSET_DIRS, AssetDir
from pez.config.settings import Settings
from pez.core.doctor import run_checks
from pez.core.installer import Report
from pez.core.materializer import FileMaterializer
from pez.core.reconciler import Reconciler
from pez.core.workspace import Workspace
from pez.errors import ConfigError, PezError

app = typer.Typer(
    name="pez",
    help="A declarative plugin manager for the fish shell",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

logger = logging.getLogger("pez")

STATUS_STYLES = {
    "installed": "green",
    "upgraded": "green",
    "removed": "green",
    "skipped": "yellow",
    "failed": "red",
}
CHECK_STYLES = {"ok": "green", "warn": "yellow", "error": "red"}


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2+=DEBUG
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger.setLevel(level)

    if not logger.handlers:
        handler = RichHandler(
            console=error_console,
            show_time=verbosity >= 2,
            show_path=verbosity >= 3,
            rich_tracebacks=True,
        )
        handler.setLevel(level)
        logger.addHandler(handler)
    else:
        for h in logger.handlers:
            h.setLevel(level)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]Error:[/red] {escape(message)}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {escape(message)}")


def get_backend() -> GitBackend:
    """Git backend used by commands that touch repositories."""
    return SubprocessGitBackend()


def get_settings(ctx: typer.Context) -> Settings:
    jobs = ctx.obj.get("jobs") if ctx.obj else None
    return Settings.from_env(jobs=jobs)


def get_workspace(ctx: typer.Context) -> Workspace:
    """Load the workspace, exiting with an error if a file is invalid."""
    try:
        return Workspace.load(get_settings(ctx))
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1) from e


def get_reconciler(ctx: typer.Context, force: bool = False) -> Reconciler:
    workspace = get_workspace(ctx)
    return Reconciler(workspace, get_backend(), force=force)


def print_report(report: Report) -> None:
    """Print per-plugin results and notices, then exit 1 if anything failed."""
    for notice in report.notices:
        print_warning(notice)

    for result in report.results:
        label = result.name if result.name == result.source else f"{result.name} ({result.source})"
        style = STATUS_STYLES[result.status]
        line = f"[{style}]{result.status}[/{style}] {escape(label)}"
        if result.commit_sha:
            line += f" [dim]{result.commit_sha[:12]}[/dim]"
        if result.message:
            line += f": {escape(result.message)}"
        if result.status == "failed":
            error_console.print(line)
        else:
            console.print(line)

    if not report.all_successful:
        raise typer.Exit(1)


@app.callback()
def callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v info, -vv debug)",
        ),
    ] = 0,
    jobs: Annotated[
        int | None,
        typer.Option(
            "--jobs",
            "-j",
            min=1,
            help="Maximum number of concurrent clones (default: $PEZ_JOBS or 4)",
        ),
    ] = None,
) -> None:
    """pez - a declarative plugin manager for the fish shell."""
    setup_logging(verbose)
    ctx.obj = {"jobs": jobs}


@app.command()
def version() -> None:
    """Show the pez version."""
    console.print(f"pez {__version__}")


@app.command()
def init(ctx: typer.Context) -> None:
    """Create pez.toml and the functions, completions, conf.d and themes directories."""
    settings = get_settings(ctx)
    if settings.config_path.exists():
        print_warning(f"{settings.config_path} already exists")
        return

    try:
        config_path = write_config_template(settings.config_dir)
        FileMaterializer(settings.target_dir).ensure_target_dirs()
    except PezError as e:
        print_error(str(e))
        raise typer.Exit(1) from e
    print_success(f"Created {config_path}")


@app.command()
def install(
    ctx: typer.Context,
    plugins: Annotated[
        list[str] | None,
        typer.Argument(
            help="Plugins to install (e.g., 'owner/repo', 'owner/repo@tag:v1.0', "
            "'gitlab.com/owner/repo', 'https://host/owner/repo', '~/src/plugin')",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Re-clone installed plugins and overwrite files not managed by pez",
        ),
    ] = False,
) -> None:
    """Install plugins.

    Without arguments, installs every plugin declared in pez.toml that is not
    installed yet. With arguments, installs those plugins and declares them in
    pez.toml. A ref suffix may follow '@': latest, version:<v>, branch:<b>,
    tag:<t> or commit:<sha>.
    """
    reconciler = get_reconciler(ctx, force=force)
    report = reconciler.install(plugins or None, cwd=Path.cwd())
    if not report.results:
        console.print("No plugins to install")
    print_report(report)


@app.command()
def upgrade(
    ctx: typer.Context,
    plugins: Annotated[
        list[str] | None,
        typer.Argument(help="Plugins to upgrade (default: all installed plugins)"),
    ] = None,
) -> None:
    """Upgrade installed plugins.

    Plugins with a version, branch, tag or commit in pez.toml follow it; the
    rest move to the tip of the remote default branch.
    """
    reconciler = get_reconciler(ctx)
    report = reconciler.upgrade(plugins or None)
    if not report.results:
        console.print("No plugins installed")
    print_report(report)


@app.command()
def uninstall(
    ctx: typer.Context,
    plugins: Annotated[
        list[str] | None,
        typer.Argument(help="Plugins to uninstall (source, owner/repo or name)"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Remove recorded files even when the plugin's clone is missing",
        ),
    ] = False,
    stdin: Annotated[
        bool,
        typer.Option(
            "--stdin",
            help="Read plugin names from standard input, one per line",
        ),
    ] = False,
) -> None:
    """Uninstall plugins and remove them from pez.toml."""
    names = list(plugins or [])
    if stdin:
        names.extend(line.strip() for line in sys.stdin.read().splitlines() if line.strip())

    if not names:
        print_error("No plugins given")
        raise typer.Exit(1)

    reconciler = get_reconciler(ctx, force=force)
    print_report(reconciler.uninstall(names))


@app.command()
def prune(
    ctx: typer.Context,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Show what would be removed"),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Remove everything when pez.toml declares no plugins"),
    ] = False,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Remove recorded files even when the plugin's clone is missing",
        ),
    ] = False,
) -> None:
    """Remove installed plugins that pez.toml no longer declares."""
    reconciler = get_reconciler(ctx, force=force)
    report = reconciler.prune(dry_run=dry_run, yes=yes)

    if report.needs_confirmation:
        print_warning(report.notices[0])
        if not typer.confirm("Remove all installed plugins?", default=False):
            console.print("Nothing removed")
            return
        report = reconciler.prune(dry_run=dry_run, yes=True)

    if not report.results and not report.notices:
        console.print("Nothing to prune")
    print_report(report)


@app.command("list")
def list_plugins(
    ctx: typer.Context,
    plugins: Annotated[
        list[str] | None,
        typer.Argument(help="Plugins to show (default: all)"),
    ] = None,
    outdated: Annotated[
        bool,
        typer.Option("--outdated", help="Only show plugins with a newer commit available"),
    ] = False,
) -> None:
    """List installed plugins."""
    reconciler = get_reconciler(ctx)

    if outdated:
        rows = [
            (item.entry.name, item.entry.repo, item.entry.commit_sha[:12], item.latest_sha[:12])
            for item in reconciler.outdated(plugins or None)
        ]
        if not rows:
            console.print("All plugins are up to date")
            return
        table = Table(title="Outdated Plugins")
        table.add_column("Plugin", style="cyan")
        table.add_column("Repo", style="dim")
        table.add_column("Installed", style="yellow")
        table.add_column("Latest", style="green")
        for row in rows:
            table.add_row(*row)
        console.print(table)
        return

    entries = reconciler.list_entries(plugins or None)
    if not entries:
        console.print("No plugins installed")
        return

    table = Table(title="Installed Plugins")
    table.add_column("Plugin", style="cyan")
    table.add_column("Repo", style="dim")
    table.add_column("Commit", style="green")
    table.add_column("Files", justify="right")
    for entry in entries:
        table.add_row(entry.name, entry.repo, entry.commit_sha[:12], str(len(entry.files)))
    console.print(table)


@app.command()
def files(
    ctx: typer.Context,
    plugins: Annotated[
        list[str] | None,
        typer.Argument(help="Plugins to list files for (default: all)"),
    ] = None,
    dirs: Annotated[
        list[str] | None,
        typer.Option(
            "--dir",
            "-d",
            help="Only list files from this directory (functions, completions, conf.d, themes)",
        ),
    ] = None,
) -> None:
    """Print the installed file paths of plugins, one per line."""
    selected: list[AssetDir] | None = None
    if dirs:
        unknown = [d for d in dirs if d not in ASSET_DIRS]
        if unknown:
            print_error(f"Unknown directory: {', '.join(unknown)}")
            raise typer.Exit(1)
        selected = [d for d in ASSET_DIRS if d in dirs]

    reconciler = get_reconciler(ctx)
    for path in reconciler.files(plugins or None, selected):
        typer.echo(str(path))


@app.command()
def doctor(ctx: typer.Context) -> None:
    """Check configuration, lockfile and installed files."""
    results = run_checks(get_settings(ctx))

    table = Table(title="pez doctor")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Details")
    for result in results:
        style = CHECK_STYLES[result.status]
        table.add_row(result.name, f"[{style}]{result.status}[/{style}]", "\n".join(result.details))
    console.print(table)

    if any(r.status == "error" for r in results):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
