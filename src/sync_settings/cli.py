"""CLI for sync-settings."""

import asyncio
import logging
import os
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Awaitable, Callable, Optional

import typer
import yaml
from rich.console import Console

from .config_store import FileConfigStore
from .constants import GIST_ID_KEY, TOKEN_KEY
from .context import SyncContext
from .core import OutcomeStatus, SyncOutcome
from .display import display_diff
from .extensions import DirectoryExtensionManager
from .notify import ConsoleNotifier
from .remote import make_backup_store
from .service import SyncDeps, SyncService

app = typer.Typer(help="""\
Back up and restore editor settings, packages and dotfiles.
Backups are stored in a GitHub Gist (or a local directory), and
restoring one makes this machine match it.""")

console = Console()


@dataclass
class CliOptions:
    config_dir: Optional[Path] = None
    backup_dir: Optional[Path] = None
    bundled_dir: Optional[Path] = None
    prompt: bool = True


@app.callback()
def _options(
    ctx: typer.Context,
    config_dir: Optional[Path] = typer.Option(
        None, "--config-dir", envvar="ATOM_HOME", help="Editor config directory (default: ~/.atom)"
    ),
    backup_dir: Optional[Path] = typer.Option(
        None, "--backup-dir", envvar="SYNC_SETTINGS_BACKUP_DIR",
        help="Keep backups in a local directory instead of GitHub Gist",
    ),
    bundled_dir: Optional[Path] = typer.Option(
        None, "--bundled-dir", help="Directory of packages bundled with the editor"
    ),
    prompt: bool = typer.Option(
        True, "--prompt/--no-prompt", help="Ask for a missing token or backup id and retry"
    ),
):
    if os.environ.get("DEBUG"):
        logging.basicConfig(level=logging.DEBUG)
    ctx.obj = CliOptions(config_dir=config_dir, backup_dir=backup_dir, bundled_dir=bundled_dir, prompt=prompt)


def build_service(options: CliOptions) -> SyncService:
    """Wire the service for the selected config directory.

    Raises:
        typer.Exit: If the config file cannot be read
    """
    sync_ctx = SyncContext(options.config_dir)
    try:
        config = FileConfigStore(sync_ctx.config_path, sync_ctx.lock_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]✗[/red] Cannot read {sync_ctx.config_path}: {e}")
        raise typer.Exit(1)

    def store_factory(token: Optional[str]):
        return make_backup_store(token, options.backup_dir)

    deps = SyncDeps(
        ctx=sync_ctx,
        config=config,
        extensions=DirectoryExtensionManager(sync_ctx.packages_dir, bundled_dir=options.bundled_dir),
        notifier=ConsoleNotifier(console),
        store_factory=store_factory,
    )
    return SyncService(deps)


def run_with_retry(
    service: SyncService,
    operation: Callable[[], Awaitable[SyncOutcome]],
    prompt: bool = True,
) -> SyncOutcome:
    """Run a flow, asking for missing configuration and retrying.

    Raises:
        typer.Exit: If the flow fails or the user gives up
    """
    while True:
        try:
            outcome = asyncio.run(operation())
        except Exception:
            # already reported by the service
            if os.environ.get("DEBUG"):
                console.print_exception()
            raise typer.Exit(1)

        if not (outcome.retryable and prompt):
            return outcome

        if outcome.status is OutcomeStatus.NEEDS_CREDENTIAL:
            token = typer.prompt("Personal access token (gist scope)", default="", hide_input=True, show_default=False)
            if not token:
                return outcome
            service.deps.config.set(TOKEN_KEY, token.strip())
        else:
            gist_id = typer.prompt("Backup id (Gist ID)", default="", show_default=False)
            if not gist_id:
                return outcome
            service.deps.config.set(GIST_ID_KEY, gist_id.strip())


def _finish(outcome: SyncOutcome) -> None:
    if not outcome.ok:
        raise typer.Exit(1)


@app.command()
def backup(ctx: typer.Context):
    """Upload this machine's settings, packages and files."""
    service = build_service(ctx.obj)
    _finish(run_with_retry(service, service.backup, ctx.obj.prompt))


@app.command()
def restore(ctx: typer.Context):
    """Make this machine match the backup.

    Settings are replaced, missing packages installed and files rewritten.
    """
    service = build_service(ctx.obj)
    _finish(run_with_retry(service, service.restore, ctx.obj.prompt))


@app.command()
def check(
    ctx: typer.Context,
    auto: bool = typer.Option(False, "--auto", help="Silent check honoring checkForUpdatedBackup"),
):
    """Check whether the backup differs from this machine."""
    service = build_service(ctx.obj)
    if auto:
        if not service.profile.check_for_updated_backup:
            console.print("[dim]Automatic backup checks are disabled (checkForUpdatedBackup)[/dim]")
            return
        operation = partial(service.check_for_update, auto_check=True)
    else:
        operation = service.check_for_update
    _finish(run_with_retry(service, operation, ctx.obj.prompt and not auto))


@app.command()
def diff(
    ctx: typer.Context,
    no_patch: bool = typer.Option(False, "--no-patch", help="Do not print file patches"),
):
    """Show what a restore would change.

    Examples:
        sync-settings diff             # Settings, packages and file patches
        sync-settings diff --no-patch  # Names only for changed files
    """
    service = build_service(ctx.obj)
    outcome = run_with_retry(service, service.view_diff, ctx.obj.prompt)
    _finish(outcome)
    display_diff(outcome.diff, console, backup_time=outcome.backup_time, show_patches=not no_patch)


@app.command()
def fork(
    ctx: typer.Context,
    remote_id: str = typer.Argument(..., help="Gist ID to fork"),
):
    """Fork someone's backup and use the fork from now on."""
    service = build_service(ctx.obj)
    _finish(run_with_retry(service, partial(service.fork, remote_id), ctx.obj.prompt))


@app.command()
def create(ctx: typer.Context):
    """Create a new, empty backup and use it from now on."""
    service = build_service(ctx.obj)
    _finish(run_with_retry(service, service.create_backup, ctx.obj.prompt))


@app.command()
def view(
    ctx: typer.Context,
    open_browser: bool = typer.Option(False, "--open", help="Open the backup in a browser"),
):
    """Print where the backup can be viewed."""
    service = build_service(ctx.obj)
    url = service.backup_url()
    if not url:
        console.print("[red]✗[/red] No backup id configured")
        console.print("[dim]Set sync-settings.gistId, or run: sync-settings create[/dim]")
        raise typer.Exit(1)
    console.print(url)
    if open_browser:
        typer.launch(url)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
