"""Display logic for diff output."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from .core import DiffResult, FilesDiff, PackageInfo, PackagesDiff, SettingsDiff
from .utils import format_iso_date, humanize_date

# bucket -> (label, style) from the point of view of a restore
BUCKET_STYLES = {
    "added": ("+ added", "green"),
    "updated": ("~ updated", "yellow"),
    "deleted": ("- deleted", "red"),
}


def _format_value(value: Any) -> str:
    if value is None:
        return "[dim]unset[/dim]"
    return json.dumps(value, ensure_ascii=False)


def _format_package(info: PackageInfo) -> str:
    text = info.version or "[dim]latest[/dim]"
    if info.install_source:
        text += f" [dim]({info.install_source.source})[/dim]"
    return text


def display_settings_diff(diff: SettingsDiff, console: Console) -> None:
    table = Table(title="\nSettings")
    table.add_column("Change")
    table.add_column("Key Path", style="cyan")
    table.add_column("Scope", style="dim")
    table.add_column("Local")
    table.add_column("Backup")

    for bucket, (label, style) in BUCKET_STYLES.items():
        for change in getattr(diff, bucket) or []:
            if bucket == "added":
                local, backup = "", _format_value(change.value)
            elif bucket == "deleted":
                local, backup = _format_value(change.value), ""
            else:
                local, backup = _format_value(change.old_value), _format_value(change.value)
            table.add_row(f"[{style}]{label}[/{style}]", change.key_path, change.scope, local, backup)

    console.print(table)


def display_packages_diff(diff: PackagesDiff, console: Console) -> None:
    table = Table(title="\nPackages")
    table.add_column("Change")
    table.add_column("Package", style="cyan")
    table.add_column("Local")
    table.add_column("Backup")

    for name, info in (diff.added or {}).items():
        table.add_row("[green]+ added[/green]", name, "", _format_package(info))
    for name, update in (diff.updated or {}).items():
        table.add_row(
            "[yellow]~ updated[/yellow]",
            name,
            _format_package(update.local),
            _format_package(update.backup),
        )
    for name, info in (diff.deleted or {}).items():
        table.add_row("[red]- deleted[/red]", name, _format_package(info), "")

    console.print(table)


def display_files_diff(diff: FilesDiff, console: Console, show_patches: bool = True) -> None:
    console.print("\n[bold]Files[/bold]")
    for bucket, (label, style) in BUCKET_STYLES.items():
        for name, entry in (getattr(diff, bucket) or {}).items():
            console.print(f"  [{style}]{label}[/{style}] {name} [dim]{entry.path}[/dim]")
            if bucket == "updated" and show_patches:
                console.print(Syntax(entry.content, "diff", theme="ansi_dark", background_color="default"))


def display_diff(
    diff: DiffResult,
    console: Console,
    backup_time: Optional[str] = None,
    show_patches: bool = True,
) -> None:
    """Display a diff between this machine and the backup.

    Args:
        diff: Diff to render
        console: Rich console for output
        backup_time: Commit time of the backup revision, if known
        show_patches: If True, print unified diffs for updated files
    """
    if backup_time:
        console.print(
            f"[bold]Backup:[/bold] {format_iso_date(backup_time)} [dim]({humanize_date(backup_time)})[/dim]"
        )

    if not diff.has_changes:
        console.print("[green]✓ Your settings are synchronized.[/green]")
        return

    console.print(f"[yellow]⚠ {diff.summary()}[/yellow]")
    if diff.settings:
        display_settings_diff(diff.settings, console)
    if diff.packages:
        display_packages_diff(diff.packages, console)
    if diff.files:
        display_files_diff(diff.files, console, show_patches=show_patches)
