"""User notifications.

The sync flows report through a ``Notifier`` so the same code can drive a
terminal, an editor UI, or a recording fake in tests.
"""

from typing import Optional, Protocol

from rich.console import Console


class ProgressHandle(Protocol):
    """An in-progress indicator that must be dismissed when the work ends."""

    def dismiss(self) -> None:
        ...


class Notifier(Protocol):
    """Notification interface used by the sync flows."""

    def info(self, message: str, detail: Optional[str] = None) -> None:
        ...

    def success(self, message: str, detail: Optional[str] = None) -> None:
        ...

    def warning(self, message: str, detail: Optional[str] = None) -> None:
        ...

    def error(self, message: str, detail: Optional[str] = None, dismissable: bool = False) -> None:
        ...

    def progress(self, message: str) -> ProgressHandle:
        """Show an indicator for one in-flight item."""
        ...


class _ConsoleProgress:
    def __init__(self, console: Console, message: str):
        self._console = console
        self._message = message
        self.dismissed = False

    def dismiss(self) -> None:
        if not self.dismissed:
            self.dismissed = True
            self._console.print(f"[dim]  done: {self._message}[/dim]")


class ConsoleNotifier:
    """Notifier printing to a rich console."""

    def __init__(self, console: Optional[Console] = None, verbose: bool = True):
        self.console = console or Console()
        self.verbose = verbose

    def _print(self, prefix: str, message: str, detail: Optional[str]) -> None:
        self.console.print(f"{prefix} {message}")
        if detail:
            self.console.print(f"  [dim]{detail}[/dim]")

    def info(self, message: str, detail: Optional[str] = None) -> None:
        self._print("[cyan]ℹ[/cyan]", message, detail)

    def success(self, message: str, detail: Optional[str] = None) -> None:
        self._print("[green]✓[/green]", message, detail)

    def warning(self, message: str, detail: Optional[str] = None) -> None:
        self._print("[yellow]⚠[/yellow]", message, detail)

    def error(self, message: str, detail: Optional[str] = None, dismissable: bool = False) -> None:
        self._print("[red]✗[/red]", message, detail)

    def progress(self, message: str) -> ProgressHandle:
        if self.verbose:
            self.console.print(f"[dim]  {message}...[/dim]")
        return _ConsoleProgress(self.console, message) if self.verbose else _SilentProgress()


class _SilentProgress:
    def dismiss(self) -> None:
        pass
