from __future__ import annotations

from rich.console import Console
from rich.text import Text


class StatusReporter:
    """Colored ``[level] message`` status lines on stderr."""

    def __init__(self, *, verbose: bool = False, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True, highlight=False)
        self.verbose_enabled = verbose

    def _emit(self, label: str, style: str, message: str) -> None:
        self.console.print(Text.assemble((f"[{label}]", style), " ", str(message)), soft_wrap=True)

    def info(self, message: str) -> None:
        self._emit("info", "blue", message)

    def success(self, message: str) -> None:
        self._emit("success", "green", message)

    def warning(self, message: str) -> None:
        self._emit("warning", "yellow", message)

    def error(self, message: str) -> None:
        self._emit("error", "bold red", message)

    def verbose(self, message: str) -> None:
        if self.verbose_enabled:
            self._emit("verbose", "cyan", message)
