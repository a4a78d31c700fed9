"""Rich CLI output for broll-index, using the Tokyo Night color theme.

Every progress line is a single line prefixed with ``[HH:MM:SS]`` so it
survives line-buffered capture by a job runner.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.style import Style
from rich.table import Table
from rich.text import Text

COLORS = {
    "primary": "#7AA2F7",  # headers, titles
    "success": "#9ECE6A",
    "warning": "#E0AF68",
    "error": "#F7768E",
    "text": "#A9B1D6",
    "muted": "#565F89",
    "accent": "#7DCFFF",
    "border": "#3B4261",
}

STYLE_PRIMARY = Style(color=COLORS["primary"], bold=True)
STYLE_SUCCESS = Style(color=COLORS["success"])
STYLE_WARNING = Style(color=COLORS["warning"])
STYLE_ERROR = Style(color=COLORS["error"])
STYLE_TEXT = Style(color=COLORS["text"])
STYLE_MUTED = Style(color=COLORS["muted"])
STYLE_ACCENT = Style(color=COLORS["accent"], bold=True)


class BrollPrinter:
    """Rich console printer for analysis runs.

    Args:
        enabled: When False every method is a no-op.
        console: Console to print to; a new stdout console by default.
    """

    def __init__(self, enabled: bool = True, console: Console | None = None):
        self.enabled = enabled
        self.console = (console or Console()) if enabled else None

    def _line(self, marker: str, marker_style: Style, message: str, style: Style, detail: str = "") -> None:
        text = Text()
        text.append(f"[{datetime.now():%H:%M:%S}] ", style=STYLE_MUTED)
        text.append(marker, style=marker_style)
        text.append(message, style=style)
        if detail:
            text.append(f"  {detail}", style=STYLE_MUTED)
        self.console.print(text, soft_wrap=True)

    def print_header(self, command: str, config: dict[str, Any]) -> None:
        """Print a configuration panel for the current command."""
        if not self.enabled:
            return

        title = Text()
        title.append("◆ ", style=STYLE_ACCENT)
        title.append("broll-index", style=STYLE_PRIMARY)
        title.append(f" ━ {command}", style=STYLE_MUTED)

        table = Table(show_header=False, show_edge=False, box=None, padding=(0, 2), expand=True)
        table.add_column("key", style=STYLE_MUTED, width=16)
        table.add_column("value", style=STYLE_TEXT)
        for key, value in config.items():
            table.add_row(key, Text(str(value), style=STYLE_ACCENT))

        self.console.print()
        self.console.print(Panel(table, title=title, title_align="left", border_style=COLORS["border"], padding=(1, 2)))
        self.console.print()

    def print_step(self, name: str, detail: str = "") -> None:
        """Print a pipeline step indicator."""
        if not self.enabled:
            return
        self._line("▸ ", STYLE_SUCCESS, name, Style(color=COLORS["success"], bold=True), detail)

    def print_step_done(self, name: str, detail: str = "", elapsed: float | None = None) -> None:
        if not self.enabled:
            return
        if elapsed is not None:
            detail = f"{detail}  ({elapsed:.2f}s)" if detail else f"({elapsed:.2f}s)"
        self._line("  ✓ ", STYLE_SUCCESS, name, STYLE_TEXT, detail)

    def print_warning(self, message: str) -> None:
        if not self.enabled:
            return
        self._line("  ! ", STYLE_WARNING, message, STYLE_WARNING)

    def print_error(self, message: str) -> None:
        if not self.enabled:
            return
        self._line("✗ ", STYLE_ERROR, message, STYLE_ERROR)

    def print_final_summary(self, stats: dict[str, Any]) -> None:
        """Print the run summary between two rules."""
        if not self.enabled:
            return

        table = Table(show_header=False, show_edge=False, box=None, padding=(0, 2))
        table.add_column("metric", style=STYLE_MUTED)
        table.add_column("value", style=STYLE_ACCENT)
        for key, value in stats.items():
            table.add_row(key, str(value))

        self.console.print()
        self.console.print(Rule(style=COLORS["border"], characters="═"))
        self.console.print(table, justify="center")
        self.console.print(Rule(style=COLORS["border"], characters="═"))
        self.console.print()
