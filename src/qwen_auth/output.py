"""Terminal output for the ``qwen-auth`` CLI.

Primary data (status tables, JSON) goes to **stdout**; everything else
(device-code instructions, progress, warnings, errors) goes to **stderr**
so that ``qwen-auth auth status --json | jq`` stays parseable.

Rich formatting is used when stdout is an interactive terminal and colour
is not disabled by ``NO_COLOR``, ``TERM=dumb`` or ``--no-color``.

:class:`OutputManager` holds the preferences; it is created in
:func:`~qwen_auth.app.main_callback` and installed with :func:`set_output`.
The module-level helpers (:func:`info`, :func:`error`, ...) delegate to it.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table


class OutputFormat(str, Enum):
    """``AUTO`` resolves to ``RICH`` on an interactive, colour-capable TTY, else ``PLAIN``."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Routes CLI output to stdout or stderr in the selected format.

    Args:
        format: Desired output format.
        no_color: Disable colour and Rich markup.
        quiet: Suppress informational stderr messages.
        verbose: Show debug messages on stderr.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            self._format = (
                OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
            )
        else:
            self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(self._format == OutputFormat.RICH),
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    # -- stdout --

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def print_json(self, data: Any) -> None:
        self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def print_record(self, record: dict[str, Any], title: Optional[str] = None) -> None:
        """Print a single key/value record.

        JSON mode emits the dict as-is; plain mode prints ``key<TAB>value``
        lines; Rich mode renders a two-column table.
        """
        if self._format == OutputFormat.JSON:
            self.print_json(record)
            return
        if self._format == OutputFormat.PLAIN:
            for key, value in record.items():
                self.print_data(f"{key}\t{_cell(value)}")
            return
        grid = Table(title=title, show_header=False, box=None, pad_edge=False)
        grid.add_column(style="bold cyan")
        grid.add_column()
        for key, value in record.items():
            grid.add_row(key, _cell(value))
        self._stdout.print(grid)

    # -- stderr --

    def _emit(self, text: str, markup: Optional[str] = None) -> None:
        """Write one diagnostic line; *markup* is the Rich rendering of *text*."""
        if self._no_color:
            _write_stderr(text)
        else:
            self._stderr.print(markup if markup is not None else text)

    def instructions(self, verification_uri: str, user_code: str) -> None:
        """Show device-flow login instructions. Shown even with ``--quiet``."""
        if self._no_color or self._format != OutputFormat.RICH:
            _write_stderr(f"Open {verification_uri} and enter code: {user_code}")
            return
        self._stderr.print(
            Panel(
                f"Open [link={verification_uri}]{verification_uri}[/link]\n"
                f"and enter code [bold yellow]{user_code}[/bold yellow]",
                title="Qwen login",
                expand=False,
            )
        )

    def info(self, message: str) -> None:
        if not self._quiet:
            self._emit(message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._emit(message, f"[green]{message}[/green]")

    def warning(self, message: str) -> None:
        self._emit(f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self._emit(f"Error: {message}", f"[bold red]Error:[/bold red] {message}")

    def suggest(self, message: str) -> None:
        if not self._quiet:
            self._emit(f"→ {message}", f"[dim]→ {message}[/dim]")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._emit(f"[debug] {message}", f"[dim]\\[debug] {message}[/dim]")


def _write_stderr(text: str) -> None:
    sys.stderr.write(text + "\n")
    sys.stderr.flush()


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value) or "-"
    return str(value)


def _is_tty() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def _should_disable_color() -> bool:
    """``NO_COLOR`` (any value, even empty) or ``TERM=dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """The installed :class:`OutputManager`, or a default one created on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: Optional[OutputManager]) -> None:
    """Install *output* globally; ``None`` resets to the lazy default."""
    global _output
    _output = output


def reset_output() -> None:
    set_output(None)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def error(message: str) -> None:
    get_output().error(message)
