"""Terminal rendering for the ledger and for assistant call progress."""

from __future__ import annotations

from collections.abc import Callable

import rich_click as click

from frink.ledger import STATUS_ICONS, Task, TaskSummary

_MAX_VISIBLE_LINES = 5
_MAX_LINE_WIDTH = 80
_CLEAR_LINE_UP = "\x1b[1A\x1b[2K"


def format_elapsed(seconds: float) -> str:
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


def _muted(text: str) -> str:
    return click.style(text, dim=True)


def _primary(text: str) -> str:
    return click.style(text, fg="cyan", bold=True)


class TerminalRenderer:
    """Draws ledger snapshots in place and tails assistant output.

    ``ledger_lines`` is the cursor state: how many lines the last ledger
    render occupied, so the next render can erase them first.
    """

    def __init__(
        self,
        echo: Callable[[str], None] | None = None,
        *,
        interactive: bool = True,
    ) -> None:
        self._echo = echo or click.echo
        self._interactive = interactive
        self.ledger_lines = 0
        self._tail: list[str] = []
        self._tail_drawn = 0

    def render_ledger(self, tasks: list[Task], summary: TaskSummary) -> None:
        self._echo(self._erase(self.ledger_lines) + _primary(f"  [Todo] {summary.format()}"))
        for task in tasks:
            self._echo(_muted(f"  {STATUS_ICONS[task.status]} {task.task}"))
        self.ledger_lines = len(tasks) + 1

    def call_started(self, call_number: int, prompt: str, command_line: str) -> None:
        preview = prompt[:_MAX_LINE_WIDTH] + ("..." if len(prompt) > _MAX_LINE_WIDTH else "")
        self._echo("")
        self._echo(click.style(f"  [Claude #{call_number}]", fg="magenta", bold=True))
        self._echo(_muted(f"  Prompt: {preview}"))
        self._echo(_muted(f"  Running: {command_line}"))
        self._tail = []
        self._tail_drawn = 0

    def call_output(self, chunk: str) -> None:
        lines = [line for line in chunk.splitlines() if line.strip()]
        if not lines:
            return
        self._tail = (self._tail + lines)[-_MAX_VISIBLE_LINES:]
        prefix = self._erase(self._tail_drawn)
        for line in self._tail:
            if len(line) > _MAX_LINE_WIDTH:
                line = line[: _MAX_LINE_WIDTH - 3] + "..."
            self._echo(prefix + _muted(f"  {line}"))
            prefix = ""
        self._tail_drawn = len(self._tail)

    def call_finished(
        self,
        call_number: int,
        *,
        success: bool,
        timed_out: bool,
        call_seconds: float,
        total_seconds: float,
    ) -> None:
        if timed_out:
            self._echo(_muted("  [!!] Timeout"))
            return
        if success:
            self._echo(
                click.style(f"  [Claude #{call_number} done] ", fg="magenta")
                + _muted(f"{format_elapsed(call_seconds)} | Total: {format_elapsed(total_seconds)}"),
            )
        else:
            self._echo(_muted(f"  [Claude #{call_number} failed] {format_elapsed(call_seconds)}"))

    def notice(self, text: str, *, highlight: bool = False) -> None:
        self._echo(_primary(text) if highlight else _muted(text))

    def reset(self) -> None:
        self.ledger_lines = 0
        self._tail = []
        self._tail_drawn = 0

    def _erase(self, line_count: int) -> str:
        """Escape prefix that moves up over and clears the last ``line_count`` lines."""

        if self._interactive and line_count:
            return _CLEAR_LINE_UP * line_count
        return ""
