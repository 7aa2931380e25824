"""Per-run state shared by tools, the session and the driver."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import rich_click as click

from frink.ledger import TaskLedger
from frink.render import TerminalRenderer
from frink.session import SessionSlot


class HumanPrompter(Protocol):
    """Blocking questions put to the person running Frink.

    Implementations raise ``click.Abort`` when the user interrupts.
    """

    def confirm(self, message: str, *, default: bool = True) -> bool: ...

    def ask(self, message: str) -> str: ...


class ClickPrompter:
    """Terminal prompter backed by click."""

    def confirm(self, message: str, *, default: bool = True) -> bool:
        return click.confirm(click.style(message, fg="cyan"), default=default)

    def ask(self, message: str) -> str:
        return click.prompt(click.style(message, fg="cyan"), default="", show_default=False)


@dataclass(slots=True)
class CompletionReport:
    """Outcome recorded by the completion tool."""

    complete: bool
    success: bool
    summary: str
    user_confirmed: bool


@dataclass(slots=True)
class RunContext:
    """Everything mutable that one task run owns."""

    working_directory: Path
    renderer: TerminalRenderer = field(default_factory=TerminalRenderer)
    prompter: HumanPrompter = field(default_factory=ClickPrompter)
    ledger: TaskLedger = field(default_factory=TaskLedger)
    sessions: SessionSlot = field(default_factory=SessionSlot)
    completion: CompletionReport | None = None

    def __post_init__(self) -> None:
        if self.sessions.renderer is None:
            self.sessions.renderer = self.renderer

    def render_ledger(self) -> None:
        self.renderer.render_ledger(self.ledger.list(), self.ledger.summary())

    def reset(self) -> None:
        """Tear down session, ledger and render state after a run."""

        self.sessions.clear()
        self.ledger.reset()
        self.renderer.reset()
        self.completion = None
