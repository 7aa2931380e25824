"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
import rich_click as click

from frink.context import RunContext
from frink.render import TerminalRenderer

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
ECHO_ASSISTANT_COMMAND = (sys.executable, "-m", "frink.echo_assistant")

_ENV_VARIABLES = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "FRINK_MAX_ITERATIONS",
    "MAX_ITERATIONS",
    "FRINK_WORKING_DIRECTORY",
    "WORKING_DIRECTORY",
    "FRINK_ASSISTANT_COMMAND",
    "FRINK_ASSISTANT_TIMEOUT_SECONDS",
    "FRINK_DEBUG",
    "DEBUG",
    "FRINK_ECHO_SLEEP_SECONDS",
    "FRINK_ECHO_EXIT_CODE",
)


class ScriptedPrompter:
    """Answers confirmations from a fixed script and records what was asked."""

    def __init__(
        self,
        confirmations: list[bool] | None = None,
        answers: list[str] | None = None,
        *,
        abort: bool = False,
    ) -> None:
        self.confirmations = list(confirmations or [])
        self.answers = list(answers or [])
        self.abort = abort
        self.asked: list[str] = []

    def confirm(self, message: str, *, default: bool = True) -> bool:
        self.asked.append(message)
        if self.abort:
            raise click.Abort
        return self.confirmations.pop(0) if self.confirmations else default

    def ask(self, message: str) -> str:
        self.asked.append(message)
        return self.answers.pop(0) if self.answers else ""


@pytest.fixture()
def clean_env(monkeypatch, tmp_path: Path) -> Path:
    """Run from an empty directory with no frink-related environment."""

    for name in _ENV_VARIABLES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture()
def rendered() -> list[str]:
    return []


@pytest.fixture()
def renderer(rendered: list[str]) -> TerminalRenderer:
    return TerminalRenderer(echo=rendered.append, interactive=False)


@pytest.fixture()
def prompter() -> ScriptedPrompter:
    return ScriptedPrompter()


@pytest.fixture()
def run_context(
    tmp_path: Path,
    renderer: TerminalRenderer,
    prompter: ScriptedPrompter,
) -> RunContext:
    return RunContext(working_directory=tmp_path, renderer=renderer, prompter=prompter)


@pytest.fixture()
def make_prompter():
    """Factory for prompters with scripted answers."""

    return ScriptedPrompter


@pytest.fixture()
def echo_command(monkeypatch) -> tuple[str, ...]:
    """Command line of the stand-in assistant, importable from a source checkout."""

    existing = os.environ.get("PYTHONPATH")
    paths = [str(SRC_DIR), existing] if existing else [str(SRC_DIR)]
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(paths))
    return ECHO_ASSISTANT_COMMAND
