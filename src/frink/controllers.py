"""Controllers for frink CLI commands."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import rich_click as click

from frink.agent import Orchestrator, RunCallbacks, RunOutcome
from frink.config import (
    API_KEY_VARIABLES,
    CONFIG_DIR_NAME,
    SUPPORTED_PROVIDERS,
    ConfigError,
    EnvironmentSettings,
    Settings,
    has_any_api_key,
    load_environment,
    save_config,
)
from frink.context import ClickPrompter, HumanPrompter, RunContext
from frink.providers import MODEL_CATALOGUE, ModelProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Settings, RunContext], ModelProvider]

_DIVIDER = "-" * 50
_PROVIDER_LABELS = {"openai": "OpenAI", "anthropic": "Anthropic"}


@dataclass(slots=True)
class RunTaskCommand:
    """CLI input for one task run."""

    task: str | None
    working_dir: Path | None
    prompt_path: Path | None
    task_file: Path | None


@dataclass(slots=True)
class SetupCommand:
    """CLI input for the configuration wizard."""

    force: bool = True
    base_dir: Path | None = None


@dataclass(slots=True)
class TaskDefinition:
    """Task text plus optional pre-defined ledger entries."""

    prompt: str
    tasks: list[str] = field(default_factory=list)


def load_task_file(path: Path) -> TaskDefinition:
    """Read ``--file``: plain text is the task, ``.json`` may pre-define tasks."""

    try:
        content = path.read_text("utf-8")
    except OSError as error:
        raise ConfigError(f"Cannot read task file {path}: {error}") from error
    if path.suffix.lower() != ".json":
        text = content.strip()
        if not text:
            raise ConfigError(f"Task file {path} is empty.")
        return TaskDefinition(prompt=text)
    try:
        raw = json.loads(content)
    except json.JSONDecodeError as error:
        raise ConfigError(f"Task file {path} is not valid JSON: {error}") from error
    if not isinstance(raw, dict):
        raise ConfigError(f"Task file {path} must contain a JSON object.")
    prompt = raw.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise ConfigError(f"Task file {path} needs a non-empty 'prompt'.")
    tasks = raw.get("tasks", [])
    if not isinstance(tasks, list) or not all(isinstance(item, str) for item in tasks):
        raise ConfigError(f"Task file {path}: 'tasks' must be a list of strings.")
    return TaskDefinition(prompt=prompt.strip(), tasks=[item for item in tasks if item.strip()])


def needs_setup(base_dir: Path | None = None) -> bool:
    """True when there is no ``.frink`` directory or no credential at all."""

    if not ((base_dir or Path.cwd()) / CONFIG_DIR_NAME).is_dir():
        return True
    return not has_any_api_key()


class FrinkCliController:
    """Runs tasks and the setup wizard for the CLI layer."""

    def __init__(
        self,
        *,
        prompter: HumanPrompter | None = None,
        provider_factory: ProviderFactory | None = None,
    ) -> None:
        self.prompter = prompter or ClickPrompter()
        self.provider_factory = provider_factory

    def setup(self, command: SetupCommand) -> bool:
        """Interactive provider/model/key wizard; False when cancelled."""

        title = "[Setup] Reconfigure settings" if command.force else "[Setup] First-time configuration"
        click.echo(click.style(f"\n  {title}\n", fg="cyan", bold=True))
        try:
            provider = click.prompt(
                click.style("[1] Select AI provider", fg="cyan"),
                type=click.Choice(list(SUPPORTED_PROVIDERS), case_sensitive=False),
                default=SUPPORTED_PROVIDERS[0],
            )
            choices = MODEL_CATALOGUE[provider]
            for index, choice in enumerate(choices, start=1):
                click.echo(click.style(f"    {index}. {choice.label}", dim=True))
            model_index = click.prompt(
                click.style("[2] Select model", fg="cyan"),
                type=click.IntRange(1, len(choices)),
                default=1,
            )
            api_key = click.prompt(
                click.style(f"[3] Enter {_PROVIDER_LABELS[provider]} API key", fg="cyan"),
                hide_input=True,
            ).strip()
            if not api_key:
                raise click.Abort
        except click.Abort:
            return False

        model = choices[model_index - 1].id
        saved = save_config(
            provider=provider,
            model=model,
            api_key=api_key,
            base_dir=command.base_dir,
        )
        os.environ[API_KEY_VARIABLES[provider]] = api_key
        logger.info("Saved configuration to %s", saved)
        click.echo(click.style(f"\n  Saved to {saved}/", dim=True))
        click.echo(click.style(f"  Add {CONFIG_DIR_NAME}/.env to .gitignore!\n", dim=True))
        return True

    def run(self, command: RunTaskCommand) -> int:
        """Run one task end to end and return the process exit code."""

        load_environment(command.working_dir)

        if needs_setup():
            if not self.setup(SetupCommand(force=False)):
                click.echo(click.style("\n  Setup cancelled.\n", dim=True))
                return 0
        if not has_any_api_key():
            click.echo(click.style("  [!!] No API key found", fg="red"))
            click.echo(click.style("  Run 'frink setup' to configure.\n", dim=True))
            return 1

        try:
            definition = self._resolve_task(command)
            env = EnvironmentSettings.from_env()
        except ConfigError as error:
            click.echo(click.style(f"  [!!] {error}", fg="red"))
            return 1
        if definition is None:
            click.echo(click.style("\n  Cancelled.\n", dim=True))
            return 0

        working_dir = (command.working_dir or env.working_directory or Path.cwd()).resolve()
        _show_disclaimer()
        _show_task_status(definition.prompt, working_dir)
        if command.task is None and command.task_file is None and not self._confirm_start():
            click.echo(click.style("\n  Cancelled.\n", dim=True))
            return 0

        try:
            settings = Settings.load(working_dir=working_dir, prompt_path=command.prompt_path)
            settings.validate()
            context = RunContext(working_directory=working_dir, prompter=self.prompter)
            provider = (
                self.provider_factory(settings, context) if self.provider_factory else None
            )
            orchestrator = Orchestrator(settings, context, provider=provider)
        except ConfigError as error:
            click.echo(click.style(f"\n  [!!] Error: {error}\n", fg="red"))
            return 1

        click.echo(click.style(_DIVIDER, dim=True))
        click.echo(click.style(f"  [*] Provider: {orchestrator.provider_name}", dim=True))
        click.echo(click.style(f"  [*] Model: {orchestrator.model_name}", dim=True))
        click.echo(click.style("\n  [*] Starting Frink Loop", fg="cyan", bold=True))
        click.echo(click.style("      (ctrl+c to interrupt)\n", dim=True))

        outcome = asyncio.run(
            orchestrator.run(
                definition.prompt,
                predefined_tasks=definition.tasks,
                callbacks=_terminal_callbacks(),
            ),
        )
        _show_result(outcome)
        click.echo(click.style("\n  [*] Frink Loop complete\n", dim=True))
        return 0

    def _resolve_task(self, command: RunTaskCommand) -> TaskDefinition | None:
        if command.task_file is not None:
            return load_task_file(command.task_file)
        if command.task:
            return TaskDefinition(prompt=command.task)
        try:
            task = click.prompt(click.style("[>] Task", fg="cyan"), default="", show_default=False)
        except click.Abort:
            return None
        task = task.strip()
        return TaskDefinition(prompt=task) if task else None

    def _confirm_start(self) -> bool:
        try:
            return self.prompter.confirm("[*] Start Frink?", default=True)
        except click.Abort:
            return False


def _terminal_callbacks() -> RunCallbacks:
    return RunCallbacks(
        on_text_delta=lambda text: click.echo(click.style(text, dim=True), nl=False),
        on_tool_call=lambda name, _args: click.echo(
            click.style(f"\n  [Frink] {name}", fg="cyan", bold=True),
        ),
        on_error=lambda message: click.echo(click.style(f"\n  [!!] Error: {message}", fg="red")),
    )


def _show_disclaimer() -> None:
    click.echo(click.style("  [!] WARNING: YOLO MODE ENABLED", fg="yellow", bold=True))
    click.echo(click.style("  Frink will auto-accept all actions without confirmation.", dim=True))
    click.echo(click.style("  This includes file edits and command execution.", dim=True))
    click.echo(click.style("  By continuing, you accept all risks.\n", dim=True))


def _show_task_status(task: str, working_dir: Path) -> None:
    click.echo(click.style("  [Config]", fg="cyan", bold=True))
    click.echo(click.style(f"  Task:      {task}", dim=True))
    click.echo(click.style(f"  Directory: {working_dir}\n", dim=True))


def _show_result(outcome: RunOutcome) -> None:
    click.echo("")
    click.echo(click.style("  " + "=" * 50, dim=True))
    if outcome.success:
        click.echo(click.style("  [OK] Task completed", fg="green", bold=True))
    else:
        click.echo(click.style("  [!!] Task not completed", fg="red", bold=True))
    if outcome.error is not None:
        if outcome.rate_limited:
            click.echo(click.style("  [!!] Rate limited - wait and try again", dim=True))
        else:
            click.echo(click.style(f"  [!!] {outcome.error}", dim=True))
    if outcome.preview:
        click.echo(click.style(f"  Summary: {outcome.preview}", dim=True))
    click.echo(click.style(f"  Claude calls: {outcome.call_count}", dim=True))
    click.echo(click.style("  " + "=" * 50, dim=True))
