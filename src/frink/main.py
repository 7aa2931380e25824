"""CLI entrypoint for frink."""

import logging
from pathlib import Path

import rich_click as click
from rich_click import RichGroup

from frink import __version__
from frink.config import ConfigError, EnvironmentSettings
from frink.controllers import FrinkCliController, RunTaskCommand, SetupCommand

click.rich_click.USE_MARKDOWN = True
CONTROLLER = FrinkCliController()

DEFAULT_COMMAND = "run"
_GROUP_OPTIONS = ("--version",)
CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


class TaskGroup(RichGroup):
    """Group whose unknown first argument is a task for the default command."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if not args or (args[0] not in self.commands and args[0] not in _GROUP_OPTIONS):
            args = [DEFAULT_COMMAND, *args]
        return super().parse_args(ctx, args)


@click.group(cls=TaskGroup, context_settings=CONTEXT_SETTINGS)
@click.version_option(version=__version__, prog_name="frink")
def frink() -> None:
    """Frink Loop: a planning model that drives Claude Code to finish a task."""


@frink.command(DEFAULT_COMMAND, context_settings=CONTEXT_SETTINGS)
@click.argument("task", required=False)
@click.option(
    "-d",
    "--dir",
    "working_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Working directory for Claude Code (default: current directory).",
)
@click.option(
    "-p",
    "--prompt",
    "prompt_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Custom system prompt file.",
)
@click.option(
    "-f",
    "--file",
    "task_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Read the task from a file. JSON files may pre-define tasks.",
)
@click.option("--debug", is_flag=True, default=False, help="Verbose diagnostic logging.")
@click.pass_context
def run_task(
    ctx: click.Context,
    task: str | None,
    working_dir: Path | None,
    prompt_path: Path | None,
    task_file: Path | None,
    debug: bool,
) -> None:
    """Run a task. Without TASK or --file, asks for one interactively.

    Use `frink setup` to choose a provider, model and API key.
    """

    _configure_logging(debug or _debug_from_env())
    ctx.exit(
        CONTROLLER.run(
            RunTaskCommand(
                task=task,
                working_dir=working_dir,
                prompt_path=prompt_path,
                task_file=task_file,
            ),
        ),
    )


@frink.command("setup", context_settings=CONTEXT_SETTINGS)
def setup() -> None:
    """Configure provider, model and API key in `.frink/`."""

    if CONTROLLER.setup(SetupCommand(force=True)):
        click.echo(click.style("\n  Setup complete!\n", fg="cyan", bold=True))
    else:
        click.echo(click.style("\n  Setup cancelled.\n", dim=True))


def _debug_from_env() -> bool:
    try:
        return EnvironmentSettings.from_env().debug
    except ConfigError:
        return False


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":  # pragma: no cover
    frink()
