"""Shell-command tools declared in ``config.json``."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from frink.config import CustomToolConfig
from frink.render import TerminalRenderer
from frink.session import ERROR_MARKER, STDERR_MARKER
from frink.tools.base import ToolDefinition, ToolInputError, object_schema

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandResult:
    output: str
    exit_code: int
    success: bool


def render_command(template: str, arguments: dict[str, str]) -> str:
    """Substitute ``{{name}}`` and ``${name}`` placeholders literally."""

    rendered = template
    for key, value in arguments.items():
        pattern = re.compile(r"\{\{" + re.escape(key) + r"\}\}|\$\{" + re.escape(key) + r"\}")
        rendered = pattern.sub(lambda _match, value=value: value, rendered)
    return rendered


async def run_shell_command(command: str, working_directory: Path) -> CommandResult:
    """Run ``bash -c command`` to completion; no timeout is applied."""

    try:
        process = await asyncio.create_subprocess_exec(
            "bash",
            "-c",
            command,
            cwd=str(working_directory),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as error:
        return CommandResult(output=f"{ERROR_MARKER}: {error}", exit_code=1, success=False)

    exit_code = process.returncode if process.returncode is not None else 0
    output = stdout.decode("utf-8", errors="replace")
    errors = stderr.decode("utf-8", errors="replace")
    if errors:
        output += f"\n{STDERR_MARKER}: {errors}"
    return CommandResult(output=output, exit_code=exit_code, success=exit_code == 0)


def build_custom_tools(
    configs: tuple[CustomToolConfig, ...],
    working_directory: Path,
    renderer: TerminalRenderer | None = None,
) -> list[ToolDefinition[dict[str, str]]]:
    return [_build_custom_tool(config, working_directory, renderer) for config in configs]


def _build_custom_tool(
    config: CustomToolConfig,
    working_directory: Path,
    renderer: TerminalRenderer | None,
) -> ToolDefinition[dict[str, str]]:
    known = {param.name for param in config.parameters}
    required = [param.name for param in config.parameters if param.required]

    def parse(raw: dict[str, Any]) -> dict[str, str]:
        missing = [name for name in required if raw.get(name) is None]
        if missing:
            raise ToolInputError(f"missing required parameter(s): {', '.join(missing)}")
        values: dict[str, str] = {}
        for key, value in raw.items():
            if key not in known or value is None:
                continue
            values[key] = value if isinstance(value, str) else json.dumps(value)
        return values

    async def handler(arguments: dict[str, str]) -> dict[str, Any]:
        command = render_command(config.command, arguments)
        logger.info("Custom tool %s: %s", config.name, command)
        if renderer is not None:
            renderer.notice(f"  [Custom Tool: {config.name}]", highlight=True)
            renderer.notice(f"  Command: {config.command}")
            if arguments:
                renderer.notice(f"  Args: {json.dumps(arguments)}")
        result = await run_shell_command(command, working_directory)
        if renderer is not None:
            renderer.notice(
                "  [Completed successfully]"
                if result.success
                else f"  [Failed with exit code {result.exit_code}]",
            )
        return {"success": result.success, "output": result.output, "exitCode": result.exit_code}

    schema = object_schema(
        {
            param.name: {"type": "string", "description": param.description}
            for param in config.parameters
        },
        required,
    )
    return ToolDefinition(
        name=config.name,
        description=config.description,
        input_schema=schema,
        parse=parse,
        handler=handler,
    )
