"""Tools exposed to the planning model."""

from __future__ import annotations

from frink.config import CustomToolConfig
from frink.context import RunContext
from frink.tools.base import (
    ToolDefinition,
    ToolInputError,
    ToolOutcome,
    ToolRegistry,
)
from frink.tools.builtin import build_builtin_tools
from frink.tools.custom import build_custom_tools

__all__ = [
    "ToolDefinition",
    "ToolInputError",
    "ToolOutcome",
    "ToolRegistry",
    "build_registry",
]


def build_registry(
    context: RunContext,
    custom_tools: tuple[CustomToolConfig, ...] = (),
) -> ToolRegistry:
    """Fresh registry for one run: built-ins first, then config-declared tools."""

    tools = build_builtin_tools(context)
    tools.extend(build_custom_tools(custom_tools, context.working_directory, context.renderer))
    return ToolRegistry(tools)
