"""Tool contracts shared by built-in and config-declared tools."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT")
EnumT = TypeVar("EnumT", bound=Enum)


class ToolInputError(ValueError):
    """Tool arguments failed validation; the handler must not run."""


class ToolInput(Protocol):
    """Statically declared input record for one tool."""

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> ToolInput: ...

    @classmethod
    def json_schema(cls) -> dict[str, Any]: ...


@dataclass(slots=True, frozen=True)
class ToolDefinition(Generic[InputT]):
    """Named, validated, side-effecting action exposed to the planning model."""

    name: str
    description: str
    input_schema: dict[str, Any]
    parse: Callable[[dict[str, Any]], InputT]
    handler: Callable[[InputT], Awaitable[dict[str, Any]]]


@dataclass(slots=True)
class ToolOutcome:
    """Result payload of one tool call, as fed back to the model."""

    payload: dict[str, Any]
    is_error: bool = False

    def to_text(self) -> str:
        return json.dumps(self.payload, ensure_ascii=False, default=str)


def define_tool(
    *,
    name: str,
    description: str,
    input_type: type[ToolInput],
    handler: Callable[[Any], Awaitable[dict[str, Any]]],
) -> ToolDefinition[Any]:
    return ToolDefinition(
        name=name,
        description=description,
        input_schema=input_type.json_schema(),
        parse=input_type.from_payload,
        handler=handler,
    )


class ToolRegistry:
    """Name-indexed tool set, rebuilt for every run."""

    def __init__(self, tools: list[ToolDefinition[Any]]) -> None:
        self._tools: dict[str, ToolDefinition[Any]] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name!r}")
            self._tools[tool.name] = tool

    def __iter__(self) -> Iterator[ToolDefinition[Any]]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDefinition[Any] | None:
        return self._tools.get(name)

    async def execute(self, name: str, arguments: dict[str, Any] | None) -> ToolOutcome:
        """Validate and run one tool call.

        Unknown tools and invalid input come back as error outcomes. Handler
        exceptions propagate so the provider loop can report them.
        """

        tool = self._tools.get(name)
        if tool is None:
            return ToolOutcome({"success": False, "error": f"Unknown tool: {name}"}, is_error=True)
        try:
            parsed = tool.parse(arguments or {})
        except ToolInputError as error:
            logger.info("Rejected %s input: %s", name, error)
            return ToolOutcome(
                {"success": False, "error": f"Invalid input for {name}: {error}"},
                is_error=True,
            )
        payload = await tool.handler(parsed)
        return ToolOutcome(payload)


def object_schema(
    properties: dict[str, dict[str, Any]],
    required: list[str] | None = None,
) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def ensure_object(raw: Any, where: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ToolInputError(f"{where} must be an object")
    return raw


def require_str(raw: dict[str, Any], key: str, *, where: str = "input") -> str:
    value = raw.get(key)
    if not isinstance(value, str):
        raise ToolInputError(f"{where}.{key} must be a string")
    return value


def require_int(raw: dict[str, Any], key: str, *, where: str = "input") -> int:
    value = raw.get(key)
    # Some models send integral floats for integer fields.
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ToolInputError(f"{where}.{key} must be an integer")
    return value


def require_bool(raw: dict[str, Any], key: str, *, where: str = "input") -> bool:
    value = raw.get(key)
    if not isinstance(value, bool):
        raise ToolInputError(f"{where}.{key} must be a boolean")
    return value


def require_list(raw: dict[str, Any], key: str, *, where: str = "input") -> list[Any]:
    value = raw.get(key)
    if not isinstance(value, list):
        raise ToolInputError(f"{where}.{key} must be an array")
    return value


def require_choice(
    raw: dict[str, Any],
    key: str,
    enum_type: type[EnumT],
    *,
    allowed: tuple[EnumT, ...] | None = None,
    default: EnumT | None = None,
    where: str = "input",
) -> EnumT:
    choices = allowed or tuple(enum_type)
    value = raw.get(key)
    if value is None and default is not None:
        return default
    for choice in choices:
        if value == choice.value:
            return choice
    options = ", ".join(choice.value for choice in choices)
    raise ToolInputError(f"{where}.{key} must be one of: {options}")
