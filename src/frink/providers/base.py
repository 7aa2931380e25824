"""Provider-neutral stream events, results and the provider protocol."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from frink.tools.base import ToolRegistry

DEFAULT_MAX_TOKENS = 4096
REASONING_MAX_TOKENS = 16384
DEFAULT_TEMPERATURE = 0.7

REASONING_MODEL_PREFIXES: tuple[str, ...] = ("gpt-5", "o1", "o3", "o4")


@dataclass(slots=True, frozen=True)
class MessageStart:
    pass


@dataclass(slots=True, frozen=True)
class TextDelta:
    text: str


@dataclass(slots=True, frozen=True)
class ToolCallStart:
    id: str
    name: str


@dataclass(slots=True, frozen=True)
class ToolCallDelta:
    id: str
    partial_arguments: str


@dataclass(slots=True, frozen=True)
class ToolCallEnd:
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(slots=True, frozen=True)
class MessageEnd:
    pass


@dataclass(slots=True, frozen=True)
class ErrorEvent:
    message: str


StreamEvent = (
    MessageStart | TextDelta | ToolCallStart | ToolCallDelta | ToolCallEnd | MessageEnd | ErrorEvent
)


@dataclass(slots=True, frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(slots=True)
class AgentResult:
    """Final outcome of one ``run``/``invoke``."""

    success: bool
    output: str
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ModelConfig:
    provider: str
    api_key: str
    model: str
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int | None = None
    max_iterations: int = 50
    base_url: str | None = None


class ProviderRun:
    """Async iterator of stream events; ``result`` is filled in when the stream ends."""

    def __init__(self, produce: Callable[[ProviderRun], AsyncIterator[StreamEvent]]) -> None:
        self.result: AgentResult | None = None
        self._events = produce(self)

    def __aiter__(self) -> ProviderRun:
        return self

    async def __anext__(self) -> StreamEvent:
        return await self._events.__anext__()

    async def collect(self) -> AgentResult:
        """Drain the stream and return the final result."""

        async for _ in self:
            pass
        if self.result is None:
            return AgentResult(success=False, output="Provider stream ended without a result.")
        return self.result


class ModelProvider(Protocol):
    """One interface over both provider control-flow styles."""

    name: str

    def run(self, system_prompt: str, user_prompt: str, tools: ToolRegistry) -> ProviderRun: ...

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: ToolRegistry,
    ) -> AgentResult: ...


def is_reasoning_model(model: str) -> bool:
    """Reasoning models reject ``temperature`` and need a larger output ceiling."""

    return model.startswith(REASONING_MODEL_PREFIXES)


def sampling_options(config: ModelConfig) -> dict[str, Any]:
    """Request options honoring the reasoning-model distinction."""

    if is_reasoning_model(config.model):
        return {"max_completion_tokens": config.max_tokens or REASONING_MAX_TOKENS}
    return {
        "max_tokens": config.max_tokens or DEFAULT_MAX_TOKENS,
        "temperature": config.temperature,
    }


@dataclass(slots=True, frozen=True)
class ModelChoice:
    id: str
    label: str


# First entry per provider is its default.
MODEL_CATALOGUE: dict[str, tuple[ModelChoice, ...]] = {
    "openai": (
        ModelChoice("gpt-5.2", "GPT-5.2 (recommended)"),
        ModelChoice("gpt-5.2-pro", "GPT-5.2 Pro"),
        ModelChoice("gpt-5", "GPT-5"),
        ModelChoice("gpt-5-mini", "GPT-5 Mini"),
        ModelChoice("gpt-5-nano", "GPT-5 Nano"),
        ModelChoice("gpt-4.1", "GPT-4.1"),
        ModelChoice("gpt-4.1-mini", "GPT-4.1 Mini"),
        ModelChoice("gpt-4o", "GPT-4o"),
        ModelChoice("gpt-4o-mini", "GPT-4o Mini"),
    ),
    "anthropic": (
        ModelChoice("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5 (recommended)"),
        ModelChoice("claude-opus-4-5-20251101", "Claude Opus 4.5"),
        ModelChoice("claude-haiku-4-5-20251001", "Claude Haiku 4.5"),
        ModelChoice("claude-sonnet-4-20250514", "Claude Sonnet 4"),
        ModelChoice("claude-opus-4-20250514", "Claude Opus 4"),
    ),
}


def default_model(provider: str) -> str:
    return MODEL_CATALOGUE[provider][0].id
