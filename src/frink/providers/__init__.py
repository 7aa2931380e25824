"""Model providers behind one streaming interface."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from frink.config import ConfigError
from frink.providers.base import (
    MODEL_CATALOGUE,
    AgentResult,
    ErrorEvent,
    MessageEnd,
    MessageStart,
    ModelChoice,
    ModelConfig,
    ModelProvider,
    ProviderRun,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    default_model,
    is_reasoning_model,
)

__all__ = [
    "MODEL_CATALOGUE",
    "AgentResult",
    "ErrorEvent",
    "MessageEnd",
    "MessageStart",
    "ModelChoice",
    "ModelConfig",
    "ModelProvider",
    "ProviderRun",
    "StreamEvent",
    "TextDelta",
    "ToolCall",
    "ToolCallDelta",
    "ToolCallEnd",
    "ToolCallStart",
    "create_provider",
    "default_model",
    "is_reasoning_model",
]


def create_provider(
    config: ModelConfig,
    *,
    working_directory: Path | None = None,
    client: Any | None = None,
) -> ModelProvider:
    """Build the adapter for ``config.provider``.

    ``client`` replaces the SDK entry point: an ``AsyncOpenAI``-like object for
    OpenAI, a ``ClaudeSDKClient``-like factory for Anthropic.
    """

    if config.provider == "openai":
        from frink.providers.openai_provider import OpenAIProvider

        return OpenAIProvider(config, client=client)
    if config.provider == "anthropic":
        from frink.providers.claude_agent_provider import ClaudeAgentProvider

        return ClaudeAgentProvider(
            config,
            working_directory=working_directory,
            client_factory=client,
        )
    raise ConfigError(f"Unknown provider: {config.provider!r}")
