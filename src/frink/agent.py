"""Orchestration driver: one task, one provider run, one full reset."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from frink.config import ConfigError, Settings, api_key_for, check_custom_tool_names
from frink.context import RunContext
from frink.prompts import (
    SYSTEM_PROMPT,
    build_task_prompt,
    build_task_prompt_with_predefined_tasks,
)
from frink.providers import (
    AgentResult,
    ErrorEvent,
    MessageEnd,
    MessageStart,
    ModelConfig,
    ModelProvider,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    create_provider,
)
from frink.session import SessionConfig
from frink.tools import ToolRegistry, build_registry

logger = logging.getLogger(__name__)

SUMMARY_PREVIEW_CHARS = 200


@dataclass(slots=True)
class RunCallbacks:
    """Optional hooks relaying provider events to the caller."""

    on_text_delta: Callable[[str], None] | None = None
    on_tool_call: Callable[[str, dict[str, Any]], None] | None = None
    on_tool_result: Callable[[str, dict[str, Any]], None] | None = None
    on_error: Callable[[str], None] | None = None


@dataclass(slots=True)
class RunOutcome:
    """What the driver reports once state has been reset."""

    success: bool
    output: str
    call_count: int
    error: str | None = None
    tool_calls: list[str] = field(default_factory=list)

    @property
    def preview(self) -> str:
        return self.output[:SUMMARY_PREVIEW_CHARS]

    @property
    def rate_limited(self) -> bool:
        return self.error is not None and "rate limit" in self.error.lower()


class Orchestrator:
    """Wires settings, provider, tools and the external session for task runs."""

    def __init__(
        self,
        settings: Settings,
        context: RunContext,
        *,
        provider: ModelProvider | None = None,
    ) -> None:
        check_custom_tool_names(settings.config.custom_tools)
        self.settings = settings
        self.context = context
        self.system_prompt = settings.system_prompt or SYSTEM_PROMPT
        self.provider = provider or create_provider(
            self.model_config(),
            working_directory=context.working_directory,
        )

    @property
    def provider_name(self) -> str:
        return self.provider.name

    @property
    def model_name(self) -> str:
        return self.settings.config.model

    def model_config(self) -> ModelConfig:
        config = self.settings.config
        api_key = api_key_for(config.provider)
        if not api_key:
            raise ConfigError(f"No API key for {config.provider}. Run 'frink setup'.")
        return ModelConfig(
            provider=config.provider,
            api_key=api_key,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            max_iterations=self.settings.env.max_iterations,
        )

    def session_config(self) -> SessionConfig:
        env = self.settings.env
        return SessionConfig(
            working_directory=self.context.working_directory,
            unattended=True,
            command=env.assistant_command,
            timeout_seconds=env.assistant_timeout_seconds,
        )

    async def run(
        self,
        task: str,
        *,
        predefined_tasks: Sequence[str] = (),
        callbacks: RunCallbacks | None = None,
    ) -> RunOutcome:
        """Stream one task to completion; state is always reset afterwards."""

        hooks = callbacks or RunCallbacks()

        async def drive(prompt: str, tools: ToolRegistry) -> tuple[AgentResult, str | None]:
            stream = self.provider.run(self.system_prompt, prompt, tools)
            text = ""
            error: str | None = None
            async for event in stream:
                text += _dispatch(event, hooks)
                if isinstance(event, ErrorEvent):
                    error = event.message
            result = stream.result or AgentResult(success=error is None, output=text)
            return result, error

        return await self._execute(task, predefined_tasks, drive, hooks)

    async def invoke(self, task: str, *, predefined_tasks: Sequence[str] = ()) -> RunOutcome:
        """Non-streaming variant of ``run``."""

        async def drive(prompt: str, tools: ToolRegistry) -> tuple[AgentResult, str | None]:
            result = await self.provider.invoke(self.system_prompt, prompt, tools)
            return result, None if result.success else result.output

        return await self._execute(task, predefined_tasks, drive, RunCallbacks())

    async def _execute(
        self,
        task: str,
        predefined_tasks: Sequence[str],
        drive: Callable[[str, ToolRegistry], Any],
        hooks: RunCallbacks,
    ) -> RunOutcome:
        context = self.context
        call_count = 0
        try:
            context.sessions.remember(self.session_config())
            session = context.sessions.get_or_create()
            logger.info(
                "Run started: provider=%s model=%s session=%s",
                self.provider_name,
                self.model_name,
                session.token,
            )
            prompt = self._seed(task, predefined_tasks)
            tools = build_registry(context, self.settings.config.custom_tools)
            try:
                result, error = await drive(prompt, tools)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Run failed")
                message = str(exc) or exc.__class__.__name__
                if hooks.on_error is not None:
                    hooks.on_error(message)
                result, error = AgentResult(success=False, output=message), message

            completion = context.completion
            current = context.sessions.current()
            call_count = current.call_count if current is not None else 0
            success = bool(
                completion is not None
                and completion.complete
                and completion.success
                and completion.user_confirmed,
            )
            logger.info("Run finished: success=%s calls=%d", success, call_count)
            return RunOutcome(
                success=success,
                output=result.output,
                call_count=call_count,
                error=error,
                tool_calls=[call.name for call in result.tool_calls],
            )
        finally:
            context.reset()

    def _seed(self, task: str, predefined_tasks: Sequence[str]) -> str:
        working_dir = self.context.working_directory
        if not predefined_tasks:
            return build_task_prompt(task, working_dir)
        for description in predefined_tasks:
            self.context.ledger.add(description)
        self.context.render_ledger()
        return build_task_prompt_with_predefined_tasks(task, working_dir, list(predefined_tasks))


def _dispatch(event: StreamEvent, hooks: RunCallbacks) -> str:
    """Relay one event to the callbacks; return any text it carried."""

    match event:
        case TextDelta(text=text):
            if hooks.on_text_delta is not None:
                hooks.on_text_delta(text)
            return text
        case ToolCallStart(name=name):
            logger.debug("Tool call started: %s", name)
            if hooks.on_tool_call is not None:
                hooks.on_tool_call(name, {})
        case ToolCallEnd(name=name, arguments=arguments):
            if hooks.on_tool_result is not None:
                hooks.on_tool_result(name, arguments)
        case ErrorEvent(message=message):
            logger.warning("Provider error: %s", message)
            if hooks.on_error is not None:
                hooks.on_error(message)
        case MessageStart() | MessageEnd() | ToolCallDelta():
            pass
    return ""
