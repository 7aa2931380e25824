"""OpenAI chat-completions provider that drives the tool loop itself.

The upstream API only proposes tool calls. This adapter streams each turn,
accumulates the proposed calls, runs them through the registry, appends the
assistant turn and one tool-result message per call, and asks again until a
turn ends with no pending calls.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncOpenAI

from frink.providers.base import (
    AgentResult,
    ErrorEvent,
    MessageEnd,
    MessageStart,
    ModelConfig,
    ProviderRun,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    sampling_options,
)
from frink.tools.base import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _PendingCall:
    id: str
    name: str
    raw_arguments: str = ""

    def parsed_arguments(self) -> dict[str, Any]:
        if not self.raw_arguments.strip():
            return {}
        try:
            parsed = json.loads(self.raw_arguments)
        except json.JSONDecodeError:
            logger.warning("Unparseable arguments for %s: %r", self.name, self.raw_arguments)
            return {}
        return parsed if isinstance(parsed, dict) else {}


@dataclass(slots=True)
class _Turn:
    text: str = ""
    calls: list[_PendingCall] = field(default_factory=list)


class OpenAIProvider:
    """Orchestrator-driven provider."""

    name = "openai"

    def __init__(self, config: ModelConfig, *, client: Any | None = None) -> None:
        self.config = config
        self._client = client or AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)

    def run(self, system_prompt: str, user_prompt: str, tools: ToolRegistry) -> ProviderRun:
        return ProviderRun(lambda stream: self._run_loop(stream, system_prompt, user_prompt, tools))

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: ToolRegistry,
    ) -> AgentResult:
        messages = _initial_messages(system_prompt, user_prompt)
        collected: list[ToolCall] = []
        for _ in range(self.config.max_iterations):
            try:
                response = await self._client.chat.completions.create(
                    **self._request(messages, tools),
                )
            except Exception as error:  # noqa: BLE001
                logger.warning("OpenAI request failed: %s", error)
                return AgentResult(success=False, output=str(error), tool_calls=collected)

            message = response.choices[0].message
            turn = _Turn(text=message.content or "")
            for raw in message.tool_calls or []:
                turn.calls.append(
                    _PendingCall(
                        id=raw.id,
                        name=raw.function.name,
                        raw_arguments=raw.function.arguments or "",
                    ),
                )
            if not turn.calls:
                return AgentResult(success=True, output=turn.text, tool_calls=collected)
            collected.extend(
                ToolCall(id=call.id, name=call.name, arguments=call.parsed_arguments())
                for call in turn.calls
            )
            await self._advance(messages, turn, tools)

        return AgentResult(
            success=False,
            output=_iteration_limit_message(self.config.max_iterations),
            tool_calls=collected,
        )

    async def _run_loop(
        self,
        stream: ProviderRun,
        system_prompt: str,
        user_prompt: str,
        tools: ToolRegistry,
    ) -> AsyncIterator[StreamEvent]:
        messages = _initial_messages(system_prompt, user_prompt)
        collected: list[ToolCall] = []
        yield MessageStart()

        for iteration in range(1, self.config.max_iterations + 1):
            logger.debug("OpenAI turn %d (%d messages)", iteration, len(messages))
            turn = _Turn()
            pending: dict[int, _PendingCall] = {}
            try:
                response = await self._client.chat.completions.create(
                    **self._request(messages, tools),
                    stream=True,
                )
                async for chunk in response:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    if delta.content:
                        turn.text += delta.content
                        yield TextDelta(delta.content)
                    for fragment in delta.tool_calls or []:
                        for event in _absorb_fragment(pending, fragment):
                            yield event
            except Exception as error:  # noqa: BLE001
                logger.warning("OpenAI stream failed: %s", error)
                yield ErrorEvent(str(error))
                stream.result = AgentResult(success=False, output=str(error), tool_calls=collected)
                return

            turn.calls = [pending[index] for index in sorted(pending)]
            for call in turn.calls:
                arguments = call.parsed_arguments()
                collected.append(ToolCall(id=call.id, name=call.name, arguments=arguments))
                yield ToolCallEnd(id=call.id, name=call.name, arguments=arguments)

            if not turn.calls:
                yield MessageEnd()
                stream.result = AgentResult(success=True, output=turn.text, tool_calls=collected)
                return

            await self._advance(messages, turn, tools)

        message = _iteration_limit_message(self.config.max_iterations)
        yield ErrorEvent(message)
        stream.result = AgentResult(success=False, output=message, tool_calls=collected)

    def _request(self, messages: list[dict[str, Any]], tools: ToolRegistry) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            **sampling_options(self.config),
        }
        if len(tools):
            request["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.input_schema,
                    },
                }
                for tool in tools
            ]
        return request

    async def _advance(
        self,
        messages: list[dict[str, Any]],
        turn: _Turn,
        tools: ToolRegistry,
    ) -> None:
        """Append the assistant turn and its tool results to the conversation."""

        messages.append(
            {
                "role": "assistant",
                "content": turn.text or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.raw_arguments or "{}"},
                    }
                    for call in turn.calls
                ],
            },
        )
        for call in turn.calls:
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": await _execute(tools, call),
                },
            )


async def _execute(tools: ToolRegistry, call: _PendingCall) -> str:
    try:
        outcome = await tools.execute(call.name, call.parsed_arguments())
    except Exception as error:  # noqa: BLE001
        logger.warning("Tool %s raised: %s", call.name, error)
        return f"Error: {error}"
    if outcome.is_error:
        return f"Error: {outcome.to_text()}"
    return outcome.to_text()


def _absorb_fragment(pending: dict[int, _PendingCall], fragment: Any) -> list[StreamEvent]:
    events: list[StreamEvent] = []
    function = fragment.function
    call = pending.get(fragment.index)
    if call is None:
        call = _PendingCall(
            id=fragment.id or f"call_{fragment.index}",
            name=(function.name if function is not None else None) or "",
        )
        pending[fragment.index] = call
        events.append(ToolCallStart(id=call.id, name=call.name))
    else:
        if fragment.id:
            call.id = fragment.id
        if function is not None and function.name:
            call.name = function.name
    if function is not None and function.arguments:
        call.raw_arguments += function.arguments
        events.append(ToolCallDelta(id=call.id, partial_arguments=function.arguments))
    return events


def _initial_messages(system_prompt: str, user_prompt: str) -> list[dict[str, Any]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


def _iteration_limit_message(max_iterations: int) -> str:
    return f"Stopped after {max_iterations} model turns without finishing."
