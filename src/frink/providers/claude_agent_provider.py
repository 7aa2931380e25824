"""Anthropic provider backed by the Claude Agent SDK runtime.

The runtime owns the plan/act/observe loop and calls our tools through an
in-process MCP server. This adapter only translates runtime messages into
stream events.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    ResultMessage,
    SdkMcpTool,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
    create_sdk_mcp_server,
)

from frink.providers.base import (
    DEFAULT_TEMPERATURE,
    AgentResult,
    ErrorEvent,
    MessageEnd,
    MessageStart,
    ModelConfig,
    ProviderRun,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallEnd,
    ToolCallStart,
)
from frink.tools.base import ToolDefinition, ToolRegistry

logger = logging.getLogger(__name__)

MCP_SERVER_NAME = "frink"
_MCP_PREFIX = f"mcp__{MCP_SERVER_NAME}__"

# The planner delegates; it must not edit or run things itself.
BLOCKED_BUILTIN_TOOLS: tuple[str, ...] = (
    "Bash",
    "Edit",
    "MultiEdit",
    "Write",
    "NotebookEdit",
    "WebFetch",
    "WebSearch",
    "Task",
    "TodoWrite",
)


def qualified_tool_name(name: str) -> str:
    return f"{_MCP_PREFIX}{name}"


def plain_tool_name(name: str) -> str:
    return name.removeprefix(_MCP_PREFIX)


def to_mcp_tool(tool: ToolDefinition[Any], tools: ToolRegistry) -> SdkMcpTool[Any]:
    """Expose one registry tool to the runtime; failures come back flagged as errors."""

    async def handler(arguments: dict[str, Any]) -> dict[str, Any]:
        try:
            outcome = await tools.execute(tool.name, arguments)
        except Exception as error:  # noqa: BLE001
            logger.warning("Tool %s raised: %s", tool.name, error)
            return {"content": [{"type": "text", "text": f"Error: {error}"}], "is_error": True}
        result: dict[str, Any] = {"content": [{"type": "text", "text": outcome.to_text()}]}
        if outcome.is_error:
            result["is_error"] = True
        return result

    return SdkMcpTool(
        name=tool.name,
        description=tool.description,
        input_schema=tool.input_schema,
        handler=handler,
    )


class ClaudeAgentProvider:
    """Self-driving provider."""

    name = "anthropic"

    def __init__(
        self,
        config: ModelConfig,
        *,
        working_directory: Path | None = None,
        client_factory: Callable[[ClaudeAgentOptions], Any] | None = None,
    ) -> None:
        self.config = config
        self.working_directory = working_directory
        self._client_factory = client_factory or ClaudeSDKClient
        ignored = []
        if config.temperature != DEFAULT_TEMPERATURE:
            ignored.append(f"temperature={config.temperature}")
        if config.max_tokens is not None:
            ignored.append(f"maxTokens={config.max_tokens}")
        if ignored:
            logger.warning(
                "The anthropic provider lets the agent runtime manage sampling; ignoring %s",
                ", ".join(ignored),
            )

    def build_options(self, system_prompt: str, tools: ToolRegistry) -> ClaudeAgentOptions:
        server = create_sdk_mcp_server(
            name=MCP_SERVER_NAME,
            version="1.0.0",
            tools=[to_mcp_tool(tool, tools) for tool in tools],
        )
        return ClaudeAgentOptions(
            system_prompt=system_prompt,
            model=self.config.model,
            mcp_servers={MCP_SERVER_NAME: server},
            allowed_tools=[qualified_tool_name(name) for name in tools.names()],
            disallowed_tools=list(BLOCKED_BUILTIN_TOOLS),
            max_turns=self.config.max_iterations,
            cwd=str(self.working_directory) if self.working_directory else None,
            env={"ANTHROPIC_API_KEY": self.config.api_key},
        )

    def run(self, system_prompt: str, user_prompt: str, tools: ToolRegistry) -> ProviderRun:
        return ProviderRun(lambda stream: self._run_loop(stream, system_prompt, user_prompt, tools))

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: ToolRegistry,
    ) -> AgentResult:
        return await self.run(system_prompt, user_prompt, tools).collect()

    async def _run_loop(
        self,
        stream: ProviderRun,
        system_prompt: str,
        user_prompt: str,
        tools: ToolRegistry,
    ) -> AsyncIterator[StreamEvent]:
        translator = RuntimeTranslator()
        yield MessageStart()
        try:
            async with self._client_factory(self.build_options(system_prompt, tools)) as client:
                await client.query(user_prompt)
                async for message in client.receive_response():
                    for event in translator.translate(message):
                        yield event
        except Exception as error:  # noqa: BLE001
            logger.warning("Claude agent runtime failed: %s", error)
            yield ErrorEvent(str(error))
            stream.result = AgentResult(
                success=False,
                output=str(error),
                tool_calls=translator.tool_calls,
            )
            return

        stream.result = translator.result()
        if not translator.finished:
            yield MessageEnd()


class RuntimeTranslator:
    """Maps Claude Agent SDK messages onto the shared event vocabulary."""

    def __init__(self) -> None:
        self.text = ""
        self.tool_calls: list[ToolCall] = []
        self.finished = False
        self.failed = False
        self.final_output: str | None = None
        self._open_calls: dict[str, ToolCall] = {}

    def translate(self, message: Any) -> list[StreamEvent]:
        if isinstance(message, AssistantMessage):
            return self._assistant(message)
        if isinstance(message, UserMessage):
            return self._tool_results(message)
        if isinstance(message, ResultMessage):
            self.finished = True
            self.failed = bool(message.is_error)
            self.final_output = message.result
            if self.failed:
                return [ErrorEvent(message.result or f"Agent runtime error: {message.subtype}")]
            return [MessageEnd()]
        return []

    def result(self) -> AgentResult:
        output = self.final_output if self.final_output is not None else self.text
        return AgentResult(success=not self.failed, output=output, tool_calls=self.tool_calls)

    def _assistant(self, message: AssistantMessage) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for block in message.content:
            if isinstance(block, TextBlock):
                self.text += block.text
                events.append(TextDelta(block.text))
            elif isinstance(block, ToolUseBlock):
                call = ToolCall(
                    id=block.id,
                    name=plain_tool_name(block.name),
                    arguments=dict(block.input or {}),
                )
                self.tool_calls.append(call)
                self._open_calls[call.id] = call
                events.append(ToolCallStart(id=call.id, name=call.name))
        return events

    def _tool_results(self, message: UserMessage) -> list[StreamEvent]:
        if isinstance(message.content, str):
            return []
        events: list[StreamEvent] = []
        for block in message.content:
            if isinstance(block, ToolResultBlock):
                call = self._open_calls.pop(block.tool_use_id, None)
                if call is not None:
                    events.append(ToolCallEnd(id=call.id, name=call.name, arguments=call.arguments))
        return events
