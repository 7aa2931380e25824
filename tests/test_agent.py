from __future__ import annotations

import asyncio
from typing import Any

import allure
import pytest

from frink.agent import Orchestrator, RunCallbacks, RunOutcome
from frink.config import ConfigError, CustomToolConfig, EnvironmentSettings, FrinkConfig, Settings
from frink.context import RunContext
from frink.providers import (
    AgentResult,
    ErrorEvent,
    MessageEnd,
    MessageStart,
    ProviderRun,
    TextDelta,
    ToolCallEnd,
    ToolCallStart,
)
from frink.tools import ToolOutcome, ToolRegistry

pytestmark = [
    allure.epic("Frink Loop"),
    allure.feature("Orchestration Driver"),
]


class ScriptedProvider:
    """Calls registry tools in a fixed order, like a model that follows the plan."""

    name = "scripted"

    def __init__(self, calls: list[tuple[str, dict[str, Any]]], *, fail_with: str | None = None):
        self.calls = calls
        self.fail_with = fail_with
        self.prompts: list[str] = []
        self.outcomes: list[ToolOutcome] = []
        self.seen_ledgers: list[int] = []

    def run(self, system_prompt: str, user_prompt: str, tools: ToolRegistry) -> ProviderRun:
        self.prompts.append(user_prompt)

        async def produce(stream: ProviderRun):
            yield MessageStart()
            for index, (name, arguments) in enumerate(self.calls):
                call_id = f"call_{index}"
                yield ToolCallStart(id=call_id, name=name)
                self.outcomes.append(await tools.execute(name, arguments))
                yield ToolCallEnd(id=call_id, name=name, arguments=arguments)
            if self.fail_with is not None:
                raise RuntimeError(self.fail_with)
            yield TextDelta("Finished.")
            yield MessageEnd()
            stream.result = AgentResult(success=True, output="Finished.")

        return ProviderRun(produce)

    async def invoke(self, system_prompt: str, user_prompt: str, tools: ToolRegistry) -> AgentResult:
        return await self.run(system_prompt, user_prompt, tools).collect()


class ErrorProvider(ScriptedProvider):
    def run(self, system_prompt: str, user_prompt: str, tools: ToolRegistry) -> ProviderRun:
        async def produce(stream: ProviderRun):
            yield MessageStart()
            yield ErrorEvent("429: rate limit reached")
            stream.result = AgentResult(success=False, output="429: rate limit reached")

        return ProviderRun(produce)


FINISH_PLAN = [
    ("todo_update", {"id": 1, "status": "in_progress"}),
    ("send_to_claude", {"prompt": "implement the feature"}),
    ("todo_update", {"id": 1, "status": "completed"}),
    ("mark_task_complete", {"summary": "Feature implemented", "success": True}),
]


def _orchestrator(run_context: RunContext, provider, echo_command) -> Orchestrator:
    settings = Settings(
        config=FrinkConfig(),
        env=EnvironmentSettings(assistant_command=echo_command, assistant_timeout_seconds=60.0),
    )
    return Orchestrator(settings, run_context, provider=provider)


def _assert_reset(run_context: RunContext) -> None:
    assert run_context.ledger.list() == []
    assert run_context.ledger.add("first").id == 1
    assert run_context.sessions.current() is None
    assert run_context.sessions.config is None
    assert run_context.renderer.ledger_lines == 0
    assert run_context.completion is None


def test_confirmed_completion_is_success_and_state_is_reset(
    run_context: RunContext,
    make_prompter,
    echo_command,
) -> None:
    run_context.prompter = make_prompter(confirmations=[True])
    provider = ScriptedProvider(FINISH_PLAN)
    tool_calls: list[str] = []
    text: list[str] = []

    outcome = asyncio.run(
        _orchestrator(run_context, provider, echo_command).run(
            "Add a feature",
            predefined_tasks=["write the feature"],
            callbacks=RunCallbacks(
                on_text_delta=text.append,
                on_tool_call=lambda name, _args: tool_calls.append(name),
            ),
        ),
    )

    assert [item.is_error for item in provider.outcomes] == [False] * 4
    assert provider.outcomes[1].payload["success"] is True
    assert provider.outcomes[3].payload["complete"] is True
    assert outcome.success is True
    assert outcome.output == "Finished."
    assert outcome.call_count == 1
    assert outcome.error is None
    assert tool_calls == [name for name, _ in FINISH_PLAN]
    assert text == ["Finished."]
    assert "write the feature" in provider.prompts[0]
    _assert_reset(run_context)


def test_run_without_completion_is_not_success(run_context: RunContext, echo_command) -> None:
    provider = ScriptedProvider([("todo_add", {"tasks": [{"task": "a"}]})])

    outcome = asyncio.run(_orchestrator(run_context, provider, echo_command).run("Task"))

    assert outcome.success is False
    assert outcome.call_count == 0
    assert "## Task\nTask" in provider.prompts[0]
    _assert_reset(run_context)


def test_empty_ledger_cannot_complete(run_context: RunContext, echo_command) -> None:
    provider = ScriptedProvider([("mark_task_complete", {"summary": "nothing", "success": True})])

    outcome = asyncio.run(_orchestrator(run_context, provider, echo_command).run("Task"))

    assert provider.outcomes[0].payload["complete"] is False
    assert outcome.success is False


def test_declined_confirmation_is_not_success(
    run_context: RunContext,
    make_prompter,
    echo_command,
) -> None:
    run_context.prompter = make_prompter(confirmations=[False], answers=["more tests"])
    provider = ScriptedProvider(
        [
            ("todo_write", {"todos": [{"task": "a", "status": "completed"}]}),
            ("mark_task_complete", {"summary": "done", "success": True}),
        ],
    )

    outcome = asyncio.run(_orchestrator(run_context, provider, echo_command).run("Task"))

    assert provider.outcomes[1].payload["userFeedback"] == "more tests"
    assert outcome.success is False


def test_provider_exception_is_reported_and_state_reset(
    run_context: RunContext,
    echo_command,
) -> None:
    provider = ScriptedProvider(
        [("todo_add", {"tasks": [{"task": "a"}]})],
        fail_with="connection dropped",
    )
    errors: list[str] = []

    outcome = asyncio.run(
        _orchestrator(run_context, provider, echo_command).run(
            "Task",
            callbacks=RunCallbacks(on_error=errors.append),
        ),
    )

    assert outcome.success is False
    assert outcome.error == "connection dropped"
    assert errors == ["connection dropped"]
    _assert_reset(run_context)


def test_error_event_is_relayed_with_rate_limit_hint(
    run_context: RunContext,
    echo_command,
) -> None:
    errors: list[str] = []

    outcome = asyncio.run(
        _orchestrator(run_context, ErrorProvider([]), echo_command).run(
            "Task",
            callbacks=RunCallbacks(on_error=errors.append),
        ),
    )

    assert errors == ["429: rate limit reached"]
    assert outcome.rate_limited is True
    assert outcome.success is False


def test_invoke_resets_state(run_context: RunContext, make_prompter, echo_command) -> None:
    run_context.prompter = make_prompter(confirmations=[True])

    outcome = asyncio.run(
        _orchestrator(run_context, ScriptedProvider(FINISH_PLAN), echo_command).invoke(
            "Add a feature",
            predefined_tasks=["write the feature"],
        ),
    )

    assert outcome.success is True
    _assert_reset(run_context)


def test_custom_tool_shadowing_builtin_fails_before_any_session(
    run_context: RunContext,
    echo_command,
) -> None:
    shadow = CustomToolConfig(name="todo_read", description="", command="echo hi")
    settings = Settings(
        config=FrinkConfig(custom_tools=(shadow,)),
        env=EnvironmentSettings(assistant_command=echo_command),
    )

    with pytest.raises(ConfigError, match="conflicts with a built-in tool"):
        Orchestrator(settings, run_context, provider=ScriptedProvider([]))

    assert run_context.sessions.current() is None


def test_outcome_preview_is_truncated() -> None:
    outcome = RunOutcome(success=True, output="x" * 500, call_count=0)

    assert len(outcome.preview) == 200
    assert outcome.rate_limited is False
