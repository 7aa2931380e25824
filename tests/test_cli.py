from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from frink import main as cli
from frink.config import ConfigError
from frink.controllers import FrinkCliController, load_task_file
from frink.main import frink
from frink.providers import AgentResult, MessageEnd, MessageStart, ProviderRun, TextDelta

pytestmark = [
    allure.epic("Frink Loop"),
    allure.feature("CLI"),
]


class PlanProvider:
    """Finishes every seeded task, then asks to complete."""

    name = "plan"

    def __init__(self) -> None:
        self.prompts: list[str] = []

    def run(self, system_prompt: str, user_prompt: str, tools) -> ProviderRun:
        self.prompts.append(user_prompt)

        async def produce(stream: ProviderRun):
            yield MessageStart()
            listing = json.loads((await tools.execute("todo_read", {})).to_text())
            for todo in listing["todos"]:
                await tools.execute("todo_update", {"id": todo["id"], "status": "completed"})
            await tools.execute("mark_task_complete", {"summary": "all done", "success": True})
            yield TextDelta("Everything is complete.")
            yield MessageEnd()
            stream.result = AgentResult(success=True, output="Everything is complete.")

        return ProviderRun(produce)

    async def invoke(self, system_prompt: str, user_prompt: str, tools) -> AgentResult:
        return await self.run(system_prompt, user_prompt, tools).collect()


@pytest.fixture()
def configured(clean_env: Path, monkeypatch) -> Path:
    (clean_env / ".frink").mkdir()
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    return clean_env


def test_help_exits_zero() -> None:
    result = CliRunner().invoke(frink, ["--help"])

    assert result.exit_code == 0
    assert "--dir" in result.output
    assert "--file" in result.output


def test_version_option() -> None:
    result = CliRunner().invoke(frink, ["--version"])

    assert result.exit_code == 0
    assert "frink" in result.output


def test_missing_credentials_for_configured_provider_exit_one(configured: Path) -> None:
    (configured / ".frink" / "config.json").write_text('{"provider": "anthropic"}', "utf-8")

    result = CliRunner().invoke(frink, ["fix the build"])

    assert result.exit_code == 1
    assert "No API key for anthropic" in result.output


def test_custom_tool_named_like_builtin_exits_one(configured: Path) -> None:
    (configured / ".frink" / "config.json").write_text(
        json.dumps({"customTools": [{"name": "todo_read", "command": "echo hi"}]}),
        "utf-8",
    )

    result = CliRunner().invoke(frink, ["fix the build"])

    assert result.exit_code == 1
    assert "conflicts with a built-in tool" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)


def test_unreadable_task_file_exits_one(configured: Path) -> None:
    result = CliRunner().invoke(frink, ["--file", str(configured / "missing.txt")])

    assert result.exit_code == 1
    assert "Cannot read task file" in result.output


def test_interactive_prompt_can_be_cancelled(configured: Path) -> None:
    result = CliRunner().invoke(frink, [], input="")

    assert result.exit_code == 0
    assert "Cancelled." in result.output


def test_first_run_offers_setup_and_cancel_exits_zero(clean_env: Path) -> None:
    result = CliRunner().invoke(frink, ["do something"], input="")

    assert result.exit_code == 0
    assert "First-time configuration" in result.output
    assert "Setup cancelled." in result.output


def test_setup_wizard_saves_configuration(clean_env: Path, monkeypatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")

    result = CliRunner().invoke(frink, ["setup"], input="anthropic\n2\nsk-ant-secret\n")

    assert result.exit_code == 0
    assert "Setup complete!" in result.output
    config = json.loads((clean_env / ".frink" / "config.json").read_text("utf-8"))
    assert config["provider"] == "anthropic"
    assert config["model"] == "claude-opus-4-5-20251101"
    assert "ANTHROPIC_API_KEY=sk-ant-secret" in (clean_env / ".frink" / ".env").read_text("utf-8")


def test_task_file_run_reports_success(configured: Path, monkeypatch, make_prompter) -> None:
    provider = PlanProvider()
    controller = FrinkCliController(
        prompter=make_prompter(confirmations=[True]),
        provider_factory=lambda _settings, _context: provider,
    )
    monkeypatch.setattr(cli, "CONTROLLER", controller)
    task_file = configured / "tasks.json"
    task_file.write_text(
        json.dumps({"prompt": "Ship the release", "tasks": ["bump version", "tag"]}),
        "utf-8",
    )

    result = CliRunner().invoke(frink, ["-f", str(task_file), "-d", str(configured)])

    assert result.exit_code == 0, result.output
    assert "[OK] Task completed" in result.output
    assert "Claude calls: 0" in result.output
    assert "Frink Loop complete" in result.output
    assert "1. bump version" in provider.prompts[0]


def test_load_task_file_plain_text(tmp_path: Path) -> None:
    path = tmp_path / "task.md"
    path.write_text("  Refactor the parser  \n", "utf-8")

    definition = load_task_file(path)

    assert definition.prompt == "Refactor the parser"
    assert definition.tasks == []


def test_load_task_file_rejects_bad_task_list(tmp_path: Path) -> None:
    path = tmp_path / "task.json"
    path.write_text(json.dumps({"prompt": "x", "tasks": "one"}), "utf-8")

    with pytest.raises(ConfigError, match="'tasks' must be a list of strings"):
        load_task_file(path)
