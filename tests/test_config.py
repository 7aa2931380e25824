from __future__ import annotations

import json
import os
from pathlib import Path

import allure
import pytest

from frink.config import (
    ConfigError,
    CustomToolConfig,
    EnvironmentSettings,
    FrinkConfig,
    Settings,
    api_key_for,
    load_config,
    load_environment,
    load_prompt_override,
    save_config,
)

pytestmark = [
    allure.epic("Frink Loop"),
    allure.feature("Configuration"),
]


def _write_config(base: Path, payload) -> Path:
    frink_dir = base / ".frink"
    frink_dir.mkdir(parents=True, exist_ok=True)
    path = frink_dir / "config.json"
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), "utf-8")
    return path


def test_defaults_when_no_config_exists(clean_env: Path) -> None:
    config = load_config(clean_env / "project")

    assert config == FrinkConfig()
    assert (config.provider, config.model, config.temperature) == ("openai", "gpt-4o", 0.7)
    assert config.max_tokens is None
    assert config.custom_tools == ()


def test_working_dir_config_wins_over_cwd(clean_env: Path) -> None:
    project = clean_env / "project"
    _write_config(project, {"provider": "anthropic", "model": "claude-opus-4-20250514"})
    _write_config(clean_env, {"model": "gpt-4.1"})

    config = load_config(project)

    assert config.provider == "anthropic"
    assert config.model == "claude-opus-4-20250514"


def test_invalid_json_falls_through_to_next_location(clean_env: Path) -> None:
    project = clean_env / "project"
    _write_config(project, "{not json")
    _write_config(clean_env, {"model": "gpt-4.1", "maxTokens": 1000})

    config = load_config(project)

    assert config.model == "gpt-4.1"
    assert config.max_tokens == 1000


def test_custom_tools_are_parsed(clean_env: Path) -> None:
    _write_config(
        clean_env,
        {
            "customTools": [
                {
                    "name": "run_tests",
                    "description": "Run one test file",
                    "command": "pytest {{file}}",
                    "parameters": [{"name": "file", "description": "Path", "required": True}],
                },
            ],
        },
    )

    (tool,) = load_config().custom_tools

    assert tool.name == "run_tests"
    assert tool.command == "pytest {{file}}"
    assert tool.parameters[0].required is True


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"provider": "zai"}, "Unknown provider"),
        ({"customTools": {"name": "x"}}, "customTools must be an array"),
        ({"customTools": [{"name": "x"}]}, r"customTools\[0\].command"),
        (
            {"customTools": [{"name": "todo_read", "command": "echo"}]},
            "conflicts with a built-in tool",
        ),
        (
            {"customTools": [{"name": "lint", "command": "a"}, {"name": "lint", "command": "b"}]},
            "declared more than once",
        ),
        ({"maxTokens": "lots"}, "maxTokens must be an integer"),
        ({"temperature": True}, "temperature must be a number"),
    ],
)
def test_invalid_config_values_are_errors(payload: dict, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        FrinkConfig.from_payload(payload)


def test_env_file_strips_quotes_and_skips_comments(clean_env: Path) -> None:
    (clean_env / ".env").write_text(
        "# keys\n\nOPENAI_API_KEY=\"sk-abc\"\nANTHROPIC_API_KEY='sk-2'  # inline\n",
        "utf-8",
    )

    load_environment()

    assert api_key_for("openai") == "sk-abc"
    assert api_key_for("anthropic") == "sk-2"


def test_env_file_never_overrides_existing_variables(clean_env: Path, monkeypatch) -> None:
    (clean_env / ".env").write_text("OPENAI_API_KEY=from-file\nANTHROPIC_API_KEY=ant\n", "utf-8")
    monkeypatch.setenv("OPENAI_API_KEY", "from-shell")

    loaded = load_environment()

    assert loaded == clean_env / ".env"
    assert os.environ["OPENAI_API_KEY"] == "from-shell"
    assert os.environ["ANTHROPIC_API_KEY"] == "ant"


def test_env_file_in_working_dir_frink_folder(clean_env: Path) -> None:
    project = clean_env / "project"
    (project / ".frink").mkdir(parents=True)
    (project / ".frink" / ".env").write_text("ANTHROPIC_API_KEY=ant\n", "utf-8")

    assert load_environment(project) == project / ".frink" / ".env"
    assert api_key_for("anthropic") == "ant"


def test_environment_settings_defaults(clean_env: Path) -> None:
    env = EnvironmentSettings.from_env()

    assert env.max_iterations == 50
    assert env.working_directory is None
    assert env.assistant_command == ("claude",)
    assert env.assistant_timeout_seconds == 300.0
    assert env.debug is False


def test_environment_settings_overrides(clean_env: Path, monkeypatch) -> None:
    monkeypatch.setenv("MAX_ITERATIONS", "12")
    monkeypatch.setenv("WORKING_DIRECTORY", "/srv/app")
    monkeypatch.setenv("FRINK_ASSISTANT_COMMAND", "claude --model opus")
    monkeypatch.setenv("FRINK_ASSISTANT_TIMEOUT_SECONDS", "90")
    monkeypatch.setenv("DEBUG", "true")

    env = EnvironmentSettings.from_env()

    assert env.max_iterations == 12
    assert env.working_directory == Path("/srv/app")
    assert env.assistant_command == ("claude", "--model", "opus")
    assert env.assistant_timeout_seconds == 90.0
    assert env.debug is True


def test_frink_prefixed_variables_take_precedence(clean_env: Path, monkeypatch) -> None:
    monkeypatch.setenv("MAX_ITERATIONS", "12")
    monkeypatch.setenv("FRINK_MAX_ITERATIONS", "3")

    assert EnvironmentSettings.from_env().max_iterations == 3


def test_invalid_integer_is_config_error(clean_env: Path, monkeypatch) -> None:
    monkeypatch.setenv("FRINK_MAX_ITERATIONS", "many")

    with pytest.raises(ConfigError, match="FRINK_MAX_ITERATIONS"):
        EnvironmentSettings.from_env()


def test_validate_requires_provider_key(clean_env: Path) -> None:
    settings = Settings(config=FrinkConfig(provider="anthropic"))

    with pytest.raises(ConfigError, match="No API key for anthropic"):
        settings.validate()


def test_validate_rejects_non_positive_limits(clean_env: Path, monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    settings = Settings(env=EnvironmentSettings(max_iterations=0))

    with pytest.raises(ConfigError, match="FRINK_MAX_ITERATIONS must be > 0"):
        settings.validate()


def test_validate_rejects_custom_tool_shadowing_builtin(clean_env: Path, monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    shadow = CustomToolConfig(name="todo_read", description="", command="echo hi")
    settings = Settings(config=FrinkConfig(custom_tools=(shadow,)))

    with pytest.raises(ConfigError, match="conflicts with a built-in tool"):
        settings.validate()


def test_unknown_provider_key_lookup() -> None:
    with pytest.raises(ConfigError, match="Unknown provider"):
        api_key_for("zai")


def test_save_config_round_trip(clean_env: Path) -> None:
    saved = save_config(provider="anthropic", model="claude-haiku-4-5-20251001", api_key="sk-ant")

    assert saved == clean_env / ".frink"
    assert "ANTHROPIC_API_KEY=sk-ant" in (saved / ".env").read_text("utf-8")
    config = load_config()
    assert config.provider == "anthropic"
    assert config.model == "claude-haiku-4-5-20251001"
    assert config.max_tokens == 4096


def test_prompt_override_prefers_explicit_path(clean_env: Path) -> None:
    (clean_env / ".frink").mkdir()
    (clean_env / ".frink" / "prompt.md").write_text("from folder", "utf-8")
    explicit = clean_env / "custom.md"
    explicit.write_text("explicit", "utf-8")

    assert load_prompt_override(explicit) == "explicit"
    assert load_prompt_override(clean_env / "missing.md") == "from folder"


def test_settings_load_combines_sources(clean_env: Path, monkeypatch) -> None:
    _write_config(clean_env, {"model": "o3"})
    (clean_env / ".frink" / "prompt.md").write_text("be brief", "utf-8")
    monkeypatch.setenv("FRINK_MAX_ITERATIONS", "5")

    settings = Settings.load(working_dir=clean_env)

    assert settings.config.model == "o3"
    assert settings.system_prompt == "be brief"
    assert settings.env.max_iterations == 5
