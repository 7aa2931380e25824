"""Runtime configuration: ``.frink`` directory, secrets file and environment."""

from __future__ import annotations

import json
import logging
import os
import shlex
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".frink"
CONFIG_FILE_NAME = "config.json"
PROMPT_FILE_NAME = "prompt.md"
ENV_FILE_NAME = ".env"

SUPPORTED_PROVIDERS: tuple[str, ...] = ("openai", "anthropic")
API_KEY_VARIABLES: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096
DEFAULT_MAX_ITERATIONS = 50

BUILTIN_TOOL_NAMES: tuple[str, ...] = (
    "send_to_claude",
    "todo_write",
    "todo_read",
    "todo_add",
    "todo_update",
    "todo_remove",
    "git_status",
    "read_file",
    "mark_task_complete",
    "reset_claude_session",
)
DEFAULT_ASSISTANT_TIMEOUT_SECONDS = 300.0


class ConfigError(ValueError):
    """Fatal configuration problem reported before any session starts."""


@dataclass(slots=True, frozen=True)
class CustomToolParameter:
    """One named argument of a config-declared tool."""

    name: str
    description: str = ""
    required: bool = False


@dataclass(slots=True, frozen=True)
class CustomToolConfig:
    """Shell-command tool declared in ``config.json``."""

    name: str
    description: str
    command: str
    parameters: tuple[CustomToolParameter, ...] = ()


@dataclass(slots=True)
class FrinkConfig:
    """Options recognized in ``config.json``; missing keys keep defaults."""

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int | None = None
    custom_tools: tuple[CustomToolConfig, ...] = ()

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> FrinkConfig:
        defaults = cls()
        provider = raw.get("provider", defaults.provider)
        if provider not in SUPPORTED_PROVIDERS:
            raise ConfigError(
                f"Unknown provider: {provider!r}. Expected one of: {', '.join(SUPPORTED_PROVIDERS)}",
            )
        model = raw.get("model", defaults.model)
        if not isinstance(model, str) or not model.strip():
            raise ConfigError("config.model must be a non-empty string")
        temperature = raw.get("temperature", defaults.temperature)
        if isinstance(temperature, bool) or not isinstance(temperature, int | float):
            raise ConfigError("config.temperature must be a number")
        max_tokens = raw.get("maxTokens", defaults.max_tokens)
        if max_tokens is not None and (
            isinstance(max_tokens, bool) or not isinstance(max_tokens, int)
        ):
            raise ConfigError("config.maxTokens must be an integer")
        return cls(
            provider=provider,
            model=model,
            temperature=float(temperature),
            max_tokens=max_tokens,
            custom_tools=_parse_custom_tools(raw.get("customTools", [])),
        )


@dataclass(slots=True)
class EnvironmentSettings:
    """Process-environment options."""

    debug: bool = False
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    working_directory: Path | None = None
    assistant_command: tuple[str, ...] = ("claude",)
    assistant_timeout_seconds: float = DEFAULT_ASSISTANT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> EnvironmentSettings:
        working_dir = _first_env("FRINK_WORKING_DIRECTORY", "WORKING_DIRECTORY")
        command = shlex.split(os.getenv("FRINK_ASSISTANT_COMMAND", "claude"))
        if not command:
            raise ConfigError("FRINK_ASSISTANT_COMMAND must not be empty.")
        return cls(
            debug=(
                _env_bool("FRINK_DEBUG", default=False)
                or os.getenv("DEBUG", "").strip().lower() in {"1", "true"}
            ),
            max_iterations=_env_int(
                "FRINK_MAX_ITERATIONS",
                fallback_name="MAX_ITERATIONS",
                default=DEFAULT_MAX_ITERATIONS,
            ),
            working_directory=Path(working_dir) if working_dir else None,
            assistant_command=tuple(command),
            assistant_timeout_seconds=float(
                _env_int(
                    "FRINK_ASSISTANT_TIMEOUT_SECONDS",
                    default=int(DEFAULT_ASSISTANT_TIMEOUT_SECONDS),
                ),
            ),
        )


@dataclass(slots=True)
class Settings:
    """Everything a run needs, grouped by source."""

    config: FrinkConfig = field(default_factory=FrinkConfig)
    env: EnvironmentSettings = field(default_factory=EnvironmentSettings)
    system_prompt: str | None = None

    @classmethod
    def load(
        cls,
        *,
        working_dir: Path | None = None,
        prompt_path: Path | None = None,
    ) -> Settings:
        """Load config file, prompt override and environment for one run."""

        return cls(
            config=load_config(working_dir),
            env=EnvironmentSettings.from_env(),
            system_prompt=load_prompt_override(prompt_path, working_dir),
        )

    def validate(self) -> None:
        if self.env.max_iterations <= 0:
            raise ConfigError("FRINK_MAX_ITERATIONS must be > 0.")
        if self.env.assistant_timeout_seconds <= 0:
            raise ConfigError("FRINK_ASSISTANT_TIMEOUT_SECONDS must be > 0.")
        if self.config.max_tokens is not None and self.config.max_tokens <= 0:
            raise ConfigError("config.maxTokens must be > 0.")
        check_custom_tool_names(self.config.custom_tools)
        if not api_key_for(self.config.provider):
            raise ConfigError(
                f"No API key for {self.config.provider}. Run 'frink setup'.",
            )


def config_search_paths(working_dir: Path | None = None) -> list[Path]:
    paths: list[Path] = []
    if working_dir is not None:
        paths.append(working_dir / CONFIG_DIR_NAME)
    cwd_dir = Path.cwd() / CONFIG_DIR_NAME
    if cwd_dir not in paths:
        paths.append(cwd_dir)
    return paths


def env_search_paths(working_dir: Path | None = None) -> list[Path]:
    cwd = Path.cwd()
    paths = [cwd / ENV_FILE_NAME, cwd / CONFIG_DIR_NAME / ENV_FILE_NAME]
    if working_dir is not None:
        paths.extend(
            [working_dir / ENV_FILE_NAME, working_dir / CONFIG_DIR_NAME / ENV_FILE_NAME],
        )
    return paths


def load_environment(working_dir: Path | None = None) -> Path | None:
    """Load the first secrets file found; existing variables always win."""

    for path in env_search_paths(working_dir):
        if not path.is_file():
            continue
        for key, value in dotenv_values(path).items():
            if value is not None and not os.environ.get(key):
                os.environ[key] = value
        logger.debug("Loaded environment from %s", path)
        return path
    return None


def load_config(working_dir: Path | None = None) -> FrinkConfig:
    for base in config_search_paths(working_dir):
        path = base / CONFIG_FILE_NAME
        try:
            raw = json.loads(path.read_text("utf-8"))
        except FileNotFoundError:
            continue
        except (OSError, json.JSONDecodeError) as error:
            logger.debug("Skipping unreadable config %s: %s", path, error)
            continue
        if not isinstance(raw, dict):
            logger.debug("Skipping config %s: top-level value is not an object", path)
            continue
        logger.debug("Loaded config from %s", path)
        return FrinkConfig.from_payload(raw)
    return FrinkConfig()


def load_prompt_override(
    prompt_path: Path | None = None,
    working_dir: Path | None = None,
) -> str | None:
    candidates: list[Path] = []
    if prompt_path is not None:
        candidates.append(prompt_path)
    candidates.extend(base / PROMPT_FILE_NAME for base in config_search_paths(working_dir))
    for path in candidates:
        try:
            return path.read_text("utf-8")
        except OSError:
            continue
    return None


def api_key_for(provider: str) -> str | None:
    try:
        variable = API_KEY_VARIABLES[provider]
    except KeyError as error:
        raise ConfigError(f"Unknown provider: {provider!r}") from error
    return os.environ.get(variable) or None


def has_any_api_key() -> bool:
    return any(os.environ.get(variable) for variable in API_KEY_VARIABLES.values())


def save_config(*, provider: str, model: str, api_key: str, base_dir: Path | None = None) -> Path:
    """Write ``.frink/.env`` and ``.frink/config.json``; return the directory."""

    if provider not in API_KEY_VARIABLES:
        raise ConfigError(f"Unknown provider: {provider!r}")
    frink_dir = (base_dir or Path.cwd()) / CONFIG_DIR_NAME
    frink_dir.mkdir(parents=True, exist_ok=True)
    (frink_dir / ENV_FILE_NAME).write_text(
        f"# Frink Loop API Key\n{API_KEY_VARIABLES[provider]}={api_key}\n",
        "utf-8",
    )
    payload = {
        "provider": provider,
        "model": model,
        "temperature": DEFAULT_TEMPERATURE,
        "maxTokens": DEFAULT_MAX_TOKENS,
    }
    (frink_dir / CONFIG_FILE_NAME).write_text(json.dumps(payload, indent=2), "utf-8")
    return frink_dir


def _parse_custom_tools(raw: Any) -> tuple[CustomToolConfig, ...]:
    if not isinstance(raw, list):
        raise ConfigError("config.customTools must be an array")
    tools: list[CustomToolConfig] = []
    for index, entry in enumerate(raw):
        where = f"config.customTools[{index}]"
        if not isinstance(entry, dict):
            raise ConfigError(f"{where} must be an object")
        name = entry.get("name")
        command = entry.get("command")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"{where}.name must be a non-empty string")
        if not isinstance(command, str) or not command.strip():
            raise ConfigError(f"{where}.command must be a non-empty string")
        raw_params = entry.get("parameters") or []
        if not isinstance(raw_params, list):
            raise ConfigError(f"{where}.parameters must be an array")
        params: list[CustomToolParameter] = []
        for param_index, param in enumerate(raw_params):
            if not isinstance(param, dict) or not isinstance(param.get("name"), str):
                raise ConfigError(f"{where}.parameters[{param_index}].name must be a string")
            params.append(
                CustomToolParameter(
                    name=param["name"],
                    description=str(param.get("description", "")),
                    required=bool(param.get("required", False)),
                ),
            )
        tools.append(
            CustomToolConfig(
                name=name,
                description=str(entry.get("description", "")),
                command=command,
                parameters=tuple(params),
            ),
        )
    check_custom_tool_names(tools)
    return tuple(tools)


def check_custom_tool_names(tools: Iterable[CustomToolConfig]) -> None:
    """Custom tools may not shadow a built-in or share a name with each other."""

    seen: set[str] = set()
    for tool in tools:
        if tool.name in BUILTIN_TOOL_NAMES:
            raise ConfigError(f"Custom tool {tool.name!r} conflicts with a built-in tool")
        if tool.name in seen:
            raise ConfigError(f"Custom tool {tool.name!r} is declared more than once")
        seen.add(tool.name)


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def _env_int(name: str, *, default: int, fallback_name: str | None = None) -> int:
    raw = _first_env(name, fallback_name) if fallback_name else _first_env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ConfigError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid boolean value for {name}: {value!r}")
