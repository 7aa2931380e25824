"""Resumable session with the external coding assistant CLI.

Each ``send`` spawns a fresh process. The first call registers a new session
token with the assistant, every later call resumes that token, so the
assistant keeps its own conversation context between otherwise stateless
invocations.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from frink.render import TerminalRenderer

logger = logging.getLogger(__name__)

DEFAULT_ASSISTANT_COMMAND = "claude"
DEFAULT_TIMEOUT_SECONDS = 300.0
TIMEOUT_EXIT_CODE = 124
TIMEOUT_MARKER = "[TIMEOUT]"
ERROR_MARKER = "[ERROR]"
STDERR_MARKER = "[STDERR]"

_TERMINATE_GRACE_SECONDS = 2.0
_READ_CHUNK_BYTES = 4096


@dataclass(slots=True, frozen=True)
class SessionConfig:
    """How to launch the assistant; survives session resets."""

    working_directory: Path
    unattended: bool = True
    command: tuple[str, ...] = (DEFAULT_ASSISTANT_COMMAND,)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


@dataclass(slots=True)
class SendResult:
    """Aggregated outcome of one assistant invocation."""

    output: str
    exit_code: int
    success: bool
    timed_out: bool = False


@dataclass(slots=True)
class SessionResetReport:
    """What a fresh-start reset replaced, captured before teardown."""

    previous_token: str | None
    previous_call_count: int
    new_token: str | None


def build_invocation(
    *,
    command: tuple[str, ...],
    token: str,
    first_call: bool,
    unattended: bool,
    prompt: str,
) -> list[str]:
    """Build argv for one call: ``--session-id`` on the first, ``--resume`` after."""

    args = [*command, "--print"]
    if unattended:
        args.append("--dangerously-skip-permissions")
    if first_call:
        args.extend(["--session-id", token])
    else:
        args.extend(["--resume", token])
    args.append(prompt)
    return args


class AssistantSession:
    """One assistant conversation identified by a session token."""

    def __init__(
        self,
        config: SessionConfig,
        *,
        renderer: TerminalRenderer | None = None,
        token: str | None = None,
    ) -> None:
        self.config = config
        self.token = token or str(uuid.uuid4())
        self.is_first_call = True
        self.call_count = 0
        self.started_at: float | None = None
        self._renderer = renderer
        logger.info("Assistant session created: token=%s", self.token)

    def get_call_count(self) -> int:
        return self.call_count

    def get_session_token(self) -> str:
        return self.token

    def next_invocation(self, prompt: str) -> list[str]:
        """Advance call bookkeeping and return the argv for this call."""

        self.call_count += 1
        args = build_invocation(
            command=self.config.command,
            token=self.token,
            first_call=self.is_first_call,
            unattended=self.config.unattended,
            prompt=prompt,
        )
        self.is_first_call = False
        return args

    async def send(self, prompt: str, timeout_seconds: float | None = None) -> SendResult:
        timeout = self.config.timeout_seconds if timeout_seconds is None else timeout_seconds
        run_args = self.next_invocation(prompt)
        call_number = self.call_count
        if self.started_at is None:
            self.started_at = time.monotonic()
        call_started = time.monotonic()

        command_line = shlex.join(run_args[:-1]) + ' "<prompt>"'
        logger.debug("Assistant call #%d: %s", call_number, command_line)
        if self._renderer is not None:
            self._renderer.call_started(call_number, prompt, command_line)

        result = await self._run(run_args, timeout)

        if self._renderer is not None:
            now = time.monotonic()
            self._renderer.call_finished(
                call_number,
                success=result.success,
                timed_out=result.timed_out,
                call_seconds=now - call_started,
                total_seconds=now - self.started_at,
            )
        logger.info(
            "Assistant call #%d finished: exit_code=%d success=%s",
            call_number,
            result.exit_code,
            result.success,
        )
        return result

    async def _run(self, run_args: list[str], timeout: float) -> SendResult:
        env = os.environ.copy()
        env.setdefault("TERM", "xterm-256color")
        try:
            process = await asyncio.create_subprocess_exec(
                *run_args,
                cwd=str(self.config.working_directory),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as error:
            logger.warning("Assistant failed to start: %s", error)
            return SendResult(output=f"{ERROR_MARKER}: {error}", exit_code=1, success=False)

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []

        async def _collect() -> int:
            await asyncio.gather(
                self._pump(process.stdout, stdout_parts, display=True),
                self._pump(process.stderr, stderr_parts, display=False),
            )
            return await process.wait()

        try:
            exit_code = await asyncio.wait_for(_collect(), timeout=timeout)
        except TimeoutError:
            await _terminate_process(process)
            return SendResult(
                output="".join(stdout_parts) + f"\n{TIMEOUT_MARKER}",
                exit_code=TIMEOUT_EXIT_CODE,
                success=False,
                timed_out=True,
            )
        except OSError as error:
            await _terminate_process(process)
            return SendResult(output=f"{ERROR_MARKER}: {error}", exit_code=1, success=False)

        output = "".join(stdout_parts)
        errors = "".join(stderr_parts)
        if exit_code != 0 and errors:
            output += f"\n{STDERR_MARKER}: {errors}"
        return SendResult(output=output, exit_code=exit_code, success=exit_code == 0)

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        sink: list[str],
        *,
        display: bool,
    ) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK_BYTES)
            if not chunk:
                return
            text = chunk.decode("utf-8", errors="replace")
            sink.append(text)
            if display and self._renderer is not None:
                self._renderer.call_output(text)


async def _terminate_process(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=_TERMINATE_GRACE_SECONDS)
    except TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


@dataclass(slots=True)
class SessionSlot:
    """Holds at most one active session plus the last-known launch config."""

    renderer: TerminalRenderer | None = None
    config: SessionConfig | None = None
    session: AssistantSession | None = field(default=None)

    def remember(self, config: SessionConfig) -> None:
        self.config = config

    def get_or_create(self, config: SessionConfig | None = None) -> AssistantSession:
        if config is not None:
            self.config = config
        if self.session is None:
            if self.config is None:
                raise RuntimeError("No session configuration recorded.")
            self.session = AssistantSession(self.config, renderer=self.renderer)
        return self.session

    def current(self) -> AssistantSession | None:
        return self.session

    def reset(self) -> None:
        """Drop the active session; per-session clocks go with it."""

        self.session = None

    def start_fresh(self) -> SessionResetReport:
        """Replace the active session with a new token using the remembered config."""

        previous = self.session
        previous_token = previous.token if previous is not None else None
        previous_calls = previous.call_count if previous is not None else 0
        self.reset()
        new_token: str | None = None
        if self.config is not None:
            new_token = self.get_or_create().token
        logger.info(
            "Assistant session reset: previous=%s calls=%d new=%s",
            previous_token,
            previous_calls,
            new_token,
        )
        return SessionResetReport(
            previous_token=previous_token,
            previous_call_count=previous_calls,
            new_token=new_token,
        )

    def clear(self) -> None:
        """Forget both the session and its configuration."""

        self.session = None
        self.config = None
