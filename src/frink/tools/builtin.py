"""Built-in tools available to the planning model in every run."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import rich_click as click

from frink.context import CompletionReport, RunContext
from frink.ledger import TaskStatus
from frink.tools.base import (
    ToolDefinition,
    define_tool,
    ensure_object,
    object_schema,
    require_bool,
    require_choice,
    require_int,
    require_list,
    require_str,
)

logger = logging.getLogger(__name__)

READ_FILE_MAX_LINES = 100

_ALL_STATUSES = [status.value for status in TaskStatus]
_NEW_TASK_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


@dataclass(slots=True, frozen=True)
class SendToAssistantInput:
    prompt: str

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> SendToAssistantInput:
        return cls(prompt=require_str(raw, "prompt"))

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        return object_schema(
            {
                "prompt": {
                    "type": "string",
                    "description": "The prompt/instruction to send to Claude Code",
                },
            },
            ["prompt"],
        )


@dataclass(slots=True, frozen=True)
class TaskItem:
    task: str
    status: TaskStatus


@dataclass(slots=True, frozen=True)
class WriteTasksInput:
    todos: tuple[TaskItem, ...]

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> WriteTasksInput:
        items = []
        for index, entry in enumerate(require_list(raw, "todos")):
            where = f"todos[{index}]"
            entry = ensure_object(entry, where)
            items.append(
                TaskItem(
                    task=require_str(entry, "task", where=where),
                    status=require_choice(entry, "status", TaskStatus, where=where),
                ),
            )
        return cls(todos=tuple(items))

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        item = object_schema(
            {
                "task": {"type": "string", "description": "Description of the task"},
                "status": {"type": "string", "enum": _ALL_STATUSES, "description": "Task status"},
            },
            ["task", "status"],
        )
        return object_schema(
            {
                "todos": {
                    "type": "array",
                    "items": item,
                    "description": "The complete updated todo list",
                },
            },
            ["todos"],
        )


@dataclass(slots=True, frozen=True)
class EmptyInput:
    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> EmptyInput:
        ensure_object(raw, "input")
        return cls()

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        return object_schema({})


@dataclass(slots=True, frozen=True)
class AddTasksInput:
    tasks: tuple[TaskItem, ...]

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> AddTasksInput:
        items = []
        for index, entry in enumerate(require_list(raw, "tasks")):
            where = f"tasks[{index}]"
            entry = ensure_object(entry, where)
            items.append(
                TaskItem(
                    task=require_str(entry, "task", where=where),
                    status=require_choice(
                        entry,
                        "status",
                        TaskStatus,
                        allowed=_NEW_TASK_STATUSES,
                        default=TaskStatus.PENDING,
                        where=where,
                    ),
                ),
            )
        return cls(tasks=tuple(items))

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        item = object_schema(
            {
                "task": {"type": "string", "description": "Description of the new task"},
                "status": {
                    "type": "string",
                    "enum": [status.value for status in _NEW_TASK_STATUSES],
                    "default": TaskStatus.PENDING.value,
                    "description": "Initial status (usually pending)",
                },
            },
            ["task"],
        )
        return object_schema(
            {"tasks": {"type": "array", "items": item, "description": "New tasks to add"}},
            ["tasks"],
        )


@dataclass(slots=True, frozen=True)
class UpdateTaskInput:
    id: int
    status: TaskStatus
    task: str | None = None

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> UpdateTaskInput:
        text = require_str(raw, "task") if raw.get("task") is not None else None
        return cls(
            id=require_int(raw, "id"),
            status=require_choice(raw, "status", TaskStatus),
            task=text,
        )

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        return object_schema(
            {
                "id": {"type": "integer", "description": "The ID of the task to update"},
                "status": {"type": "string", "enum": _ALL_STATUSES, "description": "New status"},
                "task": {
                    "type": "string",
                    "description": "Optional replacement text for the task description",
                },
            },
            ["id", "status"],
        )


@dataclass(slots=True, frozen=True)
class RemoveTaskInput:
    id: int

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> RemoveTaskInput:
        return cls(id=require_int(raw, "id"))

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        return object_schema(
            {"id": {"type": "integer", "description": "The ID of the task to remove"}},
            ["id"],
        )


@dataclass(slots=True, frozen=True)
class ReadFileInput:
    path: str

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> ReadFileInput:
        return cls(path=require_str(raw, "path"))

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        return object_schema(
            {"path": {"type": "string", "description": "Path to the file to read"}},
            ["path"],
        )


@dataclass(slots=True, frozen=True)
class MarkCompleteInput:
    summary: str
    success: bool

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> MarkCompleteInput:
        return cls(summary=require_str(raw, "summary"), success=require_bool(raw, "success"))

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        return object_schema(
            {
                "summary": {
                    "type": "string",
                    "description": "Summary of what was accomplished",
                },
                "success": {
                    "type": "boolean",
                    "description": "Whether the task was successful",
                },
            },
            ["summary", "success"],
        )


@dataclass(slots=True, frozen=True)
class ResetSessionInput:
    reason: str

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> ResetSessionInput:
        return cls(reason=require_str(raw, "reason"))

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        return object_schema(
            {
                "reason": {
                    "type": "string",
                    "description": "Brief explanation of why the session is being reset",
                },
            },
            ["reason"],
        )


def build_builtin_tools(context: RunContext) -> list[ToolDefinition[Any]]:
    """Bind every built-in tool to one run's context."""

    ledger = context.ledger

    async def send_to_claude(args: SendToAssistantInput) -> dict[str, Any]:
        session = context.sessions.current()
        if session is None:
            return {"success": False, "error": "No active session. Call initialize first."}
        result = await session.send(args.prompt)
        return {
            "success": result.success,
            "output": result.output,
            "exitCode": result.exit_code,
            "callNumber": session.get_call_count(),
        }

    async def todo_write(args: WriteTasksInput) -> dict[str, Any]:
        tasks, summary = ledger.replace_all([(item.task, item.status) for item in args.todos])
        context.render_ledger()
        return {
            "success": True,
            "summary": summary.to_payload(),
            "todos": [task.to_payload() for task in tasks],
        }

    async def todo_read(_: EmptyInput) -> dict[str, Any]:
        return {
            "todos": [task.to_payload() for task in ledger.list()],
            "summary": ledger.summary().to_payload(),
        }

    async def todo_add(args: AddTasksInput) -> dict[str, Any]:
        added = [ledger.add(item.task, item.status) for item in args.tasks]
        context.render_ledger()
        return {
            "success": True,
            "added": [task.to_payload() for task in added],
            "summary": ledger.summary().to_payload(),
            "todos": [task.to_payload() for task in ledger.list()],
        }

    async def todo_update(args: UpdateTaskInput) -> dict[str, Any]:
        if ledger.get(args.id) is None:
            return {"success": False, "error": f"Task with ID {args.id} not found"}
        if args.task is not None:
            ledger.update_description(args.id, args.task)
        updated = ledger.update_status(args.id, args.status)
        context.render_ledger()
        return {
            "success": True,
            "updated": updated.to_payload() if updated is not None else None,
            "summary": ledger.summary().to_payload(),
        }

    async def todo_remove(args: RemoveTaskInput) -> dict[str, Any]:
        if not ledger.remove(args.id):
            return {"success": False, "error": f"Task with ID {args.id} not found"}
        context.render_ledger()
        return {
            "success": True,
            "removedId": args.id,
            "summary": ledger.summary().to_payload(),
            "todos": [task.to_payload() for task in ledger.list()],
        }

    async def git_status(_: EmptyInput) -> dict[str, Any]:
        return await inspect_repo_status(context.working_directory)

    async def read_file(args: ReadFileInput) -> dict[str, Any]:
        return read_file_head(context.working_directory, args.path)

    async def mark_task_complete(args: MarkCompleteInput) -> dict[str, Any]:
        return await check_completion(context, args.summary, success=args.success)

    async def reset_claude_session(args: ResetSessionInput) -> dict[str, Any]:
        report = context.sessions.start_fresh()
        context.renderer.notice("  [Session Reset]", highlight=True)
        context.renderer.notice(f"  Reason: {args.reason}")
        context.renderer.notice(
            f"  Previous session: {report.previous_token or 'none'} "
            f"({report.previous_call_count} calls)",
        )
        if report.new_token is None:
            context.renderer.notice(
                "  [!!] Session config not available, will be set on next call",
            )
            message = "Session cleared. New session will be created on next Claude call."
        else:
            context.renderer.notice(f"  New session: {report.new_token}")
            message = "Session reset successfully. Next Claude call will use fresh context."
        return {
            "success": True,
            "previousSessionId": report.previous_token or "none",
            "previousCallCount": report.previous_call_count,
            "newSessionId": report.new_token,
            "message": message,
        }

    return [
        define_tool(
            name="send_to_claude",
            description=(
                "Send a prompt to Claude Code. Claude Code is an AI coding assistant that can:\n"
                "- Read and write files\n"
                "- Run shell commands\n"
                "- Search code\n"
                "- Make code changes\n"
                "- Run tests and builds\n\n"
                "The session persists across calls - Claude remembers previous context.\n"
                "Use this to delegate coding work. Be specific about what you want done."
            ),
            input_type=SendToAssistantInput,
            handler=send_to_claude,
        ),
        define_tool(
            name="todo_write",
            description=(
                "Replace the whole task list. Use this to plan work up front or to "
                "rewrite the plan. Every call renumbers tasks from 1."
            ),
            input_type=WriteTasksInput,
            handler=todo_write,
        ),
        define_tool(
            name="todo_read",
            description="Read the current todo list to see task progress",
            input_type=EmptyInput,
            handler=todo_read,
        ),
        define_tool(
            name="todo_add",
            description=(
                "Add new tasks to the existing todo list without replacing the whole list.\n"
                "Use this when you discover additional work needed during execution.\n"
                "This preserves existing tasks and their statuses."
            ),
            input_type=AddTasksInput,
            handler=todo_add,
        ),
        define_tool(
            name="todo_update",
            description=(
                "Update the status of a specific task by its ID.\n"
                "Use this for quick status changes without rewriting the whole list."
            ),
            input_type=UpdateTaskInput,
            handler=todo_update,
        ),
        define_tool(
            name="todo_remove",
            description=(
                "Remove a task from the todo list by its ID.\n"
                "Use this when a task is no longer relevant or was added by mistake."
            ),
            input_type=RemoveTaskInput,
            handler=todo_remove,
        ),
        define_tool(
            name="git_status",
            description=(
                "Check git status to see what files have been modified. "
                "Useful for verifying changes."
            ),
            input_type=EmptyInput,
            handler=git_status,
        ),
        define_tool(
            name="read_file",
            description=(
                "Read a file's contents to verify changes or understand context "
                f"(first {READ_FILE_MAX_LINES} lines)"
            ),
            input_type=ReadFileInput,
            handler=read_file,
        ),
        define_tool(
            name="mark_task_complete",
            description=(
                "Call this when the ENTIRE task is complete. Only call this when:\n"
                "- All todos are completed\n"
                "- Changes have been verified\n"
                "- The original request is fully satisfied\n\n"
                "WARNING: This will FAIL if there are incomplete tasks or no tasks at all.\n\n"
                "Include a summary of what was accomplished."
            ),
            input_type=MarkCompleteInput,
            handler=mark_task_complete,
        ),
        define_tool(
            name="reset_claude_session",
            description=(
                "Reset Claude Code's session and start with a fresh context.\n"
                "Use this when Claude seems stuck in a loop, the context has become "
                "polluted, or you want to retry an approach with a clean slate.\n"
                "The next send_to_claude call will start a completely new session."
            ),
            input_type=ResetSessionInput,
            handler=reset_claude_session,
        ),
    ]


async def inspect_repo_status(working_directory: Path) -> dict[str, Any]:
    """Summarize ``git status --porcelain``; a non-repository is not an error."""

    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            "status",
            "--porcelain",
            cwd=str(working_directory),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await process.communicate()
    except OSError as error:
        logger.debug("git status failed to start: %s", error)
        return {"hasChanges": False, "changedFiles": 0, "files": [], "error": "Not a git repo"}

    if process.returncode != 0:
        return {"hasChanges": False, "changedFiles": 0, "files": [], "error": "Not a git repo"}

    files = [
        {"status": line[:2].strip(), "file": line[3:]}
        for line in stdout.decode("utf-8", errors="replace").splitlines()
        if line.strip()
    ]
    return {"hasChanges": bool(files), "changedFiles": len(files), "files": files}


def read_file_head(working_directory: Path, path: str) -> dict[str, Any]:
    """Return the first lines of a file, resolving relative paths against the run directory."""

    target = Path(path)
    if not target.is_absolute():
        target = working_directory / target
    try:
        content = target.read_text("utf-8")
    except (OSError, UnicodeDecodeError) as error:
        return {"success": False, "error": str(error)}

    lines = content.split("\n")
    return {
        "success": True,
        "content": "\n".join(lines[:READ_FILE_MAX_LINES]),
        "totalLines": len(lines),
        "truncated": len(lines) > READ_FILE_MAX_LINES,
    }


async def check_completion(
    context: RunContext,
    summary: str,
    *,
    success: bool,
) -> dict[str, Any]:
    """Gate completion on the ledger, then ask the human to confirm.

    An empty ledger is refused: a plan has to exist and be finished.
    """

    totals = context.ledger.summary()
    renderer = context.renderer
    if not totals.is_finished:
        remaining = context.ledger.unfinished()
        renderer.notice("  [!!] Cannot complete - tasks remaining:", highlight=True)
        for task in remaining:
            renderer.notice(f"       [{task.status.value}] {task.task}")
        error = (
            "You need to finish all the tasks before done"
            if remaining
            else "No tasks were tracked. Create and finish a task list before completing."
        )
        return {
            "complete": False,
            "success": False,
            "error": error,
            "remainingTasks": [task.to_payload() for task in remaining],
            "todoSummary": {
                "total": totals.total,
                "completed": totals.completed,
                "remaining": len(remaining),
            },
        }

    renderer.notice(f"  {'=' * 50}")
    renderer.notice("  [*] All tasks completed", highlight=True)
    renderer.notice(f"  {summary}")
    renderer.notice(f"  {'=' * 50}")

    prompter = context.prompter
    try:
        confirmed = await asyncio.to_thread(
            prompter.confirm,
            "Is everything done? Confirm to finish:",
            default=True,
        )
        feedback = "" if confirmed else await asyncio.to_thread(
            prompter.ask,
            "What else needs to be done?",
        )
    except (click.Abort, KeyboardInterrupt, EOFError):
        renderer.notice("  Interrupted by user.")
        context.completion = CompletionReport(
            complete=True,
            success=False,
            summary="Interrupted by user",
            user_confirmed=False,
        )
        return {
            "complete": True,
            "success": False,
            "summary": "Interrupted by user",
            "userConfirmed": False,
        }

    todo_summary = {"total": totals.total, "completed": totals.completed}
    if not confirmed:
        renderer.notice("  User requested more work.")
        return {
            "complete": False,
            "success": False,
            "error": "User indicated more work is needed.",
            "userFeedback": feedback or "User did not specify, ask what they need.",
            "todoSummary": todo_summary,
        }

    renderer.notice("  [*] TASK COMPLETED - User confirmed", highlight=True)
    context.completion = CompletionReport(
        complete=True,
        success=success,
        summary=summary,
        user_confirmed=True,
    )
    return {
        "complete": True,
        "success": success,
        "summary": summary,
        "userConfirmed": True,
        "todoSummary": todo_summary,
    }
