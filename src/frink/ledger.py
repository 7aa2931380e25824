"""In-memory task ledger the planning model uses to track its own progress."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class TaskStatus(str, Enum):
    """Lifecycle states of one tracked task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class Task:
    """One ledger entry. Ids are assigned by the ledger only."""

    id: int
    task: str
    status: TaskStatus

    def to_payload(self) -> dict[str, object]:
        return {"id": self.id, "task": self.task, "status": self.status.value}


@dataclass(slots=True, frozen=True)
class TaskSummary:
    """Per-status counts derived from the ledger."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def is_finished(self) -> bool:
        """True only for a non-empty ledger where every task is completed."""

        return self.total > 0 and self.completed == self.total

    def to_payload(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "in_progress": self.in_progress,
            "completed": self.completed,
            "failed": self.failed,
        }

    def format(self) -> str:
        parts = [f"{self.completed}/{self.total} done"]
        if self.in_progress:
            parts.append(f"{self.in_progress} active")
        if self.failed:
            parts.append(f"{self.failed} failed")
        return ", ".join(parts)


STATUS_ICONS: dict[TaskStatus, str] = {
    TaskStatus.PENDING: "[ ]",
    TaskStatus.IN_PROGRESS: "[~]",
    TaskStatus.COMPLETED: "[x]",
    TaskStatus.FAILED: "[!]",
}


class TaskLedger:
    """Ordered, mutable task list.

    Ids are unique and strictly increasing within one generation. A bulk
    replace starts a new generation and renumbers tasks ``1..N`` in order;
    removed ids are never handed out again until then.
    """

    def __init__(self) -> None:
        self._tasks: list[Task] = []
        self._next_id = 1

    def replace_all(
        self,
        items: list[tuple[str, TaskStatus]],
    ) -> tuple[list[Task], TaskSummary]:
        self._tasks = [
            Task(id=index, task=text, status=status)
            for index, (text, status) in enumerate(items, start=1)
        ]
        self._next_id = len(self._tasks) + 1
        return self.list(), self.summary()

    def add(self, description: str, status: TaskStatus = TaskStatus.PENDING) -> Task:
        task = Task(id=self._next_id, task=description, status=status)
        self._next_id += 1
        self._tasks.append(task)
        return replace(task)

    def update_status(self, task_id: int, status: TaskStatus) -> Task | None:
        task = self._find(task_id)
        if task is None:
            return None
        task.status = status
        return replace(task)

    def update_description(self, task_id: int, description: str) -> Task | None:
        task = self._find(task_id)
        if task is None:
            return None
        task.task = description
        return replace(task)

    def remove(self, task_id: int) -> bool:
        for index, task in enumerate(self._tasks):
            if task.id == task_id:
                del self._tasks[index]
                return True
        return False

    def get(self, task_id: int) -> Task | None:
        task = self._find(task_id)
        return replace(task) if task is not None else None

    def list(self) -> list[Task]:
        """Return a snapshot; callers never see later mutations."""

        return [replace(task) for task in self._tasks]

    def unfinished(self) -> list[Task]:
        return [replace(task) for task in self._tasks if task.status is not TaskStatus.COMPLETED]

    def summary(self) -> TaskSummary:
        counts = {status: 0 for status in TaskStatus}
        for task in self._tasks:
            counts[task.status] += 1
        return TaskSummary(
            total=len(self._tasks),
            pending=counts[TaskStatus.PENDING],
            in_progress=counts[TaskStatus.IN_PROGRESS],
            completed=counts[TaskStatus.COMPLETED],
            failed=counts[TaskStatus.FAILED],
        )

    def reset(self) -> None:
        self._tasks = []
        self._next_id = 1

    def _find(self, task_id: int) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None
