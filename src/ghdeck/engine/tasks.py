"""Bookkeeping for background fetches and mutations.

The registry never polls: the host calls ``start()`` when it dispatches a
command and ``finish()`` when the matching completion message arrives.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Seconds a success banner stays visible
FINISHED_BANNER_SECONDS = 2.0


class TaskState(str, Enum):
    START = "start"
    FINISHED = "finished"
    ERROR = "error"


@dataclass
class Task:
    """A background operation keyed by a deterministic id such as ``pr_close_482``."""

    id: str
    start_text: str
    finished_text: str
    section_id: Optional[int] = None
    state: TaskState = TaskState.START
    error: Optional[BaseException] = None
    start_time: float = 0.0
    finished_time: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.state != TaskState.START

    @property
    def text(self) -> str:
        if self.state == TaskState.ERROR:
            return str(self.error) if self.error else self.finished_text
        if self.state == TaskState.FINISHED:
            return self.finished_text
        return self.start_text


@dataclass(frozen=True)
class TaskStatusEvent:
    """Status line update emitted on task start and finish."""

    task_id: str
    section_id: Optional[int]
    state: TaskState
    text: str


@dataclass
class TaskRegistry:
    """Tasks by id. A new task with a known id replaces the old entry."""

    clock: Callable[[], float] = time.monotonic
    tasks: dict[str, Task] = field(default_factory=dict)
    last_error: Optional[Task] = None
    _listeners: list[Callable[[TaskStatusEvent], None]] = field(default_factory=list, repr=False)

    def subscribe(self, listener: Callable[[TaskStatusEvent], None]) -> None:
        self._listeners.append(listener)

    def _emit(self, task: Task) -> TaskStatusEvent:
        event = TaskStatusEvent(task_id=task.id, section_id=task.section_id, state=task.state, text=task.text)
        for listener in self._listeners:
            listener(event)
        return event

    def start(self, task: Task) -> TaskStatusEvent:
        """Record ``task`` as running and return the status event for the UI."""
        task.state = TaskState.START
        task.error = None
        task.finished_time = None
        task.start_time = self.clock()
        self.tasks[task.id] = task
        logger.debug("task started: %s", task.id)
        return self._emit(task)

    def finish(self, task_id: str, error: Optional[BaseException] = None) -> Optional[TaskStatusEvent]:
        """Move a running task to FINISHED or ERROR.

        Unknown ids and tasks that already reached a terminal state are
        ignored and return None.
        """
        task = self.tasks.get(task_id)
        if task is None or task.is_terminal:
            return None

        task.finished_time = self.clock()
        if error is not None:
            task.state = TaskState.ERROR
            task.error = error
            self.last_error = task
            logger.warning("task failed: %s: %s", task_id, error)
        else:
            task.state = TaskState.FINISHED
            logger.debug("task finished: %s", task_id)
        return self._emit(task)

    def get(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    @property
    def running(self) -> int:
        return sum(1 for t in self.tasks.values() if t.state == TaskState.START)

    def current(self) -> Optional[Task]:
        """Task the status line shows: newest running task, else the latest to finish."""
        if not self.tasks:
            return None

        def sort_key(task: Task) -> tuple:
            if task.finished_time is None:
                return (1, task.start_time)
            return (0, task.finished_time)

        return max(self.tasks.values(), key=sort_key)

    def expire(self) -> list[str]:
        """Drop FINISHED tasks whose banner time ran out. Errors stay until dismissed."""
        now = self.clock()
        expired = [
            t.id
            for t in self.tasks.values()
            if t.state == TaskState.FINISHED
            and t.finished_time is not None
            and now - t.finished_time >= FINISHED_BANNER_SECONDS
        ]
        for task_id in expired:
            del self.tasks[task_id]
        return expired

    def dismiss_error(self) -> None:
        """Clear the persistent error line."""
        for task_id in [t.id for t in self.tasks.values() if t.state == TaskState.ERROR]:
            del self.tasks[task_id]
        self.last_error = None

    def clear(self) -> None:
        self.tasks.clear()
        self.last_error = None
