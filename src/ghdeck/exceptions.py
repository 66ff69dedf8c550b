"""Exception types for ghdeck."""

from typing import Optional


class GhDeckError(Exception):
    """Base exception for ghdeck errors."""


class ConfigError(GhDeckError):
    """Raised when the configuration file cannot be parsed."""


class TaskError(GhDeckError):
    """A background task failed.
    
    Carries the id of the task so the status line can attribute the failure.
    """
    
    def __init__(self, message: str, task_id: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.task_id = task_id
        self.cause = cause


class FetchError(TaskError):
    """A page fetch failed. The section keeps its last good rows."""


class MutationError(TaskError):
    """An external command (gh/git) failed. No row patch is applied."""
