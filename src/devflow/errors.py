"""Error kinds raised by the task graph and its runners."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for everything the orchestrator raises on purpose."""

    exit_code = 1


class DuplicateNameError(PipelineError):
    exit_code = 2

    def __init__(self, name: str):
        super().__init__(f"Task already registered: {name}")
        self.name = name


class UnknownTaskError(PipelineError, KeyError):
    exit_code = 2

    def __init__(self, name: str):
        super().__init__(f"Unknown task: {name}")
        self.name = name

    def __str__(self) -> str:
        return f"Unknown task: {self.name}"


class CompositionError(PipelineError):
    exit_code = 2


class TaskExecutionError(PipelineError):
    """A leaf task's executor failed.

    The original exception is kept as ``__cause__``; composites re-raise this
    same object so callers can compare it by identity.
    """

    def __init__(self, task_name: str, message: str | None = None):
        super().__init__(message or f"Task '{task_name}' failed")
        self.task_name = task_name
        self.returncode: int | None = None
