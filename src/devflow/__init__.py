"""Task orchestration for a local site build: compose, run, watch, reload.

Provides Task, TaskRegistry and the series/parallel combinators, a
debouncing single-flight Watcher, a NotificationChannel for the browser,
and a Typer CLI with `build` and `default` entry points.
"""

from .core import (
    RunContext,
    Task,
    TaskKind,
    TaskRegistry,
    TaskSpec,
    parallel,
    run_task,
    series,
    task,
)  # re-export for convenience
from .errors import (
    CompositionError,
    DuplicateNameError,
    PipelineError,
    TaskExecutionError,
    UnknownTaskError,
)
from .notify import EventKind, NotificationChannel, NotificationEvent

__all__ = [
    "CompositionError",
    "DuplicateNameError",
    "EventKind",
    "NotificationChannel",
    "NotificationEvent",
    "PipelineError",
    "RunContext",
    "Task",
    "TaskExecutionError",
    "TaskKind",
    "TaskRegistry",
    "TaskSpec",
    "UnknownTaskError",
    "parallel",
    "run_task",
    "series",
    "task",
]
