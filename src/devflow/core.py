from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Iterator, Union

from .errors import (
    CompositionError,
    DuplicateNameError,
    TaskExecutionError,
    UnknownTaskError,
)
from .logging import get_logger
from .notify import NotificationChannel


Executor = Callable[["RunContext"], Awaitable[None]]
TaskRef = Union["Task", str]

log = get_logger("devflow.core")

# Siblings left running after a parallel block already failed. Strong refs
# keep them from being garbage collected mid-flight.
_background: set[asyncio.Task] = set()


class TaskKind(str, Enum):
    LEAF = "leaf"
    SERIES = "series"
    PARALLEL = "parallel"


@dataclass(eq=False)
class Task:
    name: str
    kind: TaskKind = TaskKind.LEAF
    children: list[Task] = field(default_factory=list)
    executor: Executor | None = None

    def describe(self) -> str:
        if self.kind is TaskKind.LEAF:
            return self.name
        inner = ", ".join(c.describe() for c in self.children)
        return f"{self.kind.value}({inner})"

    def leaves(self) -> Iterator[Task]:
        """Yield leaf tasks in declaration order (repeats included)."""
        if self.kind is TaskKind.LEAF:
            yield self
            return
        for child in self.children:
            yield from child.leaves()

    async def __call__(self, ctx: RunContext) -> None:
        await run_task(self, ctx)


@dataclass
class TaskSpec:
    name: str
    fn: Executor


def task(name: str):
    """Decorator to declare a leaf task on an async function.

    The wrapped coroutine function receives a single `RunContext`.
    """

    def deco(fn: Executor):
        spec = TaskSpec(name=name, fn=fn)
        setattr(fn, "_task_spec", spec)
        return fn

    return deco


@dataclass
class RunContext:
    params: dict = field(default_factory=dict)
    notifier: NotificationChannel = field(default_factory=NotificationChannel)
    registry: TaskRegistry | None = None
    # Long-lived collaborators started by leaf tasks (server, watcher).
    services: dict = field(default_factory=dict)

    @property
    def root(self) -> Path:
        return Path(self.params.get("runtime", {}).get("root", "."))

    def close(self) -> None:
        for service in reversed(list(self.services.values())):
            service.stop()
        self.services.clear()


class TaskRegistry:
    """Named leaf tasks. Nothing runs at registration time."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    def register(self, name: str, executor: Executor) -> Task:
        if name in self._tasks:
            raise DuplicateNameError(name)
        if not callable(executor):
            raise CompositionError(f"Executor for '{name}' is not callable")
        leaf = Task(name=name, executor=executor)
        self._tasks[name] = leaf
        return leaf

    def register_spec(self, spec: TaskSpec) -> Task:
        return self.register(spec.name, spec.fn)

    def get(self, name: str) -> Task:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def resolve(self, ref: TaskRef) -> Task:
        return self.get(ref) if isinstance(ref, str) else ref

    def names(self) -> list[str]:
        return sorted(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def series(self, *children: TaskRef, name: str | None = None) -> Task:
        return series(*children, registry=self, name=name)

    def parallel(self, *children: TaskRef, name: str | None = None) -> Task:
        return parallel(*children, registry=self, name=name)


def _compose(
    kind: TaskKind,
    children: tuple[TaskRef, ...],
    registry: TaskRegistry | None,
    name: str | None,
) -> Task:
    if not children:
        raise CompositionError(f"{kind.value}() needs at least one child task")
    resolved: list[Task] = []
    for ref in children:
        if isinstance(ref, str):
            if registry is None:
                raise CompositionError(
                    f"Cannot resolve task name '{ref}' without a registry"
                )
            resolved.append(registry.get(ref))
        elif isinstance(ref, Task):
            resolved.append(ref)
        else:
            raise CompositionError(f"Not a task: {ref!r}")
    composite = Task(name=name or kind.value, kind=kind, children=resolved)
    # describe() recurses, so the graph must be known acyclic first.
    check_acyclic(composite)
    if name is None:
        composite.name = composite.describe()
    return composite


def series(
    *children: TaskRef, registry: TaskRegistry | None = None, name: str | None = None
) -> Task:
    """Run children one after another, stopping at the first failure."""
    return _compose(TaskKind.SERIES, children, registry, name)


def parallel(
    *children: TaskRef, registry: TaskRegistry | None = None, name: str | None = None
) -> Task:
    """Start all children at once; fail as soon as any one of them fails."""
    return _compose(TaskKind.PARALLEL, children, registry, name)


def check_acyclic(root: Task) -> None:
    """Raise CompositionError if `root` contains itself, directly or not.

    Shared sub-tasks (diamonds) are fine; only back-edges are rejected.
    """
    visiting: list[Task] = []
    done: set[int] = set()

    def visit(node: Task) -> None:
        if any(node is v for v in visiting):
            path = " -> ".join(v.name for v in visiting) + f" -> {node.name}"
            raise CompositionError(f"Cycle detected in task graph: {path}")
        if id(node) in done:
            return
        if node.kind is not TaskKind.LEAF and not node.children:
            raise CompositionError(f"Composite task '{node.name}' has no children")
        visiting.append(node)
        for child in node.children:
            visit(child)
        visiting.pop()
        done.add(id(node))

    visit(root)


def _format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    return f"{seconds:.2f} s"


async def run_task(node: Task, ctx: RunContext) -> None:
    """Execute a task graph once. Every descendant re-runs on every call."""
    if node.kind is TaskKind.LEAF:
        await _run_leaf(node, ctx)
    elif node.kind is TaskKind.SERIES:
        for child in node.children:
            await run_task(child, ctx)
    else:
        await _run_parallel(node, ctx)


async def _run_leaf(node: Task, ctx: RunContext) -> None:
    step_logger = get_logger(f"devflow.task.{node.name}")
    step_logger.info("Starting '%s'...", node.name)
    started = time.perf_counter()
    try:
        await node.executor(ctx)
    except TaskExecutionError:
        step_logger.error(
            "'%s' errored after %s",
            node.name,
            _format_duration(time.perf_counter() - started),
        )
        raise
    except Exception as e:  # noqa: BLE001
        step_logger.exception(
            "'%s' errored after %s",
            node.name,
            _format_duration(time.perf_counter() - started),
        )
        raise TaskExecutionError(node.name, f"Task '{node.name}' failed: {e}") from e
    step_logger.info(
        "Finished '%s' after %s",
        node.name,
        _format_duration(time.perf_counter() - started),
    )


async def _run_parallel(node: Task, ctx: RunContext) -> None:
    futures = [
        asyncio.create_task(run_task(child, ctx), name=f"devflow:{child.name}")
        for child in node.children
    ]
    pending = set(futures)
    while pending:
        done, pending = await asyncio.wait(
            pending, return_when=asyncio.FIRST_EXCEPTION
        )
        first_error: BaseException | None = None
        for fut in futures:
            if fut not in done or fut.cancelled():
                continue
            exc = fut.exception()
            if exc is not None and first_error is None:
                first_error = exc
        if first_error is not None:
            _detach(pending, node.name)
            raise first_error


def _detach(pending: set[asyncio.Task], parent: str) -> None:
    for fut in pending:
        _background.add(fut)
        fut.add_done_callback(functools.partial(_reap, parent))


def _reap(parent: str, fut: asyncio.Task) -> None:
    _background.discard(fut)
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        log.warning("Sibling in '%s' also failed: %s", parent, exc)
