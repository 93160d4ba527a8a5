"""Map filesystem changes onto task chains.

Each WatchRule owns a debounce timer and a single-flight run slot. Raw
events arrive from a watchdog observer thread and are handed over to the
event loop, so all rule state is only ever touched on the loop thread.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .core import RunContext, Task, run_task
from .errors import CompositionError, UnknownTaskError
from .globs import GlobMatcher
from .logging import get_logger


log = get_logger("devflow.watcher")

DEFAULT_DEBOUNCE = 0.05

_RELEVANT_EVENTS = {"created", "modified", "deleted", "moved"}


class RunState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RUNNING = "running"


@dataclass
class WatchRule:
    name: str
    patterns: tuple[str, ...]
    target: Task
    debounce: float | None = None
    matcher: GlobMatcher = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.patterns, str):
            self.patterns = (self.patterns,)
        self.patterns = tuple(self.patterns)
        if not self.patterns:
            raise CompositionError(f"Watch rule '{self.name}' has no patterns")
        self.matcher = GlobMatcher(self.patterns)

    def matches(self, rel_path: str) -> bool:
        return self.matcher.matches(rel_path)


@dataclass
class _RuleSlot:
    rule: WatchRule
    running: bool = False
    pending: bool = False
    timer: asyncio.TimerHandle | None = None
    task: asyncio.Task | None = None
    runs: int = 0
    failures: int = 0

    @property
    def state(self) -> RunState:
        if self.running:
            return RunState.RUNNING
        if self.pending:
            return RunState.PENDING
        return RunState.IDLE

    @property
    def busy(self) -> bool:
        return self.running or self.pending or self.timer is not None


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, watcher: Watcher, loop: asyncio.AbstractEventLoop):
        self.watcher = watcher
        self.loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELEVANT_EVENTS:
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)
        for p in paths:
            if isinstance(p, bytes):
                p = p.decode()
            try:
                self.loop.call_soon_threadsafe(self.watcher.handle_path, p)
            except RuntimeError:
                # Loop already closed during shutdown.
                return


class Watcher:
    def __init__(
        self,
        ctx: RunContext,
        root: str | Path | None = None,
        debounce: float = DEFAULT_DEBOUNCE,
    ):
        self.ctx = ctx
        self.root = Path(root) if root is not None else ctx.root
        self.debounce = debounce
        self._slots: dict[str, _RuleSlot] = {}
        self._observer: Observer | None = None
        self._stopped = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def rules(self) -> list[WatchRule]:
        return [s.rule for s in self._slots.values()]

    def add_rule(self, rule: WatchRule) -> None:
        if rule.name in self._slots:
            raise CompositionError(f"Watch rule already added: {rule.name}")
        registry = self.ctx.registry
        if registry is not None:
            for leaf in rule.target.leaves():
                if registry.get(leaf.name) is not leaf:
                    raise UnknownTaskError(leaf.name)
        self._slots[rule.name] = _RuleSlot(rule=rule)

    def add_rules(self, rules: Iterable[WatchRule]) -> None:
        for rule in rules:
            self.add_rule(rule)

    def state(self, rule_name: str) -> RunState:
        return self._slots[rule_name].state

    def run_count(self, rule_name: str) -> int:
        return self._slots[rule_name].runs

    def failure_count(self, rule_name: str) -> int:
        return self._slots[rule_name].failures

    def is_idle(self) -> bool:
        return not any(s.busy for s in self._slots.values())

    def start(self) -> None:
        """Begin observing the root directory for all added rules."""
        self._loop = asyncio.get_running_loop()
        self._observer = Observer()
        self._observer.schedule(
            _ChangeHandler(self, self._loop), str(self.root), recursive=True
        )
        self._observer.start()
        log.info(
            "Watching %s (%d rules)", self.root, len(self._slots)
        )

    def stop(self) -> None:
        self._stopped.set()
        for slot in self._slots.values():
            if slot.timer is not None:
                slot.timer.cancel()
                slot.timer = None
        self._slots.clear()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    async def run_forever(self) -> None:
        self.start()
        try:
            await self._stopped.wait()
        finally:
            self.stop()

    async def wait_idle(self, poll: float = 0.005) -> None:
        while not self.is_idle():
            await asyncio.sleep(poll)

    def _relative(self, path: str | Path) -> str | None:
        p = Path(path)
        if not p.is_absolute():
            return p.as_posix()
        try:
            return p.resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return None

    def handle_path(self, path: str | Path) -> None:
        """Feed one changed path (absolute, or relative to the root)."""
        if self._stopped.is_set():
            return
        rel = self._relative(path)
        if rel is None:
            return
        for slot in self._slots.values():
            if slot.rule.matches(rel):
                log.debug("Change in %s matches rule '%s'", rel, slot.rule.name)
                self._mark_pending(slot)

    def _mark_pending(self, slot: _RuleSlot) -> None:
        slot.pending = True
        self._schedule(slot)

    def _schedule(self, slot: _RuleSlot) -> None:
        if slot.timer is not None:
            slot.timer.cancel()
        window = slot.rule.debounce if slot.rule.debounce is not None else self.debounce
        loop = self._loop or asyncio.get_running_loop()
        slot.timer = loop.call_later(window, self._fire, slot)

    def _fire(self, slot: _RuleSlot) -> None:
        slot.timer = None
        if not slot.pending or slot.running:
            # A running slot picks up `pending` when it finishes.
            return
        slot.running = True
        slot.pending = False
        loop = self._loop or asyncio.get_running_loop()
        slot.task = loop.create_task(
            self._execute(slot), name=f"devflow-watch:{slot.rule.name}"
        )

    async def _execute(self, slot: _RuleSlot) -> None:
        rule = slot.rule
        try:
            self.ctx.notifier.notify(f"Running '{rule.name}'...")
            await run_task(rule.target, self.ctx)
        except Exception as e:  # noqa: BLE001
            slot.failures += 1
            log.error("Watch rule '%s' failed: %s", rule.name, e)
            self.ctx.notifier.notify(f"Build failed: {e}")
        finally:
            slot.running = False
            slot.runs += 1
            slot.task = None
            if slot.pending and not self._stopped.is_set():
                self._schedule(slot)
