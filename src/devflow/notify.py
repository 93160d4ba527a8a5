"""Progress messages and browser reload signals.

Events fan out to subscriber queues; the live-reload server holds one
queue per connected browser. Delivery is best-effort: a broken subscriber
is dropped and logged, the caller never sees the failure.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .logging import get_logger


log = get_logger("devflow.notify")


class EventKind(str, Enum):
    MESSAGE = "message"
    RELOAD = "reload"


@dataclass(frozen=True)
class NotificationEvent:
    kind: EventKind
    payload: str = ""


@dataclass
class NotificationChannel:
    listeners: list[Callable[[NotificationEvent], None]] = field(default_factory=list)
    _queues: list[queue.Queue] = field(default_factory=list, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def notify(self, message: str) -> None:
        log.info("%s", message)
        self._publish(NotificationEvent(EventKind.MESSAGE, message))

    def reload(self) -> None:
        log.info("Reloading connected browsers")
        self._publish(NotificationEvent(EventKind.RELOAD))

    def subscribe(self, maxsize: int = 100) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._queues.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._queues:
                self._queues.remove(q)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._queues)

    def _publish(self, event: NotificationEvent) -> None:
        for listener in list(self.listeners):
            try:
                listener(event)
            except Exception as e:  # noqa: BLE001
                log.warning("Notification listener failed: %s", e)
        with self._lock:
            targets = list(self._queues)
        for q in targets:
            try:
                q.put_nowait(event)
            except queue.Full:
                # Client stopped reading; it reconnects on its own.
                log.warning("Dropping slow live-reload client")
                self.unsubscribe(q)
