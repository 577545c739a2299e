"""In-process event channel for task lifecycle notifications.

Subscribers receive :class:`TaskEvent` objects synchronously on the thread
that emitted them (a command caller or a tick thread).  A subscriber that
raises is logged and skipped; it never breaks delivery to the others or the
command that produced the event.
"""

from __future__ import annotations

import copy
import itertools
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from loguru import logger

from ..constants import EVENT_HISTORY_LIMIT
from ..utils import _generate_id, _iso, _now


class TaskEventType(str, Enum):
    TASK_CREATED = "task_created"
    TASK_UPDATE = "task_update"
    TASK_PROGRESS = "task_progress"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_DELETED = "task_deleted"
    TASK_LOG = "task_log"
    SYSTEM_STATUS = "system_status"


@dataclass(frozen=True)
class TaskEvent:
    """One notification.  ``payload`` always carries ``updated_at`` for task events."""
    type: TaskEventType
    task_id: Optional[str]
    payload: dict[str, Any]
    seq: int = 0
    id: str = field(default_factory=lambda: _generate_id("evt"))
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "seq": self.seq,
            "type": self.type.value,
            "task_id": self.task_id,
            "payload": copy.deepcopy(self.payload),
            "timestamp": _iso(self.timestamp),
        }


Subscriber = Callable[[TaskEvent], None]


class EventBus:
    def __init__(self, *, history_limit: int = EVENT_HISTORY_LIMIT) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[int, tuple[Subscriber, Optional[frozenset[TaskEventType]]]] = {}
        self._ids = itertools.count(1)
        self._seq = 0
        self._history: deque[TaskEvent] = deque(maxlen=max(0, history_limit))

    def subscribe(
        self,
        callback: Subscriber,
        types: Optional[Iterable[TaskEventType | str]] = None,
    ) -> int:
        """Register *callback*; returns a token for :meth:`unsubscribe`.

        When *types* is given only those event types are delivered.
        """
        wanted = frozenset(TaskEventType(t) for t in types) if types is not None else None
        with self._lock:
            token = next(self._ids)
            self._subscribers[token] = (callback, wanted)
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscribers.pop(token, None) is not None

    def emit(self, event_type: TaskEventType | str, task_id: Optional[str], payload: dict[str, Any]) -> TaskEvent:
        with self._lock:
            self._seq += 1
            event = TaskEvent(
                type=TaskEventType(event_type),
                task_id=task_id,
                payload=copy.deepcopy(payload),
                seq=self._seq,
            )
            self._history.append(event)
            targets = [
                callback
                for callback, wanted in self._subscribers.values()
                if wanted is None or event.type in wanted
            ]

        for callback in targets:
            try:
                callback(event)
            except Exception:
                logger.exception("Event subscriber failed on {} for {}", event.type.value, task_id)
        return event

    def history(
        self,
        *,
        task_id: Optional[str] = None,
        types: Optional[Iterable[TaskEventType | str]] = None,
    ) -> list[TaskEvent]:
        wanted = {TaskEventType(t) for t in types} if types is not None else None
        with self._lock:
            events = list(self._history)
        return [
            e for e in events
            if (task_id is None or e.task_id == task_id) and (wanted is None or e.type in wanted)
        ]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
