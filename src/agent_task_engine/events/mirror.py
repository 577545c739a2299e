"""Client-side task view kept in sync by applying bus events as merge-patches."""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Any, Optional

from ..utils import _parse_iso
from .bus import EventBus, TaskEvent, TaskEventType


class TaskMirror:
    """Dict-per-task replica reconciled by ``updated_at`` recency.

    An event whose ``updated_at`` is not strictly newer than the held copy is
    discarded, so out-of-order delivery can never roll a task back.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tasks: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, datetime] = {}
        self._deleted: set[str] = set()
        self.discarded = 0
        self._token: Optional[int] = None
        self._bus: Optional[EventBus] = None

    def attach(self, bus: EventBus) -> "TaskMirror":
        self._bus = bus
        self._token = bus.subscribe(self.apply)
        return self

    def detach(self) -> None:
        if self._bus is not None and self._token is not None:
            self._bus.unsubscribe(self._token)
        self._bus = None
        self._token = None

    def apply(self, event: TaskEvent) -> bool:
        """Merge *event* into the mirror; returns False if it was discarded."""
        task_id = event.task_id
        if task_id is None or event.type in (TaskEventType.TASK_LOG, TaskEventType.SYSTEM_STATUS):
            return False

        with self._lock:
            if event.type == TaskEventType.TASK_DELETED:
                self._tasks.pop(task_id, None)
                self._versions.pop(task_id, None)
                self._deleted.add(task_id)
                return True
            if task_id in self._deleted:
                self.discarded += 1
                return False

            incoming = _parse_iso(event.payload.get("updated_at"))
            held = self._versions.get(task_id)
            if incoming is None or (held is not None and incoming <= held):
                self.discarded += 1
                return False

            patch = event.payload.get("task") or event.payload
            current = self._tasks.setdefault(task_id, {"id": task_id})
            current.update(copy.deepcopy(patch))
            self._versions[task_id] = incoming
            return True

    def get(self, task_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task is not None else None

    def tasks(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._tasks)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
