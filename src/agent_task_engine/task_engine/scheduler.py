"""Periodic tick sources for running tasks.

Every RUNNING task owns exactly one :class:`TickHandle`.  Cancelling a handle
is idempotent and prevents any further ticks; a tick already in flight is not
pre-empted, which is why the registry re-checks state before applying one.

Two schedulers are provided:

* :class:`ThreadTickScheduler`: one daemon thread per handle, real time.
* :class:`ManualTickScheduler`: ticks fire only when ``advance()`` is called;
  used by tests and scripted simulations.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from loguru import logger

from ..utils import _generate_id

TickCallback = Callable[["TickHandle"], None]


class TickHandle:
    """Cancellable reference to one periodic tick source."""

    def __init__(self, callback: TickCallback, interval: float, *, label: str = "") -> None:
        self.id = _generate_id("tick")
        self.callback = callback
        self.interval = interval
        self.label = label
        self.fired = 0
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> bool:
        """Stop the tick source.  Returns False if it was already stopped."""
        if self._cancelled.is_set():
            return False
        self._cancelled.set()
        return True

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds; returns True as soon as the handle is cancelled."""
        return self._cancelled.wait(timeout)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"TickHandle({self.id}, {self.label or '-'}, {state}, fired={self.fired})"


class TickScheduler(ABC):
    @abstractmethod
    def schedule(self, interval: float, callback: TickCallback, *, label: str = "") -> TickHandle:
        """Start calling *callback(handle)* every *interval* seconds until cancelled."""

    def shutdown(self, *, timeout: float = 5.0) -> None:
        """Cancel every outstanding handle."""


class ThreadTickScheduler(TickScheduler):
    """Real-time scheduler backed by one daemon thread per tick source."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._threads: dict[str, tuple[TickHandle, threading.Thread]] = {}

    def schedule(self, interval: float, callback: TickCallback, *, label: str = "") -> TickHandle:
        handle = TickHandle(callback, interval, label=label)
        thread = threading.Thread(
            target=self._run,
            args=(handle,),
            daemon=True,
            name=f"tick-{label or handle.id}",
        )
        with self._lock:
            self._threads[handle.id] = (handle, thread)
        thread.start()
        return handle

    def _run(self, handle: TickHandle) -> None:
        try:
            while not handle.wait(handle.interval):
                handle.fired += 1
                try:
                    handle.callback(handle)
                except Exception:
                    logger.exception("Tick callback failed for {}", handle)
        finally:
            with self._lock:
                self._threads.pop(handle.id, None)

    @property
    def active_count(self) -> int:
        with self._lock:
            return sum(1 for handle, _ in self._threads.values() if not handle.cancelled)

    def shutdown(self, *, timeout: float = 5.0) -> None:
        with self._lock:
            entries = list(self._threads.values())
        for handle, _ in entries:
            handle.cancel()
        current = threading.current_thread()
        for _, thread in entries:
            if thread is not current:
                thread.join(timeout=max(timeout, 0.0))


class ManualTickScheduler(TickScheduler):
    """Deterministic scheduler: ticks fire only when :meth:`advance` is called."""

    def __init__(self) -> None:
        self._handles: list[TickHandle] = []

    def schedule(self, interval: float, callback: TickCallback, *, label: str = "") -> TickHandle:
        handle = TickHandle(callback, interval, label=label)
        self._handles.append(handle)
        return handle

    @property
    def active_handles(self) -> list[TickHandle]:
        return [h for h in self._handles if not h.cancelled]

    def handle_for(self, label: str) -> Optional[TickHandle]:
        """Most recent active handle scheduled under *label*."""
        for handle in reversed(self._handles):
            if handle.label == label and not handle.cancelled:
                return handle
        return None

    def fire(self, handle: TickHandle, *, force: bool = False) -> bool:
        """Fire one tick on *handle*.

        With ``force=True`` the callback runs even if the handle was cancelled,
        which reproduces a tick that was already in flight when it was stopped.
        """
        if handle.cancelled and not force:
            return False
        handle.fired += 1
        handle.callback(handle)
        return True

    def advance(self, ticks: int = 1) -> int:
        """Fire *ticks* rounds over all active handles; returns ticks delivered."""
        delivered = 0
        for _ in range(max(0, ticks)):
            round_handles = self.active_handles
            if not round_handles:
                break
            for handle in round_handles:
                if self.fire(handle):
                    delivered += 1
            self._handles = [h for h in self._handles if not h.cancelled]
        return delivered

    def run_until_idle(self, max_ticks: int = 10_000) -> int:
        """Advance until no tick source is active (or *max_ticks* rounds passed)."""
        rounds = 0
        while self.active_handles and rounds < max_ticks:
            self.advance(1)
            rounds += 1
        return rounds

    def shutdown(self, *, timeout: float = 5.0) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
