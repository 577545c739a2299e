"""Tests for the tick schedulers."""

from __future__ import annotations

import threading

from agent_task_engine.task_engine.scheduler import ManualTickScheduler, ThreadTickScheduler, TickHandle


class TestTickHandle:
    def test_cancel_is_idempotent(self):
        handle = TickHandle(lambda h: None, 1.0, label="task-1")
        assert not handle.cancelled
        assert handle.cancel() is True
        assert handle.cancel() is False
        assert handle.cancelled
        assert "cancelled" in repr(handle)

    def test_wait_returns_early_when_cancelled(self):
        handle = TickHandle(lambda h: None, 1.0)
        handle.cancel()
        assert handle.wait(5.0) is True


class TestManualTickScheduler:
    def setup_method(self):
        self.scheduler = ManualTickScheduler()
        self.calls: list[str] = []

    def _schedule(self, label: str) -> TickHandle:
        return self.scheduler.schedule(1.0, lambda h: self.calls.append(h.label), label=label)

    def test_advance_fires_every_active_handle(self):
        self._schedule("a")
        self._schedule("b")
        assert self.scheduler.advance(3) == 6
        assert self.calls == ["a", "b"] * 3

    def test_cancelled_handles_do_not_fire(self):
        a = self._schedule("a")
        self._schedule("b")
        a.cancel()
        self.scheduler.advance(2)
        assert self.calls == ["b", "b"]
        assert [h.label for h in self.scheduler.active_handles] == ["b"]

    def test_fire_respects_cancel_unless_forced(self):
        a = self._schedule("a")
        a.cancel()
        assert self.scheduler.fire(a) is False
        assert self.scheduler.fire(a, force=True) is True
        assert self.calls == ["a"]
        assert a.fired == 1

    def test_handle_for_returns_latest_active(self):
        old = self._schedule("task-1")
        old.cancel()
        new = self._schedule("task-1")
        assert self.scheduler.handle_for("task-1") is new
        assert self.scheduler.handle_for("task-2") is None

    def test_run_until_idle_stops_when_callbacks_cancel(self):
        def stop_after_three(handle: TickHandle) -> None:
            if handle.fired >= 3:
                handle.cancel()

        self.scheduler.schedule(1.0, stop_after_three, label="x")
        assert self.scheduler.run_until_idle() == 3
        assert self.scheduler.active_handles == []

    def test_run_until_idle_is_bounded(self):
        self._schedule("forever")
        assert self.scheduler.run_until_idle(max_ticks=5) == 5

    def test_shutdown_cancels_everything(self):
        a = self._schedule("a")
        self.scheduler.shutdown()
        assert a.cancelled
        assert self.scheduler.advance(1) == 0


class TestThreadTickScheduler:
    def test_ticks_until_cancelled(self):
        scheduler = ThreadTickScheduler()
        ticked = threading.Event()
        handle = scheduler.schedule(0.01, lambda h: ticked.set(), label="task-1")
        try:
            assert ticked.wait(timeout=5.0)
            assert scheduler.active_count == 1
        finally:
            handle.cancel()
            scheduler.shutdown(timeout=2.0)
        assert handle.fired >= 1
        assert scheduler.active_count == 0

    def test_callback_errors_do_not_stop_other_sources(self):
        scheduler = ThreadTickScheduler()
        healthy = threading.Event()

        def boom(handle: TickHandle) -> None:
            raise RuntimeError("tick failed")

        broken = scheduler.schedule(0.01, boom, label="broken")
        scheduler.schedule(0.01, lambda h: healthy.set() if h.fired >= 3 else None, label="healthy")
        try:
            assert healthy.wait(timeout=5.0)
            assert not broken.cancelled
        finally:
            scheduler.shutdown(timeout=2.0)
