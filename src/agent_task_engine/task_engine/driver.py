"""Execution driver: decides what each tick does to a running task.

The driver owns the tick sources and the per-attempt :class:`TaskExecution`
records.  It never writes task fields: :meth:`ExecutionDriver.advance` returns
a :class:`TickDecision` that the registry applies after re-checking state.
"""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, replace
from typing import Any, Optional

from loguru import logger

from ..constants import (
    DEFAULT_MAX_INCREMENT,
    DEFAULT_MIN_INCREMENT,
    DEFAULT_SUCCESS_RATE,
    DEFAULT_TICK_DURATION_MS,
    DEFAULT_TICK_INTERVAL_SECONDS,
)
from .model import Task, TaskExecution, TaskMetrics, TaskResult, TaskStatus
from .results import ResultShaperTable
from .scheduler import ThreadTickScheduler, TickCallback, TickHandle, TickScheduler

FAILURE_MESSAGE = "Task execution failed"


# ---------------------------------------------------------------------------
# Simulation policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SimulationPolicy:
    """Tunable constants of the synthetic execution."""
    success_rate: float = DEFAULT_SUCCESS_RATE
    min_increment: float = DEFAULT_MIN_INCREMENT
    max_increment: float = DEFAULT_MAX_INCREMENT
    tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS
    tick_duration_ms: int = DEFAULT_TICK_DURATION_MS
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.success_rate <= 1.0:
            raise ValueError(f"success_rate must be within [0, 1], got {self.success_rate}")
        if self.min_increment < 0 or self.max_increment < self.min_increment:
            raise ValueError(
                f"invalid increment range [{self.min_increment}, {self.max_increment}]"
            )
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")
        if self.tick_duration_ms < 0:
            raise ValueError("tick_duration_ms must be non-negative")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "SimulationPolicy":
        """Build a policy from the ``simulation`` block of the engine config.

        Out-of-range values are clamped rather than rejected.
        """
        raw = config.get("simulation") if isinstance(config, dict) else None
        raw = raw if isinstance(raw, dict) else {}
        defaults = cls()

        def _num(key: str, default: float) -> float:
            try:
                return float(raw.get(key, default))
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid simulation.{}: {!r}", key, raw.get(key))
                return default

        success_rate = min(1.0, max(0.0, _num("success_rate", defaults.success_rate)))
        min_inc = max(0.0, _num("min_increment", defaults.min_increment))
        max_inc = max(min_inc, _num("max_increment", defaults.max_increment))
        interval = _num("tick_interval_seconds", defaults.tick_interval_seconds)
        if interval <= 0:
            interval = defaults.tick_interval_seconds
        duration = max(0, int(_num("tick_duration_ms", defaults.tick_duration_ms)))
        seed = raw.get("seed")
        return cls(
            success_rate=success_rate,
            min_increment=min_inc,
            max_increment=max_inc,
            tick_interval_seconds=interval,
            tick_duration_ms=duration,
            seed=int(seed) if seed is not None else None,
        )


# ---------------------------------------------------------------------------
# Tick decision
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TickDecision:
    """What one tick does to a task.  ``outcome`` is None while still running."""
    progress: float
    elapsed_ms: int
    outcome: Optional[TaskStatus] = None
    result: Optional[TaskResult] = None
    error: Optional[str] = None
    is_timeout: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not None


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

class ExecutionDriver:
    """Start and stop tick sources and decide the effect of each tick.

    Parameters
    ----------
    scheduler:
        Tick source factory; defaults to real-time threads.
    policy:
        Simulation constants.  A seeded policy makes every decision
        reproducible for the same sequence of calls.
    shapers:
        Result strategies applied on successful completion.
    """

    def __init__(
        self,
        scheduler: Optional[TickScheduler] = None,
        policy: Optional[SimulationPolicy] = None,
        shapers: Optional[ResultShaperTable] = None,
    ) -> None:
        self.scheduler = scheduler or ThreadTickScheduler()
        self.policy = policy or SimulationPolicy()
        self.shapers = shapers or ResultShaperTable()
        self._rng = random.Random(self.policy.seed)
        self._rng_lock = threading.Lock()

    # -- attempts -----------------------------------------------------------

    def begin_attempt(self, task: Task) -> TaskExecution:
        """Create the execution record for a new attempt (initial run or retry)."""
        execution = TaskExecution(task_id=task.id, agent_id=task.agent_id, attempt=task.retry_count)
        kind = "Retry" if task.retry_count else "Execution"
        execution.log("info", f"{kind} started", attempt=task.retry_count)
        return execution

    def start_ticking(self, task_id: str, callback: TickCallback) -> TickHandle:
        handle = self.scheduler.schedule(self.policy.tick_interval_seconds, callback, label=task_id)
        logger.debug("Tick source {} started for task {}", handle.id, task_id)
        return handle

    @staticmethod
    def stop_ticking(handle: Optional[TickHandle]) -> None:
        if handle is not None and handle.cancel():
            logger.debug("Tick source {} stopped", handle.id)

    def shutdown(self) -> None:
        self.scheduler.shutdown()

    # -- ticks --------------------------------------------------------------

    def advance(self, task: Task, execution: TaskExecution) -> TickDecision:
        """Advance *execution* by one tick and decide the task's new state.

        Only the driver-owned execution record is updated here; the returned
        decision is applied to the task by the registry.
        """
        policy = self.policy
        with self._rng_lock:
            increment = self._rng.uniform(policy.min_increment, policy.max_increment)
            cpu = self._rng.uniform(5.0, 85.0)
            memory = self._rng.uniform(1.0, 16.0)
            calls = self._rng.randint(0, 2)
            processed = self._rng.uniform(0.0, 256.0)
            roll = self._rng.random()

        metrics = execution.metrics
        metrics.execution_time += policy.tick_duration_ms
        metrics.cpu_usage = round(cpu, 2)
        metrics.memory_used = round(metrics.memory_used + memory, 2)
        metrics.network_calls += calls
        metrics.data_processed = round(metrics.data_processed + processed, 2)

        progress = min(100.0, task.progress + increment)
        elapsed = metrics.execution_time

        if progress >= 100.0:
            if roll < policy.success_rate:
                result = self.shapers.shape(task, replace(metrics))
                execution.log("info", "Execution completed", progress=100.0)
                return TickDecision(progress=100.0, elapsed_ms=elapsed, outcome=TaskStatus.COMPLETED, result=result)
            execution.log("error", FAILURE_MESSAGE, progress=progress)
            return TickDecision(progress=progress, elapsed_ms=elapsed, outcome=TaskStatus.FAILED, error=FAILURE_MESSAGE)

        if task.timeout > 0 and elapsed > task.timeout * 1000:
            message = f"Task execution timed out after {task.timeout}s"
            execution.is_timeout = True
            execution.log("error", message, progress=progress, elapsed_ms=elapsed)
            return TickDecision(
                progress=progress,
                elapsed_ms=elapsed,
                outcome=TaskStatus.FAILED,
                error=message,
                is_timeout=True,
            )

        if int(progress // 25) > int(task.progress // 25):
            execution.log("debug", f"Progress passed {int(progress // 25) * 25}%", progress=round(progress, 2))
        return TickDecision(progress=progress, elapsed_ms=elapsed)
