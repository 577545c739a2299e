"""Task registry: the single owner of task state.

Every command and every tick is applied while holding one re-entrant lock.
Ticks are delivered by the execution driver's scheduler and re-validated here
(task exists, is RUNNING, and the firing handle is still the task's current
handle) before any mutation, so a pause, cancel or delete always wins over a
tick that was already in flight.

Executions live in three places:

* ``_active``    - exactly one per RUNNING task;
* ``_suspended`` - the execution of a PAUSED task, re-activated on resume;
* ``_history``   - finished executions, kept for log inspection.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Callable, Iterable, Mapping, Optional

from loguru import logger

from ..constants import TIMEOUT_WARNING_RATIO
from ..events.bus import EventBus, TaskEventType
from ..utils import _iso, _next_after, _now
from .catalog import TemplateCatalog
from .driver import ExecutionDriver, TickDecision
from .errors import (
    InvalidStateTransition,
    ResultNotAvailable,
    RetryLimitExceeded,
    TaskEngineError,
    TaskNotFound,
)
from .factory import TaskFactory
from .model import Task, TaskExecution, TaskLog, TaskResult, TaskStatus
from .query import query_tasks
from .scheduler import TickHandle
from .schemas import (
    BatchAction,
    BatchFailure,
    BatchResult,
    CreateTaskRequest,
    Pagination,
    TaskFilter,
    TaskListResponse,
    TaskSort,
    coerce_model,
)
from .statistics import TaskStatistics, compute_statistics


class TaskRegistry:
    """Command / query surface over the task collection.

    Parameters
    ----------
    catalog:
        Template catalog used by the task factory.
    driver:
        Execution driver; defaults to real-time ticking.
    bus:
        Event channel for lifecycle notifications.
    agents:
        ``agent_id -> display name`` mapping used by statistics.
    """

    def __init__(
        self,
        catalog: TemplateCatalog,
        driver: Optional[ExecutionDriver] = None,
        bus: Optional[EventBus] = None,
        *,
        agents: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.catalog = catalog
        self.factory = TaskFactory(catalog)
        self.driver = driver or ExecutionDriver()
        self.bus = bus or EventBus()
        self.agents = dict(agents or {})
        self._lock = threading.RLock()
        self._tasks: dict[str, Task] = {}
        self._handles: dict[str, TickHandle] = {}
        self._active: dict[str, TaskExecution] = {}
        self._suspended: dict[str, TaskExecution] = {}
        self._history: dict[str, list[TaskExecution]] = {}

    def __enter__(self) -> "TaskRegistry":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        """Stop every tick source.  Task state is left as it is."""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            self.driver.stop_ticking(handle)
        self.driver.shutdown()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_task(self, request: CreateTaskRequest | Mapping[str, Any]) -> Task:
        req = coerce_model(CreateTaskRequest, request)
        task = self.factory.create(
            req.template_id,
            req.agent_id,
            req.parameters,
            priority=req.priority,
            tags=req.tags,
            metadata=req.metadata,
            name=req.name,
            description=req.description,
            scheduled_at=req.scheduled_at,
            dependencies=req.dependencies,
        )
        with self._lock:
            self._tasks[task.id] = task
            self._history[task.id] = []
            logger.info("Created task {} from template {} for agent {}", task.id, task.template_id, task.agent_id)
            self._emit_task(TaskEventType.TASK_CREATED, task)
            return task.clone()

    def execute_task(self, task_id: str) -> TaskExecution:
        """Start the first attempt of a PENDING task; returns without waiting."""
        with self._lock:
            task = self._require(task_id)
            self._check(task, "execute", TaskStatus.PENDING)
            task.started_at = _now()
            execution = self._start_attempt(task)
            logger.info("Executing task {} ({})", task.id, task.name)
            return copy.deepcopy(execution)

    def pause_task(self, task_id: str) -> Task:
        with self._lock:
            task = self._require(task_id)
            self._check(task, "pause", TaskStatus.RUNNING)
            self.driver.stop_ticking(self._handles.pop(task_id, None))
            execution = self._active.pop(task_id)
            execution.log("info", "Execution paused", progress=task.progress)
            self._suspended[task_id] = execution
            task.transition(TaskStatus.PAUSED)
            logger.info("Paused task {} at {:.1f}%", task.id, task.progress)
            self._emit_task(TaskEventType.TASK_UPDATE, task)
            return task.clone()

    def resume_task(self, task_id: str) -> Task:
        with self._lock:
            task = self._require(task_id)
            self._check(task, "resume", TaskStatus.PAUSED)
            execution = self._suspended.pop(task_id, None)
            if execution is None:
                # Restored from a snapshot: the original attempt did not survive.
                execution = self.driver.begin_attempt(task)
            execution.log("info", "Execution resumed", progress=task.progress)
            self._activate(task, execution)
            logger.info("Resumed task {} from {:.1f}%", task.id, task.progress)
            return task.clone()

    def cancel_task(self, task_id: str) -> Task:
        with self._lock:
            task = self._require(task_id)
            self._check(task, "cancel", TaskStatus.PENDING, TaskStatus.RUNNING, TaskStatus.PAUSED)
            self.driver.stop_ticking(self._handles.pop(task_id, None))
            for pool in (self._active, self._suspended):
                execution = pool.pop(task_id, None)
                if execution is not None:
                    execution.log("warn", "Execution cancelled", progress=task.progress)
                    execution.finish(TaskStatus.CANCELLED)
                    self._history[task_id].append(execution)
            task.transition(TaskStatus.CANCELLED)
            logger.info("Cancelled task {}", task.id)
            self._emit_task(TaskEventType.TASK_UPDATE, task)
            return task.clone()

    def retry_task(self, task_id: str) -> TaskExecution:
        """Start a new attempt of a FAILED task with progress reset to zero."""
        with self._lock:
            task = self._require(task_id)
            self._check(task, "retry", TaskStatus.FAILED)
            if task.retry_count >= task.max_retries:
                raise RetryLimitExceeded(task.id, task.retry_count, task.max_retries)
            task.retry_count += 1
            task.progress = 0.0
            task.error = None
            task.result = None
            task.completed_at = None
            task.metadata.pop("is_timeout", None)
            execution = self._start_attempt(task)
            logger.info("Retrying task {} (attempt {}/{})", task.id, task.retry_count, task.max_retries)
            return copy.deepcopy(execution)

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            task = self._require(task_id)
            self.driver.stop_ticking(self._handles.pop(task_id, None))
            self._active.pop(task_id, None)
            self._suspended.pop(task_id, None)
            self._history.pop(task_id, None)
            del self._tasks[task_id]
            logger.info("Deleted task {}", task_id)
            self.bus.emit(
                TaskEventType.TASK_DELETED,
                task_id,
                {"updated_at": _iso(_next_after(task.updated_at)), "deleted": True},
            )

    def batch(self, action: str | BatchAction, task_ids: Optional[Iterable[str]] = None) -> BatchResult:
        """Apply one command to every id; failures are collected, never raised."""
        if isinstance(action, BatchAction):
            request = action
        else:
            request = coerce_model(BatchAction, {"action": action, "task_ids": list(task_ids or [])})
        command: Callable[[str], Any] = {
            "cancel": self.cancel_task,
            "pause": self.pause_task,
            "resume": self.resume_task,
            "retry": self.retry_task,
            "delete": self.delete_task,
        }[request.action]

        result = BatchResult(action=request.action)
        for task_id in request.task_ids:
            try:
                command(task_id)
            except TaskEngineError as exc:
                result.failed.append(BatchFailure(task_id=task_id, error=str(exc), error_type=type(exc).__name__))
            else:
                result.succeeded.append(task_id)
        logger.info(
            "Batch {}: {} succeeded, {} failed",
            request.action,
            len(result.succeeded),
            len(result.failed),
        )
        return result

    def batch_cancel_tasks(self, task_ids: Iterable[str]) -> BatchResult:
        return self.batch("cancel", task_ids)

    def batch_delete_tasks(self, task_ids: Iterable[str]) -> BatchResult:
        return self.batch("delete", task_ids)

    def restore(self, tasks: Iterable[Task | Mapping[str, Any]]) -> int:
        """Load tasks from a snapshot.

        No execution survives a restart, so tasks that were RUNNING come back
        PAUSED and can be resumed from their recorded progress.
        """
        count = 0
        with self._lock:
            for item in tasks:
                task = item.clone() if isinstance(item, Task) else Task.from_dict(dict(item))
                if task.id in self._tasks:
                    self.driver.stop_ticking(self._handles.pop(task.id, None))
                    self._active.pop(task.id, None)
                    self._suspended.pop(task.id, None)
                if task.status == TaskStatus.RUNNING:
                    task.status = TaskStatus.PAUSED
                    task.metadata["interrupted"] = True
                    logger.warning("Task {} was running when the snapshot was taken; restored as paused", task.id)
                task.touch()
                self._tasks[task.id] = task
                self._history[task.id] = []
                self._emit_task(TaskEventType.TASK_CREATED, task)
                count += 1
        logger.info("Restored {} tasks", count)
        return count

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            return self._require(task_id).clone()

    def list_tasks(
        self,
        filter: TaskFilter | Mapping[str, Any] | None = None,
        sort: TaskSort | Mapping[str, Any] | None = None,
        pagination: Pagination | Mapping[str, Any] | None = None,
    ) -> TaskListResponse:
        flt = coerce_model(TaskFilter, filter)
        order = coerce_model(TaskSort, sort)
        page = coerce_model(Pagination, pagination)
        with self._lock:
            return query_tasks(self._tasks.values(), flt, order, page)

    def get_active_execution(self, task_id: str) -> Optional[TaskExecution]:
        with self._lock:
            self._require(task_id)
            execution = self._active.get(task_id)
            return copy.deepcopy(execution) if execution is not None else None

    def get_executions(self, task_id: str) -> list[TaskExecution]:
        """Every attempt of the task, oldest first, including the current one."""
        with self._lock:
            self._require(task_id)
            executions = list(self._history.get(task_id, []))
            for pool in (self._suspended, self._active):
                if task_id in pool:
                    executions.append(pool[task_id])
            return copy.deepcopy(executions)

    def get_task_logs(self, task_id: str) -> list[TaskLog]:
        logs = [entry for execution in self.get_executions(task_id) for entry in execution.logs]
        return sorted(logs, key=lambda entry: entry.timestamp)

    def get_task_result(self, task_id: str) -> TaskResult:
        with self._lock:
            task = self._require(task_id)
            if task.status != TaskStatus.COMPLETED or task.result is None:
                raise ResultNotAvailable(task.id, task.status.value)
            return copy.deepcopy(task.result)

    def snapshot(self) -> list[Task]:
        """Consistent point-in-time copy of every task."""
        with self._lock:
            return [task.clone() for task in self._tasks.values()]

    def statistics(self) -> TaskStatistics:
        return compute_statistics(self.snapshot(), self.agents)

    def monitor_status(self) -> dict[str, Any]:
        """Queue and execution counters plus alerts; also published as a system event."""
        with self._lock:
            tasks = list(self._tasks.values())
            alerts: list[dict[str, Any]] = []
            for task in tasks:
                execution = self._active.get(task.id)
                if execution is not None and task.timeout > 0:
                    budget = task.timeout * 1000
                    used = execution.metrics.execution_time / budget
                    if used >= TIMEOUT_WARNING_RATIO:
                        alerts.append({
                            "level": "warning",
                            "task_id": task.id,
                            "message": f"Task '{task.name}' has used {used:.0%} of its {task.timeout}s timeout",
                        })
                if task.status == TaskStatus.FAILED and task.retry_count >= task.max_retries:
                    alerts.append({
                        "level": "error",
                        "task_id": task.id,
                        "message": f"Task '{task.name}' failed with no retries left: {task.error}",
                    })
            status = {
                "total_tasks": len(tasks),
                "active_tasks": sum(1 for t in tasks if t.status == TaskStatus.RUNNING),
                "queued_tasks": sum(1 for t in tasks if t.status == TaskStatus.PENDING),
                "paused_tasks": sum(1 for t in tasks if t.status == TaskStatus.PAUSED),
                "active_executions": len(self._active),
                "alerts": alerts,
                "timestamp": _iso(_now()),
            }
            self.bus.emit(TaskEventType.SYSTEM_STATUS, None, status)
            return status

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def _on_tick(self, handle: TickHandle) -> None:
        task_id = handle.label
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status != TaskStatus.RUNNING or self._handles.get(task_id) is not handle:
                logger.debug("Ignoring stale tick {} for task {}", handle.id, task_id)
                return

            execution = self._active[task_id]
            seen_logs = len(execution.logs)
            decision = self.driver.advance(task, execution)
            task.progress = max(task.progress, decision.progress)
            task.execution_time += self.driver.policy.tick_duration_ms
            task.touch()
            for entry in execution.logs[seen_logs:]:
                self.bus.emit(
                    TaskEventType.TASK_LOG,
                    task_id,
                    {"log": entry.to_dict(), "execution_id": execution.id, "updated_at": _iso(task.updated_at)},
                )

            if decision.is_terminal:
                self._finish_attempt(task, decision)
                return

            logger.debug("Task {} progress {:.1f}%", task_id, task.progress)
            self.bus.emit(
                TaskEventType.TASK_PROGRESS,
                task_id,
                {
                    "status": task.status.value,
                    "progress": task.progress,
                    "execution_time": task.execution_time,
                    "updated_at": _iso(task.updated_at),
                },
            )

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    @staticmethod
    def _check(task: Task, action: str, *allowed: TaskStatus) -> None:
        if task.status not in allowed:
            raise InvalidStateTransition(task.id, task.status.value, action)

    def _start_attempt(self, task: Task) -> TaskExecution:
        execution = self.driver.begin_attempt(task)
        self._activate(task, execution)
        return execution

    def _activate(self, task: Task, execution: TaskExecution) -> None:
        self._active[task.id] = execution
        task.transition(TaskStatus.RUNNING)
        self._handles[task.id] = self.driver.start_ticking(task.id, self._on_tick)
        self._emit_task(TaskEventType.TASK_UPDATE, task)

    def _finish_attempt(self, task: Task, decision: TickDecision) -> None:
        self.driver.stop_ticking(self._handles.pop(task.id, None))
        execution = self._active.pop(task.id)
        execution.finish(decision.outcome)
        self._history[task.id].append(execution)

        if decision.outcome == TaskStatus.COMPLETED:
            task.progress = 100.0
            task.result = decision.result
            task.error = None
            task.transition(TaskStatus.COMPLETED)
            logger.info("Task {} completed in {}ms", task.id, task.execution_time)
            self._emit_task(TaskEventType.TASK_COMPLETED, task)
            return

        task.result = None
        task.error = decision.error
        if decision.is_timeout:
            task.metadata["is_timeout"] = True
        task.transition(TaskStatus.FAILED)
        logger.warning(
            "Task {} failed on attempt {}: {}",
            task.id,
            task.retry_count + 1,
            decision.error,
        )
        self._emit_task(TaskEventType.TASK_FAILED, task, is_timeout=decision.is_timeout)

    def _emit_task(self, event_type: TaskEventType, task: Task, **extra: Any) -> None:
        self.bus.emit(
            event_type,
            task.id,
            {"task": task.to_dict(), "status": task.status.value, "updated_at": _iso(task.updated_at), **extra},
        )
