"""Tests for the task data model."""

from __future__ import annotations

from datetime import datetime, timezone

from agent_task_engine.task_engine.model import (
    Task,
    TaskExecution,
    TaskMetrics,
    TaskOutput,
    TaskPriority,
    TaskResult,
    TaskStatus,
    TaskType,
    result_with_metrics,
)


class TestEnums:
    def test_terminal_statuses(self):
        terminal = {s for s in TaskStatus if s.is_terminal}
        assert terminal == {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}

    def test_priority_rank(self):
        ranks = [p.rank for p in (TaskPriority.LOW, TaskPriority.NORMAL, TaskPriority.HIGH, TaskPriority.URGENT)]
        assert ranks == [0, 1, 2, 3]


class TestTask:
    def test_touch_is_strictly_monotonic(self):
        task = Task()
        stamps = []
        for _ in range(50):
            task.touch()
            stamps.append(task.updated_at)
        assert all(b > a for a, b in zip(stamps, stamps[1:]))

    def test_touch_moves_past_future_timestamp(self):
        future = datetime(2999, 1, 1, tzinfo=timezone.utc)
        task = Task(updated_at=future)
        task.touch()
        assert task.updated_at > future

    def test_transition_sets_completed_at_on_terminal(self):
        task = Task()
        task.transition(TaskStatus.RUNNING)
        assert task.completed_at is None
        task.transition(TaskStatus.FAILED)
        assert task.completed_at is not None
        assert task.is_terminal

    def test_retry_credit(self):
        assert Task(max_retries=3, retry_count=1).retry_credit == 2
        assert Task(max_retries=1, retry_count=4).retry_credit == 0

    def test_clone_is_deep(self):
        task = Task(parameters={"a": [1]})
        clone = task.clone()
        clone.parameters["a"].append(2)
        assert task.parameters == {"a": [1]}

    def test_dict_round_trip(self):
        result = TaskResult(
            success=True,
            summary="done",
            completed_at=datetime(2026, 2, 3, 4, 5, 6, tzinfo=timezone.utc),
            data={"rows": 3},
            output=TaskOutput(type="json", content={"ok": True}),
            metrics=TaskMetrics(execution_time=3000, network_calls=2),
        )
        task = Task(
            name="Load",
            task_type=TaskType.RESEARCH,
            priority=TaskPriority.HIGH,
            status=TaskStatus.COMPLETED,
            agent_id="agent-1",
            tags=["x"],
            progress=100.0,
            execution_time=3000,
            result=result,
            metadata={"source": "test"},
        )
        restored = Task.from_dict(task.to_dict())
        assert restored.to_dict() == task.to_dict()
        assert restored.result == result

    def test_from_dict_coerces_unknown_enums(self):
        task = Task.from_dict({"id": "task-1", "status": "exploded", "priority": "P0", "task_type": "?"})
        assert task.status == TaskStatus.PENDING
        assert task.priority == TaskPriority.NORMAL
        assert task.task_type == TaskType.DATA_PROCESSING

    def test_from_dict_accepts_z_suffix(self):
        task = Task.from_dict({"created_at": "2026-01-02T03:04:05Z"})
        assert task.created_at == datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class TestExecution:
    def test_log_and_finish(self):
        execution = TaskExecution(task_id="task-1", agent_id="agent-1")
        entry = execution.log("info", "hello", source="agent", step=1)
        assert entry.data == {"step": 1}
        execution.finish(TaskStatus.COMPLETED)
        data = execution.to_dict()
        assert data["status"] == "completed"
        assert data["ended_at"] is not None
        assert data["logs"][0]["message"] == "hello"
        assert data["id"].startswith("exec-")

    def test_result_with_metrics_copies(self):
        metrics = TaskMetrics(execution_time=10)
        result = result_with_metrics(
            TaskResult(success=True, summary="s", completed_at=datetime.now(timezone.utc)), metrics
        )
        metrics.execution_time = 99
        assert result.metrics.execution_time == 10
