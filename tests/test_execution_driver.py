"""Tests for the simulation policy and per-tick decisions."""

from __future__ import annotations

import pytest

from agent_task_engine.task_engine.driver import ExecutionDriver, SimulationPolicy
from agent_task_engine.task_engine.model import Task, TaskStatus, TaskType
from agent_task_engine.task_engine.results import ResultShaperTable
from agent_task_engine.task_engine.scheduler import ManualTickScheduler


def _driver(**policy) -> ExecutionDriver:
    settings = {"success_rate": 1.0, "min_increment": 10.0, "max_increment": 10.0, "seed": 1}
    settings.update(policy)
    return ExecutionDriver(ManualTickScheduler(), SimulationPolicy(**settings))


class TestSimulationPolicy:
    def test_defaults(self):
        policy = SimulationPolicy()
        assert policy.success_rate == 0.85
        assert (policy.min_increment, policy.max_increment) == (0.0, 15.0)
        assert policy.tick_duration_ms == 1000

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"success_rate": 1.5},
            {"min_increment": -1.0},
            {"min_increment": 10.0, "max_increment": 5.0},
            {"tick_interval_seconds": 0},
            {"tick_duration_ms": -5},
        ],
    )
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            SimulationPolicy(**kwargs)

    def test_from_config_clamps(self):
        policy = SimulationPolicy.from_config(
            {
                "simulation": {
                    "success_rate": 3,
                    "min_increment": 20,
                    "max_increment": 5,
                    "tick_interval_seconds": -1,
                    "tick_duration_ms": 250,
                    "seed": "42",
                }
            }
        )
        assert policy.success_rate == 1.0
        assert policy.min_increment == 20.0
        assert policy.max_increment == 20.0
        assert policy.tick_interval_seconds == 1.0
        assert policy.tick_duration_ms == 250
        assert policy.seed == 42

    def test_from_config_ignores_garbage(self):
        policy = SimulationPolicy.from_config({"simulation": {"success_rate": "lots"}})
        assert policy.success_rate == 0.85
        assert SimulationPolicy.from_config({}) == SimulationPolicy()


class TestAdvance:
    def test_progress_and_metrics(self):
        driver = _driver()
        task = Task(agent_id="agent-1")
        execution = driver.begin_attempt(task)
        decision = driver.advance(task, execution)

        assert decision.progress == pytest.approx(10.0)
        assert decision.elapsed_ms == 1000
        assert not decision.is_terminal
        assert execution.metrics.execution_time == 1000
        assert 5.0 <= execution.metrics.cpu_usage <= 85.0
        assert execution.metrics.memory_used >= 1.0
        # The driver never writes task fields.
        assert task.progress == 0.0

    def test_completion_uses_result_shaper(self):
        driver = _driver()
        task = Task(agent_id="agent-1", progress=95.0, name="Report")
        execution = driver.begin_attempt(task)
        decision = driver.advance(task, execution)

        assert decision.outcome == TaskStatus.COMPLETED
        assert decision.progress == 100.0
        assert decision.result.summary == "Task 'Report' completed successfully"
        assert decision.result.metrics.execution_time == 1000
        # The result carries its own copy of the metrics.
        assert decision.result.metrics is not execution.metrics

    def test_failure_roll(self):
        driver = _driver(success_rate=0.0)
        task = Task(agent_id="agent-1", progress=95.0)
        decision = driver.advance(task, driver.begin_attempt(task))
        assert decision.outcome == TaskStatus.FAILED
        assert decision.error == "Task execution failed"
        assert decision.is_timeout is False
        assert decision.result is None

    def test_timeout_only_below_full_progress(self):
        driver = _driver(tick_duration_ms=3000)
        task = Task(agent_id="agent-1", timeout=2)
        execution = driver.begin_attempt(task)
        decision = driver.advance(task, execution)
        assert decision.outcome == TaskStatus.FAILED
        assert decision.is_timeout is True
        assert decision.error == "Task execution timed out after 2s"
        assert execution.is_timeout is True

        finishing = Task(agent_id="agent-1", timeout=2, progress=95.0)
        assert driver.advance(finishing, driver.begin_attempt(finishing)).outcome == TaskStatus.COMPLETED

    def test_seeded_runs_are_reproducible(self):
        def run() -> list[float]:
            driver = _driver(min_increment=0.0, max_increment=15.0, seed=99)
            task = Task(agent_id="agent-1")
            execution = driver.begin_attempt(task)
            seen = []
            for _ in range(5):
                decision = driver.advance(task, execution)
                task.progress = decision.progress
                seen.append(decision.progress)
            return seen

        assert run() == run()

    def test_retry_attempt_is_logged(self):
        driver = _driver()
        task = Task(agent_id="agent-1", retry_count=2)
        execution = driver.begin_attempt(task)
        assert execution.attempt == 2
        assert execution.logs[0].message == "Retry started"

    def test_custom_shaper_table(self):
        def shaper(task, metrics):
            from agent_task_engine.task_engine.results import default_result

            return default_result(task, metrics)

        table = ResultShaperTable({TaskType.RESEARCH: shaper})
        assert table.shaper_for(TaskType.RESEARCH) is shaper
        assert table.shaper_for(TaskType.LAPTOP_PURCHASE) is not shaper


class TestTicking:
    def test_start_and_stop(self):
        driver = _driver()
        calls = []
        handle = driver.start_ticking("task-1", calls.append)
        assert handle.label == "task-1"
        driver.scheduler.advance(2)
        assert calls == [handle, handle]

        driver.stop_ticking(handle)
        driver.stop_ticking(handle)
        driver.stop_ticking(None)
        assert driver.scheduler.advance(1) == 0
