"""Read-side statistics over a point-in-time copy of the task collection."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Mapping, Optional

from .model import Task, TaskStatus, TaskType


@dataclass(frozen=True)
class DailyCount:
    date: str  # YYYY-MM-DD, UTC calendar date of creation
    created: int = 0
    completed: int = 0
    failed: int = 0


@dataclass(frozen=True)
class AgentPerformance:
    agent_id: str
    agent_name: str
    task_count: int
    completed: int
    failed: int
    success_rate: float
    average_execution_time: float


@dataclass(frozen=True)
class TaskStatistics:
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    running_tasks: int = 0
    tasks_by_status: dict[str, int] = field(default_factory=dict)
    tasks_by_type: dict[str, int] = field(default_factory=dict)
    average_execution_time: float = 0.0  # milliseconds
    success_rate: float = 0.0
    daily_stats: tuple[DailyCount, ...] = ()
    agent_performance: tuple[AgentPerformance, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["daily_stats"] = [asdict(d) for d in self.daily_stats]
        data["agent_performance"] = [asdict(a) for a in self.agent_performance]
        return data


def _success_rate(completed: int, failed: int) -> float:
    finished = completed + failed
    return completed / finished if finished else 0.0


def _mean_execution_time(tasks: Iterable[Task]) -> float:
    times = [t.execution_time for t in tasks if t.execution_time > 0]
    return sum(times) / len(times) if times else 0.0


def compute_statistics(
    tasks: Iterable[Task],
    agents: Optional[Mapping[str, str]] = None,
) -> TaskStatistics:
    """Aggregate counts, rates and breakdowns.

    Pure: *tasks* is only read.  *agents* maps agent ids to display names;
    unknown ids are reported under their id.
    """
    tasks = list(tasks)
    agents = agents or {}

    by_status = {status.value: 0 for status in TaskStatus}
    by_type: dict[str, int] = defaultdict(int)
    daily: dict[str, dict[str, int]] = defaultdict(lambda: {"created": 0, "completed": 0, "failed": 0})
    per_agent: dict[str, list[Task]] = defaultdict(list)

    for task in tasks:
        by_status[task.status.value] += 1
        by_type[task.task_type.value] += 1
        bucket = daily[task.created_at.date().isoformat()]
        bucket["created"] += 1
        if task.status == TaskStatus.COMPLETED:
            bucket["completed"] += 1
        elif task.status == TaskStatus.FAILED:
            bucket["failed"] += 1
        per_agent[task.agent_id].append(task)

    performance = []
    for agent_id in sorted(per_agent):
        agent_tasks = per_agent[agent_id]
        completed = sum(1 for t in agent_tasks if t.status == TaskStatus.COMPLETED)
        failed = sum(1 for t in agent_tasks if t.status == TaskStatus.FAILED)
        performance.append(
            AgentPerformance(
                agent_id=agent_id,
                agent_name=agents.get(agent_id, agent_id),
                task_count=len(agent_tasks),
                completed=completed,
                failed=failed,
                success_rate=_success_rate(completed, failed),
                average_execution_time=_mean_execution_time(agent_tasks),
            )
        )

    completed = by_status[TaskStatus.COMPLETED.value]
    failed = by_status[TaskStatus.FAILED.value]
    return TaskStatistics(
        total_tasks=len(tasks),
        completed_tasks=completed,
        failed_tasks=failed,
        running_tasks=by_status[TaskStatus.RUNNING.value],
        tasks_by_status=by_status,
        tasks_by_type={t.value: by_type[t.value] for t in TaskType if by_type.get(t.value)},
        average_execution_time=_mean_execution_time(tasks),
        success_rate=_success_rate(completed, failed),
        daily_stats=tuple(DailyCount(date=day, **daily[day]) for day in sorted(daily)),
        agent_performance=tuple(performance),
    )
