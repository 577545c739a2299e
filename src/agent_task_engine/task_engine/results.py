"""Result shaping strategies, keyed by task type.

Each strategy is a pure function ``(task, metrics) -> TaskResult``.  Types
without a dedicated strategy fall back to :func:`default_result`.
"""

from __future__ import annotations

from typing import Callable, Mapping, Optional

from .laptops import recommend_laptops
from .model import Task, TaskArtifact, TaskMetrics, TaskOutput, TaskResult, TaskType, result_with_metrics
from ..utils import _now

ResultShaper = Callable[[Task, TaskMetrics], TaskResult]


def default_result(task: Task, metrics: TaskMetrics) -> TaskResult:
    """Minimal success payload for generic task types."""
    data = {
        "task_type": task.task_type.value,
        "parameters": sorted(task.parameters),
        "attempts": task.retry_count + 1,
    }
    return TaskResult(
        success=True,
        summary=f"Task '{task.name}' completed successfully",
        completed_at=_now(),
        data=data,
        output=TaskOutput(type="json", content={"result": "success", "data": data}, format="json"),
        metrics=metrics,
    )


def laptop_purchase_result(task: Task, metrics: TaskMetrics) -> TaskResult:
    data = recommend_laptops(task.parameters)
    summary = data["summary"]
    top = summary["top_choice"]
    if top:
        text = (
            f"Found {summary['total_found']} matching laptops; "
            f"top choice is the {top['model']} at {top['price']}"
        )
    else:
        text = "No laptops matched the requested budget"
    return TaskResult(
        success=True,
        summary=text,
        completed_at=_now(),
        data=data,
        output=TaskOutput(type="laptop_purchase_result", content=data["recommendations"], format="json"),
        artifacts=(
            TaskArtifact(
                id=f"{task.id}-recommendations",
                name="laptop_recommendations.json",
                type="report",
                mime_type="application/json",
                description="Ranked laptop recommendations",
            ),
        ),
        metrics=metrics,
    )


BUILTIN_SHAPERS: dict[TaskType, ResultShaper] = {
    TaskType.LAPTOP_PURCHASE: laptop_purchase_result,
}


class ResultShaperTable:
    """Strategy table mapping a task type to its result shaper."""

    def __init__(
        self,
        shapers: Optional[Mapping[TaskType, ResultShaper]] = None,
        default: ResultShaper = default_result,
    ) -> None:
        self._shapers: dict[TaskType, ResultShaper] = dict(BUILTIN_SHAPERS if shapers is None else shapers)
        self._default = default

    def shaper_for(self, task_type: TaskType) -> ResultShaper:
        return self._shapers.get(task_type, self._default)

    def shape(self, task: Task, metrics: TaskMetrics) -> TaskResult:
        result = self.shaper_for(task.task_type)(task, metrics)
        return result_with_metrics(result, metrics)
