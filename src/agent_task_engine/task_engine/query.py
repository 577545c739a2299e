"""Filtering, sorting and pagination over a snapshot of tasks."""

from __future__ import annotations

import math
from typing import Any, Callable, Iterable, Optional

from ..utils import _parse_iso
from .model import Task, TaskStatus
from .schemas import PageInfo, Pagination, StatusSummary, TaskFilter, TaskListResponse, TaskSort

_STATUS_ORDER = {status: index for index, status in enumerate(TaskStatus)}

_SORT_KEYS: dict[str, Callable[[Task], Any]] = {
    "created_at": lambda t: t.created_at,
    "updated_at": lambda t: t.updated_at,
    "priority": lambda t: t.priority.rank,
    "status": lambda t: _STATUS_ORDER[t.status],
    "execution_time": lambda t: t.execution_time,
    "progress": lambda t: t.progress,
}


def matches(task: Task, flt: TaskFilter) -> bool:
    if flt.status and task.status not in flt.status:
        return False
    if flt.task_type and task.task_type not in flt.task_type:
        return False
    if flt.priority and task.priority not in flt.priority:
        return False
    if flt.agent_id and task.agent_id not in flt.agent_id:
        return False
    if flt.tags and not set(flt.tags) & set(task.tags):
        return False
    if flt.search:
        needle = flt.search.strip().lower()
        if needle and needle not in task.name.lower() and needle not in task.description.lower():
            return False
    created_from = _parse_iso(flt.created_from)
    if created_from is not None and task.created_at < created_from:
        return False
    created_to = _parse_iso(flt.created_to)
    if created_to is not None and task.created_at > created_to:
        return False
    return True


def filter_tasks(tasks: Iterable[Task], flt: Optional[TaskFilter] = None) -> list[Task]:
    if flt is None:
        return list(tasks)
    return [task for task in tasks if matches(task, flt)]


def sort_tasks(tasks: Iterable[Task], sort: Optional[TaskSort] = None) -> list[Task]:
    """Sort by the requested field; ties fall back to ``created_at`` then ``id``."""
    sort = sort or TaskSort()
    ordered = sorted(tasks, key=lambda t: (t.created_at, t.id))
    # sorted() is stable in both directions, so the tie-break order survives.
    return sorted(ordered, key=_SORT_KEYS[sort.field], reverse=sort.order == "desc")


def paginate(tasks: list[Task], pagination: Optional[Pagination] = None) -> tuple[list[Task], PageInfo]:
    pagination = pagination or Pagination()
    total = len(tasks)
    start = (pagination.page - 1) * pagination.limit
    page = tasks[start:start + pagination.limit]
    info = PageInfo(
        page=pagination.page,
        limit=pagination.limit,
        total=total,
        pages=math.ceil(total / pagination.limit) if total else 0,
    )
    return page, info


def query_tasks(
    tasks: Iterable[Task],
    flt: Optional[TaskFilter] = None,
    sort: Optional[TaskSort] = None,
    pagination: Optional[Pagination] = None,
) -> TaskListResponse:
    filtered = filter_tasks(tasks, flt)
    page, info = paginate(sort_tasks(filtered, sort), pagination)
    return TaskListResponse(
        tasks=[task.to_dict() for task in page],
        pagination=info,
        summary=StatusSummary.from_statuses([task.status for task in filtered]),
    )
