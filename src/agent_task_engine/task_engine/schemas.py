"""Pydantic request / response models for the registry's command surface.

Registry methods accept either these models or plain mappings; mappings are
validated with :func:`coerce_model`, which turns pydantic's
``ValidationError`` into :class:`ValidationFailed`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Mapping, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from .errors import ValidationFailed
from .model import TaskPriority, TaskStatus, TaskType

SortField = Literal["created_at", "updated_at", "priority", "status", "execution_time", "progress"]
BatchActionName = Literal["cancel", "pause", "resume", "retry", "delete"]


def _as_list(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple, set, frozenset)):
        return [value]
    return list(value)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CreateTaskRequest(BaseModel):
    template_id: str = Field(min_length=1)
    agent_id: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    priority: Optional[TaskPriority] = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    name: Optional[str] = None
    description: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    dependencies: list[str] = Field(default_factory=list)


class TaskFilter(BaseModel):
    """Every field is optional; set-valued fields match on membership."""
    status: Optional[list[TaskStatus]] = None
    task_type: Optional[list[TaskType]] = None
    priority: Optional[list[TaskPriority]] = None
    agent_id: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    search: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None

    @field_validator("status", "task_type", "priority", "agent_id", "tags", mode="before")
    @classmethod
    def _wrap_scalar(cls, value: Any) -> Any:
        return _as_list(value)


class TaskSort(BaseModel):
    field: SortField = "created_at"
    order: Literal["asc", "desc"] = "desc"


class Pagination(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


class BatchAction(BaseModel):
    action: BatchActionName
    task_ids: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class StatusSummary(BaseModel):
    pending: int = 0
    running: int = 0
    paused: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    total: int = 0

    @classmethod
    def from_statuses(cls, statuses: list[TaskStatus]) -> "StatusSummary":
        counts = {status.value: 0 for status in TaskStatus}
        for status in statuses:
            counts[status.value] += 1
        return cls(total=len(statuses), **counts)


class PageInfo(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class TaskListResponse(BaseModel):
    tasks: list[dict[str, Any]]
    pagination: PageInfo
    summary: StatusSummary


class BatchFailure(BaseModel):
    task_id: str
    error: str
    error_type: str


class BatchResult(BaseModel):
    action: str
    succeeded: list[str] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

M = TypeVar("M", bound=BaseModel)


def _format_errors(exc: ValidationError) -> list[str]:
    errors: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "request"
        errors.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return errors


def coerce_model(model_cls: type[M], value: M | Mapping[str, Any] | None) -> M:
    """Return *value* as a *model_cls* instance; ``None`` yields the defaults."""
    if isinstance(value, model_cls):
        return value
    try:
        if value is None:
            return model_cls()
        if isinstance(value, BaseModel):
            return model_cls.model_validate(value.model_dump())
        return model_cls.model_validate(dict(value))
    except ValidationError as exc:
        errors = _format_errors(exc)
        raise ValidationFailed(errors, f"Invalid {model_cls.__name__}: {'; '.join(errors)}") from exc
    except (TypeError, ValueError) as exc:
        raise ValidationFailed([str(exc)], f"Invalid {model_cls.__name__}: {exc}") from exc
