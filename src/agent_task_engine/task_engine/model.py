"""Task model for the lifecycle engine.

Templates are immutable blueprints; a :class:`Task` is the mutable unit of work
created from one.  Every attempt at running a task is tracked by a
:class:`TaskExecution`, and a successful attempt attaches a frozen
:class:`TaskResult`.  All types serialize to plain dicts for YAML / JSON.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..utils import _generate_id, _iso, _next_after, _now, _parse_iso


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskType(str, Enum):
    """The kind of work a task represents."""

    DATA_PROCESSING = "data_processing"
    CONTENT_GENERATION = "content_generation"
    ANALYSIS = "analysis"
    AUTOMATION = "automation"
    COMMUNICATION = "communication"
    SECURITY = "security"
    RESEARCH = "research"
    MONITORING = "monitoring"
    LAPTOP_PURCHASE = "laptop_purchase"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


class TaskPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Urgency rank, higher is more urgent."""
        return {"low": 0, "normal": 1, "high": 2, "urgent": 3}[self.value]


class TaskParameterType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    ENUM = "enum"
    FILE = "file"


def _coerce_enum(enum_cls: type[Enum], raw: Any, default: Enum) -> Any:
    if raw is None:
        return default
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw))
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParameterValidation:
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    enum: tuple[Any, ...] = ()


@dataclass(frozen=True)
class TaskParameter:
    """One input a template expects; rendered and validated by the form layer."""
    id: str
    name: str
    type: TaskParameterType = TaskParameterType.STRING
    description: str = ""
    required: bool = False
    default_value: Any = None
    validation: ParameterValidation = field(default_factory=ParameterValidation)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskParameter":
        rules = dict(data.get("validation") or {})
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            type=_coerce_enum(TaskParameterType, data.get("type"), TaskParameterType.STRING),
            description=str(data.get("description") or ""),
            required=bool(data.get("required", False)),
            default_value=data.get("default_value", data.get("default")),
            validation=ParameterValidation(
                min=rules.get("min"),
                max=rules.get("max"),
                pattern=rules.get("pattern"),
                enum=tuple(rules.get("enum") or ()),
            ),
        )


@dataclass(frozen=True)
class TaskTemplate:
    """Immutable blueprint describing a kind of executable task."""
    id: str
    name: str
    task_type: TaskType
    description: str = ""
    category: str = ""
    version: str = "1.0.0"
    agent_types: tuple[str, ...] = ()
    parameters: tuple[TaskParameter, ...] = ()
    expected_output: str = ""
    estimated_duration: int = 0   # seconds
    max_retries: int = 3
    timeout: int = 600            # seconds, <= 0 disables the check
    tags: tuple[str, ...] = ()
    is_active: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)

    def parameter(self, param_id: str) -> Optional[TaskParameter]:
        for param in self.parameters:
            if param.id == param_id:
                return param
        return None

    def default_parameters(self) -> dict[str, Any]:
        """Defaults for every parameter that declares one (used by form layers)."""
        return {
            p.id: copy.deepcopy(p.default_value)
            for p in self.parameters
            if p.default_value is not None
        }

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["task_type"] = self.task_type.value
        data["parameters"] = [
            {**asdict(p), "type": p.type.value, "validation": {**asdict(p.validation), "enum": list(p.validation.enum)}}
            for p in self.parameters
        ]
        data["agent_types"] = list(self.agent_types)
        data["tags"] = list(self.tags)
        return data


# ---------------------------------------------------------------------------
# Results, metrics, logs
# ---------------------------------------------------------------------------

@dataclass
class TaskMetrics:
    execution_time: int = 0        # milliseconds
    cpu_usage: float = 0.0         # percent
    memory_used: float = 0.0       # megabytes
    network_calls: int = 0
    data_processed: float = 0.0    # kilobytes

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskMetrics":
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass(frozen=True)
class TaskOutput:
    type: str
    content: Any
    format: str = "json"  # json | text | html | markdown | file


@dataclass(frozen=True)
class TaskArtifact:
    id: str
    name: str
    type: str = "data"  # file | data | link | report
    url: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class TaskResult:
    """Outcome of a successful attempt.  Never modified once attached to a task."""
    success: bool
    summary: str
    completed_at: datetime
    data: Any = None
    output: Optional[TaskOutput] = None
    artifacts: tuple[TaskArtifact, ...] = ()
    metrics: Optional[TaskMetrics] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "summary": self.summary,
            "completed_at": _iso(self.completed_at),
            "data": copy.deepcopy(self.data),
            "output": asdict(self.output) if self.output else None,
            "artifacts": [asdict(a) for a in self.artifacts],
            "metrics": self.metrics.to_dict() if self.metrics else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskResult":
        output = data.get("output")
        metrics = data.get("metrics")
        return cls(
            success=bool(data.get("success", True)),
            summary=str(data.get("summary") or ""),
            completed_at=_parse_iso(data.get("completed_at")) or _now(),
            data=data.get("data"),
            output=TaskOutput(**output) if isinstance(output, dict) else None,
            artifacts=tuple(TaskArtifact(**a) for a in data.get("artifacts") or () if isinstance(a, dict)),
            metrics=TaskMetrics.from_dict(metrics) if isinstance(metrics, dict) else None,
        )


@dataclass
class TaskLog:
    level: str          # debug | info | warn | error
    message: str
    source: str = "system"  # system | agent | user
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: _generate_id("log"))
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _iso(self.timestamp),
            "level": self.level,
            "message": self.message,
            "source": self.source,
            "data": dict(self.data),
        }


# ---------------------------------------------------------------------------
# Execution attempt
# ---------------------------------------------------------------------------

@dataclass
class TaskExecution:
    """One attempt (initial or retry) at running a task."""
    task_id: str
    agent_id: str
    attempt: int = 0
    id: str = field(default_factory=lambda: _generate_id("exec"))
    status: TaskStatus = TaskStatus.RUNNING
    started_at: datetime = field(default_factory=_now)
    ended_at: Optional[datetime] = None
    metrics: TaskMetrics = field(default_factory=TaskMetrics)
    logs: list[TaskLog] = field(default_factory=list)
    is_timeout: bool = False

    def log(self, level: str, message: str, *, source: str = "system", **data: Any) -> TaskLog:
        entry = TaskLog(level=level, message=message, source=source, data=data)
        self.logs.append(entry)
        return entry

    def finish(self, status: TaskStatus) -> None:
        self.status = status
        self.ended_at = _now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "agent_id": self.agent_id,
            "attempt": self.attempt,
            "status": self.status.value,
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "metrics": self.metrics.to_dict(),
            "logs": [entry.to_dict() for entry in self.logs],
            "is_timeout": self.is_timeout,
        }


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """A unit of work created from a :class:`TaskTemplate`.

    Only the task registry mutates tasks; everything handed out to callers is
    a deep copy.
    """

    # Identity
    id: str = field(default_factory=lambda: _generate_id("task"))
    template_id: str = ""
    name: str = ""
    description: str = ""

    # Classification
    task_type: TaskType = TaskType.DATA_PROCESSING
    priority: TaskPriority = TaskPriority.NORMAL
    status: TaskStatus = TaskStatus.PENDING
    agent_id: str = ""

    # Work definition
    parameters: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)

    # Execution tracking
    progress: float = 0.0
    execution_time: int = 0          # accumulated milliseconds across attempts
    estimated_duration: int = 0      # seconds
    retry_count: int = 0
    max_retries: int = 3
    timeout: int = 600               # seconds
    result: Optional[TaskResult] = None
    error: Optional[str] = None

    # Timestamps
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    metadata: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------

    def touch(self) -> None:
        """Bump ``updated_at``; it strictly increases on every call."""
        self.updated_at = _next_after(self.updated_at)

    def transition(self, new_status: TaskStatus) -> None:
        self.status = new_status
        if new_status.is_terminal:
            self.completed_at = _now()
        self.touch()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def retry_credit(self) -> int:
        return max(0, self.max_retries - self.retry_count)

    def clone(self) -> "Task":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "name": self.name,
            "description": self.description,
            "task_type": self.task_type.value,
            "priority": self.priority.value,
            "status": self.status.value,
            "agent_id": self.agent_id,
            "parameters": copy.deepcopy(self.parameters),
            "tags": list(self.tags),
            "dependencies": list(self.dependencies),
            "progress": self.progress,
            "execution_time": self.execution_time,
            "estimated_duration": self.estimated_duration,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "timeout": self.timeout,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "scheduled_at": _iso(self.scheduled_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "metadata": copy.deepcopy(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize from a plain dict, coercing enums gracefully."""
        d = dict(data)
        result = d.get("result")
        return cls(
            id=str(d.get("id") or _generate_id("task")),
            template_id=str(d.get("template_id") or ""),
            name=str(d.get("name") or ""),
            description=str(d.get("description") or ""),
            task_type=_coerce_enum(TaskType, d.get("task_type"), TaskType.DATA_PROCESSING),
            priority=_coerce_enum(TaskPriority, d.get("priority"), TaskPriority.NORMAL),
            status=_coerce_enum(TaskStatus, d.get("status"), TaskStatus.PENDING),
            agent_id=str(d.get("agent_id") or ""),
            parameters=dict(d.get("parameters") or {}),
            tags=list(d.get("tags") or []),
            dependencies=list(d.get("dependencies") or []),
            progress=float(d.get("progress") or 0.0),
            execution_time=int(d.get("execution_time") or 0),
            estimated_duration=int(d.get("estimated_duration") or 0),
            retry_count=int(d.get("retry_count") or 0),
            max_retries=int(d.get("max_retries") or 0),
            timeout=int(d.get("timeout") or 0),
            result=TaskResult.from_dict(result) if isinstance(result, dict) else None,
            error=d.get("error"),
            created_at=_parse_iso(d.get("created_at")) or _now(),
            updated_at=_parse_iso(d.get("updated_at")) or _now(),
            scheduled_at=_parse_iso(d.get("scheduled_at")),
            started_at=_parse_iso(d.get("started_at")),
            completed_at=_parse_iso(d.get("completed_at")),
            metadata=dict(d.get("metadata") or {}),
        )


def result_with_metrics(result: TaskResult, metrics: TaskMetrics) -> TaskResult:
    """Return *result* carrying a private copy of *metrics*."""
    return replace(result, metrics=replace(metrics))
