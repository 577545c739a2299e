"""Task factory: turns a template plus caller input into a new PENDING task.

Parameter maps are trusted as given: schema validation belongs to the form
layer that assembled them.  Insertion into the registry is a separate step.
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Iterable, Optional

from .catalog import TemplateCatalog
from .errors import ValidationFailed
from .model import Task, TaskPriority, TaskStatus, _coerce_enum
from ..utils import _now


class TaskFactory:
    def __init__(self, catalog: TemplateCatalog) -> None:
        self.catalog = catalog

    def create(
        self,
        template_id: str,
        agent_id: str,
        parameters: Optional[dict[str, Any]] = None,
        *,
        priority: TaskPriority | str | None = None,
        tags: Optional[Iterable[str]] = None,
        metadata: Optional[dict[str, Any]] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        scheduled_at: Optional[datetime] = None,
        dependencies: Optional[Iterable[str]] = None,
    ) -> Task:
        template = self.catalog.get(template_id)
        if not agent_id or not str(agent_id).strip():
            raise ValidationFailed(["'agent_id' is required and must be non-empty"])

        now = _now()
        return Task(
            template_id=template.id,
            name=name or template.name,
            description=template.description if description is None else description,
            task_type=template.task_type,
            priority=_coerce_enum(TaskPriority, priority, TaskPriority.NORMAL),
            status=TaskStatus.PENDING,
            agent_id=str(agent_id).strip(),
            parameters=copy.deepcopy(dict(parameters or {})),
            tags=list(tags or []),
            dependencies=list(dependencies or []),
            progress=0.0,
            execution_time=0,
            estimated_duration=template.estimated_duration,
            retry_count=0,
            max_retries=template.max_retries,
            timeout=template.timeout,
            created_at=now,
            updated_at=now,
            scheduled_at=scheduled_at,
            metadata=copy.deepcopy(dict(metadata or {})),
        )
