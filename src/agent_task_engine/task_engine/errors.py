"""Typed failures raised synchronously by task engine commands.

Asynchronous execution failures (synthetic failure, timeout) are never raised;
they are recorded on the task itself and surfaced through reads and events.
"""

from __future__ import annotations

from typing import Iterable, Optional


class TaskEngineError(Exception):
    """Base class for every error the task engine reports to callers."""


class TemplateNotFound(TaskEngineError):
    def __init__(self, template_id: str) -> None:
        super().__init__(f"Task template '{template_id}' not found or inactive")
        self.template_id = template_id


class TaskNotFound(TaskEngineError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task '{task_id}' not found")
        self.task_id = task_id


class InvalidStateTransition(TaskEngineError):
    """A command was issued against a task whose status forbids it."""

    def __init__(self, task_id: str, current: str, action: str) -> None:
        super().__init__(f"Cannot {action} task '{task_id}' while it is {current}")
        self.task_id = task_id
        self.current = current
        self.action = action


class RetryLimitExceeded(TaskEngineError):
    def __init__(self, task_id: str, retry_count: int, max_retries: int) -> None:
        super().__init__(
            f"Task '{task_id}' has used {retry_count} of {max_retries} retries"
        )
        self.task_id = task_id
        self.retry_count = retry_count
        self.max_retries = max_retries


class ValidationFailed(TaskEngineError):
    """Request shape rejected before it reached the engine."""

    def __init__(self, errors: Iterable[str], message: Optional[str] = None) -> None:
        self.errors = list(errors)
        super().__init__(message or "; ".join(self.errors) or "Validation failed")


class ResultNotAvailable(TaskEngineError):
    def __init__(self, task_id: str, status: str) -> None:
        super().__init__(f"Task '{task_id}' has no result (status: {status})")
        self.task_id = task_id
        self.status = status
