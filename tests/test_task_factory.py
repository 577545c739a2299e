"""Tests for the task factory."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from agent_task_engine.task_engine.errors import TemplateNotFound, ValidationFailed
from agent_task_engine.task_engine.factory import TaskFactory
from agent_task_engine.task_engine.model import TaskPriority, TaskStatus, TaskType


@pytest.fixture
def factory(catalog) -> TaskFactory:
    return TaskFactory(catalog)


class TestTaskFactory:
    def test_copies_template_settings(self, factory):
        task = factory.create("template_security_scan", "agent-7", {"target": "10.0.0.0/24"})
        assert task.status == TaskStatus.PENDING
        assert task.task_type == TaskType.SECURITY
        assert task.max_retries == 1
        assert task.timeout == 1200
        assert task.name == factory.catalog.get("template_security_scan").name
        assert task.priority == TaskPriority.NORMAL
        assert task.created_at == task.updated_at
        assert task.id.startswith("task-")

    def test_overrides(self, factory):
        when = datetime(2026, 7, 1, tzinfo=timezone.utc)
        task = factory.create(
            "template_quick",
            "agent-1",
            priority="urgent",
            name="Custom",
            description="",
            tags=["a"],
            dependencies=["task-0"],
            scheduled_at=when,
        )
        assert task.priority == TaskPriority.URGENT
        assert task.name == "Custom"
        assert task.description == ""
        assert task.dependencies == ["task-0"]
        assert task.scheduled_at == when

    def test_parameters_are_snapshotted(self, factory):
        params = {"nested": {"value": 1}}
        task = factory.create("template_quick", "agent-1", params)
        params["nested"]["value"] = 2
        assert task.parameters == {"nested": {"value": 1}}

    def test_unknown_or_inactive_template(self, factory):
        with pytest.raises(TemplateNotFound) as exc_info:
            factory.create("template_missing", "agent-1")
        assert exc_info.value.template_id == "template_missing"

    @pytest.mark.parametrize("agent_id", ["", "  "])
    def test_agent_required(self, factory, agent_id):
        with pytest.raises(ValidationFailed) as exc_info:
            factory.create("template_quick", agent_id)
        assert exc_info.value.errors
