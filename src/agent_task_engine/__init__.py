"""Provide the public `agent_task_engine` package exports."""

from __future__ import annotations

from .events.bus import EventBus, TaskEvent, TaskEventType
from .task_engine.catalog import TemplateCatalog
from .task_engine.driver import ExecutionDriver, SimulationPolicy
from .task_engine.registry import TaskRegistry

__all__ = [
    "EventBus",
    "ExecutionDriver",
    "SimulationPolicy",
    "TaskEvent",
    "TaskEventType",
    "TaskRegistry",
    "TemplateCatalog",
]
