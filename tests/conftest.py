from __future__ import annotations

from typing import Any, Callable, Iterator

import pytest

from agent_task_engine.events.bus import EventBus
from agent_task_engine.task_engine.catalog import BUILTIN_TEMPLATES, TemplateCatalog
from agent_task_engine.task_engine.driver import ExecutionDriver, SimulationPolicy
from agent_task_engine.task_engine.model import TaskTemplate, TaskType
from agent_task_engine.task_engine.registry import TaskRegistry
from agent_task_engine.task_engine.scheduler import ManualTickScheduler

QUICK_TEMPLATE = TaskTemplate(
    id="template_quick",
    name="Quick job",
    task_type=TaskType.AUTOMATION,
    description="Short automation job",
    max_retries=3,
    timeout=600,
    estimated_duration=10,
)

SHORT_TIMEOUT_TEMPLATE = TaskTemplate(
    id="template_short_timeout",
    name="Short timeout",
    task_type=TaskType.MONITORING,
    description="Watch job with a tight budget",
    max_retries=1,
    timeout=5,
)


@pytest.fixture
def catalog() -> TemplateCatalog:
    return TemplateCatalog([*BUILTIN_TEMPLATES, QUICK_TEMPLATE, SHORT_TIMEOUT_TEMPLATE])


@pytest.fixture
def scheduler() -> ManualTickScheduler:
    return ManualTickScheduler()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def make_registry(
    catalog: TemplateCatalog, scheduler: ManualTickScheduler, bus: EventBus
) -> Iterator[Callable[..., TaskRegistry]]:
    """Build registries on the manual scheduler.

    Keyword arguments go to :class:`SimulationPolicy`; the default policy adds
    exactly 10% per tick and always succeeds.
    """
    created: list[TaskRegistry] = []

    def _make(*, agents: dict[str, str] | None = None, **policy: Any) -> TaskRegistry:
        settings = {"success_rate": 1.0, "min_increment": 10.0, "max_increment": 10.0, "seed": 7}
        settings.update(policy)
        driver = ExecutionDriver(scheduler, SimulationPolicy(**settings))
        registry = TaskRegistry(catalog, driver, bus, agents=agents)
        created.append(registry)
        return registry

    yield _make
    for registry in created:
        registry.shutdown()


@pytest.fixture
def registry(make_registry: Callable[..., TaskRegistry]) -> TaskRegistry:
    return make_registry()


@pytest.fixture
def create(registry: TaskRegistry) -> Callable[..., Any]:
    """Shortcut for ``registry.create_task`` with a default template and agent."""

    def _create(template_id: str = "template_quick", agent_id: str = "agent-1", **fields: Any):
        return registry.create_task({"template_id": template_id, "agent_id": agent_id, **fields})

    return _create
