from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from rich.console import Console
from rich.table import Table

from .config import (
    VALID_LOG_LEVELS,
    get_log_level,
    get_simulation_config,
    get_templates_path,
    load_engine_config,
)
from .constants import SNAPSHOT_FILE, STATE_DIR_NAME
from .logging_utils import configure_logging
from .task_engine.catalog import TemplateCatalog
from .task_engine.driver import ExecutionDriver, SimulationPolicy
from .task_engine.errors import TaskEngineError
from .task_engine.model import Task, TaskStatus
from .task_engine.registry import TaskRegistry
from .task_engine.scheduler import ManualTickScheduler
from .task_engine.snapshot import load_snapshot, save_snapshot
from .task_engine.statistics import TaskStatistics, compute_statistics

_STATUS_STYLES = {
    TaskStatus.PENDING: "dim",
    TaskStatus.RUNNING: "cyan",
    TaskStatus.PAUSED: "yellow",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.CANCELLED: "magenta",
}


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _default_snapshot_path(project_dir: Path) -> Path:
    return project_dir / STATE_DIR_NAME / SNAPSHOT_FILE


def _console() -> Console:
    return Console(width=120)


def _load_catalog(config: dict[str, Any], project_dir: Path) -> TemplateCatalog:
    path = get_templates_path(config, project_dir)
    if path is None:
        return TemplateCatalog()
    return TemplateCatalog.from_yaml(path)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _render_tasks(console: Console, tasks: list[Task]) -> None:
    table = Table(title="Tasks")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Error")
    for task in tasks:
        style = _STATUS_STYLES.get(task.status, "")
        table.add_row(
            task.id,
            task.name,
            task.agent_id,
            f"[{style}]{task.status.value}[/{style}]" if style else task.status.value,
            f"{task.progress:.1f}%",
            str(task.execution_time),
            f"{task.retry_count}/{task.max_retries}",
            task.error or "",
        )
    console.print(table)


def _render_statistics(console: Console, stats: TaskStatistics) -> None:
    table = Table(title="Statistics", show_header=False)
    table.add_row("Total tasks", str(stats.total_tasks))
    table.add_row("Completed", str(stats.completed_tasks))
    table.add_row("Failed", str(stats.failed_tasks))
    table.add_row("Running", str(stats.running_tasks))
    table.add_row("Success rate", f"{stats.success_rate:.1%}")
    table.add_row("Avg execution time", f"{stats.average_execution_time:.0f} ms")
    console.print(table)

    if stats.agent_performance:
        agents = Table(title="Agents")
        agents.add_column("Agent")
        agents.add_column("Tasks", justify="right")
        agents.add_column("Success rate", justify="right")
        agents.add_column("Avg time (ms)", justify="right")
        for perf in stats.agent_performance:
            agents.add_row(
                perf.agent_name,
                str(perf.task_count),
                f"{perf.success_rate:.1%}",
                f"{perf.average_execution_time:.0f}",
            )
        console.print(agents)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _templates(args: argparse.Namespace, config: dict[str, Any]) -> int:
    catalog = _load_catalog(config, _resolve_project_dir(args.project_dir))
    table = Table(title="Task templates")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Retries", justify="right")
    table.add_column("Timeout (s)", justify="right")
    table.add_column("Parameters", justify="right")
    for template in catalog.list_templates():
        table.add_row(
            template.id,
            template.name,
            template.task_type.value,
            str(template.max_retries),
            str(template.timeout),
            str(len(template.parameters)),
        )
    _console().print(table)
    return 0


def _simulate(args: argparse.Namespace, config: dict[str, Any]) -> int:
    project_dir = _resolve_project_dir(args.project_dir)
    catalog = _load_catalog(config, project_dir)
    policy = SimulationPolicy.from_config({"simulation": get_simulation_config(config)})
    overrides: dict[str, Any] = {}
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.success_rate is not None:
        overrides["success_rate"] = args.success_rate
    if overrides:
        policy = replace(policy, **overrides)

    templates = catalog.list_templates()
    if not templates:
        sys.stderr.write("No active templates to simulate\n")
        return 1

    scheduler = ManualTickScheduler()
    registry = TaskRegistry(catalog, ExecutionDriver(scheduler, policy))
    for index in range(args.count):
        template = templates[index % len(templates)]
        task = registry.create_task(
            {
                "template_id": template.id,
                "agent_id": f"agent-{index % args.agents + 1}",
                "parameters": template.default_parameters(),
                "tags": ["simulation"],
            }
        )
        registry.execute_task(task.id)

    delivered = scheduler.advance(args.ticks)
    logger.info("Simulation delivered {} ticks", delivered)

    tasks = registry.snapshot()
    stats = registry.statistics()
    if args.save:
        save_snapshot(_default_snapshot_path(project_dir), tasks)
    if args.snapshot:
        save_snapshot(Path(args.snapshot).expanduser(), tasks)
    registry.shutdown()

    if args.json:
        sys.stdout.write(json.dumps({"tasks": [t.to_dict() for t in tasks], "statistics": stats.to_dict()}, indent=2) + "\n")
        return 0
    console = _console()
    _render_tasks(console, tasks)
    _render_statistics(console, stats)
    return 0


def _stats(args: argparse.Namespace, config: dict[str, Any]) -> int:
    if args.snapshot:
        path = Path(args.snapshot).expanduser()
    else:
        path = _default_snapshot_path(_resolve_project_dir(args.project_dir))
    tasks = load_snapshot(path)
    stats = compute_statistics(tasks)
    if args.json:
        sys.stdout.write(json.dumps(stats.to_dict(), indent=2) + "\n")
        return 0
    _render_statistics(_console(), stats)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Agent task engine CLI")
    parser.add_argument("--project-dir", default=None, help="Project directory holding .task_engine/ (default: cwd)")
    parser.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=sorted(VALID_LOG_LEVELS),
        help="Log level (default: from config, else INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    templates = subparsers.add_parser("templates", help="List task templates")
    templates.set_defaults(func=_templates)

    simulate = subparsers.add_parser("simulate", help="Run a scripted simulation")
    simulate.add_argument("--count", type=int, default=6, help="Number of tasks to create")
    simulate.add_argument("--agents", type=int, default=3, help="Number of simulated agents")
    simulate.add_argument("--ticks", type=int, default=50, help="Maximum tick rounds to deliver")
    simulate.add_argument("--seed", type=int, default=None)
    simulate.add_argument("--success-rate", type=float, default=None)
    simulate.add_argument("--snapshot", default=None, help="Write the resulting tasks to this YAML file")
    simulate.add_argument(
        "--save",
        action="store_true",
        help=f"Write the resulting tasks to {STATE_DIR_NAME}/{SNAPSHOT_FILE} under the project dir",
    )
    simulate.add_argument("--json", action="store_true", help="Print JSON instead of tables")
    simulate.set_defaults(func=_simulate)

    stats = subparsers.add_parser("stats", help="Print statistics for a task snapshot")
    stats.add_argument(
        "--snapshot",
        default=None,
        help=f"YAML snapshot written by 'simulate' (default: {STATE_DIR_NAME}/{SNAPSHOT_FILE})",
    )
    stats.add_argument("--json", action="store_true", help="Print JSON instead of tables")
    stats.set_defaults(func=_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config, err = load_engine_config(_resolve_project_dir(args.project_dir))
    if err:
        sys.stderr.write(f"Invalid engine config: {err}\n")
        return 1
    configure_logging(args.log_level or get_log_level(config))

    if getattr(args, "count", 1) < 0 or getattr(args, "agents", 1) < 1:
        sys.stderr.write("--count must be >= 0 and --agents must be >= 1\n")
        return 1

    try:
        return int(args.func(args, config) or 0)
    except (TaskEngineError, ValueError) as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
