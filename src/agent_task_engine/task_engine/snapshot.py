"""Persist the task collection as a single YAML document."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from loguru import logger

from ..constants import SNAPSHOT_VERSION
from ..io_utils import _atomic_write_yaml, _load_data_with_error
from ..utils import _now_iso
from .errors import TaskEngineError
from .model import Task


class SnapshotError(TaskEngineError):
    """A snapshot file could not be read."""


def save_snapshot(path: Path, tasks: Iterable[Task]) -> int:
    """Write *tasks* to *path* atomically; returns the number of tasks written."""
    items = [task.to_dict() for task in tasks]
    _atomic_write_yaml(
        path,
        {
            "version": SNAPSHOT_VERSION,
            "saved_at": _now_iso(),
            "tasks": items,
        },
    )
    logger.info("Saved {} tasks to {}", len(items), path)
    return len(items)


def load_snapshot(path: Path) -> list[Task]:
    """Read tasks written by :func:`save_snapshot`.

    Raises:
        SnapshotError: If the file is missing, unreadable or not a snapshot.
    """
    if not path.exists():
        raise SnapshotError(f"Snapshot file not found: {path}")
    data, err = _load_data_with_error(path, {})
    if err:
        raise SnapshotError(err)
    version = data.get("version")
    if version != SNAPSHOT_VERSION:
        raise SnapshotError(f"{path.name}: unsupported snapshot version {version!r}")
    raw_tasks = data.get("tasks")
    if not isinstance(raw_tasks, list):
        raise SnapshotError(f"{path.name}: 'tasks' must be a list")

    tasks: list[Task] = []
    for entry in raw_tasks:
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed snapshot entry in {}: {!r}", path, entry)
            continue
        tasks.append(Task.from_dict(entry))
    logger.debug("Loaded {} tasks from {}", len(tasks), path)
    return tasks
