"""Load optional engine configuration from `.task_engine/config.yaml`."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from .constants import CONFIG_FILE, STATE_DIR_NAME
from .io_utils import _load_data_with_error

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def config_path(project_dir: Path) -> Path:
    return project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE


def load_engine_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional engine config file.

    Args:
        project_dir: Project root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = config_path(project_dir)
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def get_simulation_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the `simulation` block, or an empty dict if not present."""
    raw = _get_nested(config, "simulation")
    return raw if isinstance(raw, dict) else {}


def get_templates_path(config: dict[str, Any], project_dir: Path) -> Optional[Path]:
    """Resolve `templates.path` relative to the state directory.

    Returns:
        The template YAML path, or None when no extra templates are configured.
    """
    raw = _get_nested(config, "templates", "path")
    if not isinstance(raw, str) or not raw.strip():
        return None
    path = Path(raw.strip()).expanduser()
    if not path.is_absolute():
        path = project_dir.resolve() / STATE_DIR_NAME / path
    return path


def get_log_level(config: dict[str, Any], default: str = "INFO") -> str:
    raw = _get_nested(config, "logging", "level")
    if isinstance(raw, str) and raw.upper() in VALID_LOG_LEVELS:
        return raw.upper()
    return default
