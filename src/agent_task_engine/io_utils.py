"""YAML file helpers shared by configuration and snapshot persistence."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml


def _load_data_with_error(
    path: Path,
    default: dict[str, Any],
) -> tuple[dict[str, Any], str | None]:
    """
    Load a YAML mapping and return (data, error_message).

    Parse and IO failures are reported instead of raised so callers can refuse
    to overwrite a corrupted file.
    """
    if not path.exists():
        return default, None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        return default, f"{path.name}: {exc.__class__.__name__}: {exc}"
    except yaml.YAMLError as exc:
        return default, f"{path.name}: YAMLError: {exc}"
    if data is None:
        return default, None
    if not isinstance(data, dict):
        return default, f"{path.name}: expected mapping, got {type(data).__name__}"
    return data, None


def _atomic_write_yaml(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(
            data,
            handle,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)
