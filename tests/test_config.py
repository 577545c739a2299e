"""Tests for engine config loading and logging setup."""

from __future__ import annotations

from pathlib import Path

import yaml
from loguru import logger

from agent_task_engine.config import (
    get_log_level,
    get_simulation_config,
    get_templates_path,
    load_engine_config,
)
from agent_task_engine.logging_utils import configure_logging
from agent_task_engine.task_engine.driver import SimulationPolicy


def _write_config(project_dir: Path, text: str) -> Path:
    path = project_dir / ".task_engine" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadEngineConfig:
    def test_missing_file(self, tmp_path):
        assert load_engine_config(tmp_path) == ({}, None)

    def test_valid_file(self, tmp_path):
        _write_config(
            tmp_path,
            yaml.safe_dump(
                {
                    "simulation": {"success_rate": 0.5, "seed": 3},
                    "templates": {"path": "templates.yaml"},
                    "logging": {"level": "debug"},
                }
            ),
        )
        config, err = load_engine_config(tmp_path)
        assert err is None
        assert get_simulation_config(config) == {"success_rate": 0.5, "seed": 3}
        assert get_templates_path(config, tmp_path) == tmp_path.resolve() / ".task_engine" / "templates.yaml"
        assert get_log_level(config) == "DEBUG"
        policy = SimulationPolicy.from_config(config)
        assert (policy.success_rate, policy.seed) == (0.5, 3)

    def test_invalid_yaml_reports_error(self, tmp_path):
        _write_config(tmp_path, "simulation: [oops")
        config, err = load_engine_config(tmp_path)
        assert config == {}
        assert "YAMLError" in err

    def test_non_mapping_reports_error(self, tmp_path):
        _write_config(tmp_path, "- just\n- a list\n")
        config, err = load_engine_config(tmp_path)
        assert config == {}
        assert "expected mapping" in err

    def test_empty_file_is_empty_config(self, tmp_path):
        _write_config(tmp_path, "")
        assert load_engine_config(tmp_path) == ({}, None)


class TestConfigHelpers:
    def test_defaults_for_missing_sections(self):
        assert get_simulation_config({"simulation": "nope"}) == {}
        assert get_templates_path({}, Path("/tmp")) is None
        assert get_log_level({"logging": {"level": "chatty"}}) == "INFO"

    def test_absolute_template_path(self, tmp_path):
        target = tmp_path / "elsewhere.yaml"
        assert get_templates_path({"templates": {"path": str(target)}}, Path("/tmp")) == target


class TestConfigureLogging:
    def test_installs_single_sink(self, capsys):
        sink_id = configure_logging("warning")
        try:
            logger.info("hidden message")
            logger.warning("visible message")
            err = capsys.readouterr().err
        finally:
            logger.remove(sink_id)
        assert "visible message" in err
        assert "hidden message" not in err
