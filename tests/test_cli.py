"""Tests for the agent-task-engine CLI."""

from __future__ import annotations

import json

import pytest
import yaml
from loguru import logger

from agent_task_engine.cli import main


@pytest.fixture(autouse=True)
def _drop_log_sinks():
    yield
    # main() binds a sink to the captured stderr of each test.
    logger.remove()


def _run(capsys, *argv: str) -> tuple[int, str, str]:
    code = main(["--log-level", "ERROR", *argv])
    out, err = capsys.readouterr()
    return code, out, err


class TestTemplatesCommand:
    def test_lists_builtin_templates(self, tmp_path, capsys):
        code, out, _ = _run(capsys, "--project-dir", str(tmp_path), "templates")
        assert code == 0
        assert "Task templates" in out
        assert "laptop_purchase" in out

    def test_includes_configured_templates(self, tmp_path, capsys):
        state = tmp_path / ".task_engine"
        state.mkdir()
        (state / "templates.yaml").write_text(
            yaml.safe_dump({"templates": [{"id": "tpl_backup", "name": "Backup", "task_type": "automation"}]}),
            encoding="utf-8",
        )
        (state / "config.yaml").write_text(yaml.safe_dump({"templates": {"path": "templates.yaml"}}), encoding="utf-8")
        code, out, _ = _run(capsys, "--project-dir", str(tmp_path), "templates")
        assert code == 0
        assert "tpl_backup" in out

    def test_invalid_config_fails(self, tmp_path, capsys):
        state = tmp_path / ".task_engine"
        state.mkdir()
        (state / "config.yaml").write_text("logging: [", encoding="utf-8")
        code, _, err = _run(capsys, "--project-dir", str(tmp_path), "templates")
        assert code == 1
        assert "Invalid engine config" in err

    def test_unparseable_templates_file_fails(self, tmp_path, capsys):
        state = tmp_path / ".task_engine"
        state.mkdir()
        (state / "templates.yaml").write_text("templates: [\n  - id: x\n", encoding="utf-8")
        (state / "config.yaml").write_text(yaml.safe_dump({"templates": {"path": "templates.yaml"}}), encoding="utf-8")
        code, _, err = _run(capsys, "--project-dir", str(tmp_path), "templates")
        assert code == 1
        assert err.startswith("Error: Cannot load templates: templates.yaml: YAMLError")


class TestGlobalOptions:
    def test_log_level_is_case_insensitive(self, tmp_path, capsys):
        assert main(["--log-level", "debug", "--project-dir", str(tmp_path), "templates"]) == 0

    def test_unknown_log_level_is_a_usage_error(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--log-level", "loud", "--project-dir", str(tmp_path), "templates"])
        assert exc.value.code == 2
        assert "invalid choice: 'LOUD'" in capsys.readouterr().err


class TestSimulateAndStats:
    def test_simulate_json_and_stats_from_snapshot(self, tmp_path, capsys):
        snapshot = tmp_path / "snap.yaml"
        code, out, _ = _run(
            capsys,
            "--project-dir", str(tmp_path),
            "simulate", "--count", "4", "--ticks", "200", "--seed", "11",
            "--success-rate", "1.0", "--snapshot", str(snapshot), "--json",
        )
        assert code == 0
        data = json.loads(out)
        assert len(data["tasks"]) == 4
        assert {t["status"] for t in data["tasks"]} == {"completed"}
        assert data["statistics"]["success_rate"] == 1.0
        assert {t["agent_id"] for t in data["tasks"]} == {"agent-1", "agent-2", "agent-3"}

        code, out, _ = _run(capsys, "--project-dir", str(tmp_path), "stats", "--snapshot", str(snapshot), "--json")
        assert code == 0
        stats = json.loads(out)
        assert stats["total_tasks"] == 4
        assert stats["completed_tasks"] == 4

    def test_simulate_tables(self, tmp_path, capsys):
        code, out, _ = _run(capsys, "--project-dir", str(tmp_path), "simulate", "--count", "2", "--ticks", "1", "--seed", "5")
        assert code == 0
        assert "Tasks" in out
        assert "Statistics" in out
        assert "running" in out

    def test_stats_missing_snapshot(self, tmp_path, capsys):
        code, _, err = _run(capsys, "--project-dir", str(tmp_path), "stats", "--snapshot", str(tmp_path / "none.yaml"))
        assert code == 1
        assert err.startswith("Error: Snapshot file not found")

    def test_bad_success_rate(self, tmp_path, capsys):
        code, _, err = _run(capsys, "--project-dir", str(tmp_path), "simulate", "--success-rate", "2")
        assert code == 1
        assert "success_rate" in err

    def test_save_writes_default_snapshot_for_stats(self, tmp_path, capsys):
        code, _, _ = _run(
            capsys,
            "--project-dir", str(tmp_path),
            "simulate", "--count", "3", "--ticks", "200", "--seed", "3", "--success-rate", "0.0", "--save", "--json",
        )
        assert code == 0
        assert (tmp_path / ".task_engine" / "tasks_snapshot.yaml").exists()

        code, out, _ = _run(capsys, "--project-dir", str(tmp_path), "stats", "--json")
        assert code == 0
        stats = json.loads(out)
        assert stats["total_tasks"] == 3
        assert stats["failed_tasks"] == 3
