"""Tests for YAML snapshot persistence."""

from __future__ import annotations

import pytest
import yaml

from agent_task_engine.task_engine.model import TaskStatus
from agent_task_engine.task_engine.snapshot import SnapshotError, load_snapshot, save_snapshot


class TestSnapshot:
    def test_round_trip(self, tmp_path, registry, scheduler, create):
        done = create(tags=["keep"], metadata={"origin": "test"})
        laptop = create(template_id="template_laptop_purchase", parameters={"budget_max": 9000})
        create()
        registry.execute_task(done.id)
        registry.execute_task(laptop.id)
        scheduler.run_until_idle()

        path = tmp_path / "state" / "tasks.yaml"
        assert save_snapshot(path, registry.snapshot()) == 3
        assert not path.with_suffix(".yaml.tmp").exists()

        loaded = {t.id: t for t in load_snapshot(path)}
        assert loaded[done.id].to_dict() == registry.get_task(done.id).to_dict()
        assert loaded[laptop.id].status == TaskStatus.COMPLETED
        assert loaded[laptop.id].result.data["type"] == "laptop_purchase_result"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SnapshotError, match="not found"):
            load_snapshot(tmp_path / "nope.yaml")

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("tasks: [unclosed", encoding="utf-8")
        with pytest.raises(SnapshotError, match="YAMLError"):
            load_snapshot(path)

    def test_wrong_version(self, tmp_path):
        path = tmp_path / "old.yaml"
        path.write_text(yaml.safe_dump({"version": 99, "tasks": []}), encoding="utf-8")
        with pytest.raises(SnapshotError, match="version"):
            load_snapshot(path)

    def test_malformed_entries_are_skipped(self, tmp_path):
        path = tmp_path / "mixed.yaml"
        path.write_text(
            yaml.safe_dump({"version": 1, "tasks": ["junk", {"id": "task-1", "status": "paused"}]}),
            encoding="utf-8",
        )
        tasks = load_snapshot(path)
        assert [(t.id, t.status) for t in tasks] == [("task-1", TaskStatus.PAUSED)]
