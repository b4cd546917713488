"""
Tests for the save manager: envelopes, checksums, autosave backups,
manual save pruning and import/export.
"""

import json
import os

import pytest

from systems.persistence import (
    SaveManager, compute_checksum, validate_save_data, sanitize_slot_name,
    AUTOSAVE_ID, SAVE_FORMAT_VERSION,
)


@pytest.fixture
def manager(tmp_path):
    return SaveManager(save_dir=str(tmp_path / "saves"))


def snapshot(week=5):
    return {"game_state": {"time": {"week": week, "year": 1}}, "rng": {"seed": 1}}


class TestEnvelope:
    def test_save_writes_envelope(self, manager):
        save_id = manager.save(snapshot(), "First Term")

        with open(os.path.join(manager.save_dir, f"{save_id}.json")) as f:
            envelope = json.load(f)

        assert save_id.startswith("First_Term_")
        assert envelope["name"] == "First Term"
        assert envelope["version"] == SAVE_FORMAT_VERSION
        assert envelope["checksum"] == compute_checksum(envelope)
        assert envelope["data"] == snapshot()

    def test_validation_reports_missing_fields(self):
        ok, error = validate_save_data({"id": "x"})
        assert not ok
        assert "Missing required fields" in error

    def test_validation_rejects_non_dict(self):
        assert validate_save_data(None) == (False, "Save data is not a valid dictionary")

    def test_checksum_detects_tampering(self, manager):
        save_id = manager.save(snapshot(), "Tampered")
        path = os.path.join(manager.save_dir, f"{save_id}.json")
        with open(path) as f:
            envelope = json.load(f)
        envelope["data"]["game_state"]["time"]["week"] = 40
        with open(path, "w") as f:
            json.dump(envelope, f)

        assert manager.load(save_id) is None

    def test_slot_names_sanitized(self):
        assert sanitize_slot_name("../../etc/passwd") == "etcpasswd"
        assert sanitize_slot_name("my save 1") == "my_save_1"


class TestLoad:
    def test_round_trip(self, manager):
        save_id = manager.save(snapshot(week=9))
        assert manager.load(save_id) == snapshot(week=9)

    def test_missing_save(self, manager):
        assert manager.load("nothing_here") is None

    def test_malformed_file(self, manager):
        with open(os.path.join(manager.save_dir, "broken.json"), "w") as f:
            f.write("{not json")
        assert manager.load("broken") is None

    def test_saved_data_is_independent_of_caller(self, manager):
        data = snapshot()
        save_id = manager.save(data)
        data["game_state"]["time"]["week"] = 99
        assert manager.load(save_id)["game_state"]["time"]["week"] == 5

    def test_unserializable_snapshot(self, manager):
        assert manager.save({"bad": object()}) is None


class TestAutosave:
    def test_autosave_overwrites_single_slot(self, manager):
        assert manager.autosave(snapshot(week=4)) == AUTOSAVE_ID
        assert manager.autosave(snapshot(week=8)) == AUTOSAVE_ID

        assert manager.load(AUTOSAVE_ID) == snapshot(week=8)
        assert [s["id"] for s in manager.list_saves()] == [AUTOSAVE_ID]

    def test_previous_autosave_backed_up(self, manager):
        manager.autosave(snapshot(week=4))
        manager.autosave(snapshot(week=8))
        backups = os.listdir(os.path.join(manager.save_dir, "backups"))
        assert len(backups) == 1

    def test_backups_rotate(self, manager):
        for week in range(10):
            manager.autosave(snapshot(week=week))
        backups = os.listdir(os.path.join(manager.save_dir, "backups"))
        assert len(backups) == 5

    def test_corrupt_autosave_falls_back_to_backup(self, manager):
        manager.autosave(snapshot(week=4))
        manager.autosave(snapshot(week=8))
        with open(os.path.join(manager.save_dir, "autosave.json"), "w") as f:
            f.write("garbage")

        assert manager.load(AUTOSAVE_ID) == snapshot(week=4)


class TestManualSaves:
    def test_list_newest_first(self, manager):
        first = manager.save(snapshot(), "one")
        second = manager.save(snapshot(), "two")
        ids = [s["id"] for s in manager.list_saves()]
        assert ids == [second, first]

    def test_oldest_manual_saves_pruned(self, tmp_path):
        manager = SaveManager(save_dir=str(tmp_path / "saves"), max_manual_saves=3)
        manager.autosave(snapshot())
        ids = [manager.save(snapshot(), f"save {i}") for i in range(5)]

        remaining = {s["id"] for s in manager.list_saves()}

        assert remaining == set(ids[-3:]) | {AUTOSAVE_ID}

    def test_delete(self, manager):
        save_id = manager.save(snapshot())
        assert manager.delete(save_id) is True
        assert manager.delete(save_id) is False
        assert manager.list_saves() == []


class TestImportExport:
    def test_export_then_import_creates_new_save(self, manager):
        save_id = manager.save(snapshot(week=12), "Exported")
        text = manager.export_save(save_id)

        new_id = manager.import_save(text)

        assert new_id != save_id
        assert manager.load(new_id) == snapshot(week=12)
        names = {s["name"] for s in manager.list_saves()}
        assert "Exported (imported)" in names

    def test_import_rejects_garbage(self, manager):
        assert manager.import_save("not json") is None
        assert manager.import_save(json.dumps({"id": "x"})) is None

    def test_export_missing(self, manager):
        assert manager.export_save("nope") is None
