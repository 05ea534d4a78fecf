from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from flowtasks.errors import StructuralError
from flowtasks.overlay import (
    MemoryOverlayStore,
    OverlayStore,
    default_overlay,
    export_overlay,
    format_overlay_stats,
    import_overlay,
    normalize_overlay,
    overlay_stats,
)

_TOP_KEYS = {
    "version",
    "updated_at",
    "deletions",
    "task_overrides",
    "new_tasks",
    "recurrence_overrides",
    "learning",
}


def _populated() -> dict:
    ov = default_overlay()
    ov["deletions"] = ["A", "temp_z"]
    ov["task_overrides"] = {"B": {"title": "Book bigger venue", "priority": 1}}
    ov["new_tasks"] = [{"id": "temp_1", "title": "Call caterer", "type": "task", "priority": 2}]
    ov["recurrence_overrides"] = {"R1": {"enabled": False}}
    ov["learning"]["completion_log"] = [{"id": "B", "completed": True, "at": "2026-10-01T09:00:00.000Z"}]
    ov["learning"]["move_log"] = [
        {"id": "B", "from": {"due_date": None}, "to": {"due_date": "2026-10-02"}, "reason": "manual", "at": "x"}
    ]
    ov["learning"]["stats"] = {"moves": 1, "completes": 1}
    return ov


class TestOverlayStoreContract(unittest.TestCase):
    def test_default_scaffold_shape(self) -> None:
        ov = default_overlay()
        self.assertEqual(set(ov), _TOP_KEYS)
        self.assertEqual(ov["learning"]["stats"], {"moves": 0, "completes": 0})

    def test_load_missing_returns_defaults(self) -> None:
        ov = MemoryOverlayStore().load()
        self.assertEqual(set(ov), _TOP_KEYS)
        self.assertEqual(ov["deletions"], [])

    def test_load_corrupt_json_returns_defaults(self) -> None:
        for raw in ("{not json", "[1, 2, 3]", "42", "null"):
            ov = MemoryOverlayStore(raw).load()
            self.assertEqual(set(ov), _TOP_KEYS, raw)
            self.assertEqual(ov["task_overrides"], {}, raw)

    def test_each_level_recovers_independently(self) -> None:
        raw = json.dumps(
            {
                "deletions": ["A", "", 7, "A", "B"],
                "task_overrides": {"C": {"title": "ok"}, "D": "junk"},
                "new_tasks": "not a list",
                "recurrence_overrides": {"R1": {"enabled": "nope"}, "R2": {"enabled": False}},
                "learning": "corrupt",
                "mystery": {"x": 1},
            }
        )
        ov = MemoryOverlayStore(raw).load()
        self.assertEqual(ov["deletions"], ["A", "B"])
        self.assertEqual(ov["task_overrides"], {"C": {"title": "ok"}})
        self.assertEqual(ov["new_tasks"], [])
        self.assertEqual(ov["recurrence_overrides"], {"R1": {"enabled": True}, "R2": {"enabled": False}})
        self.assertEqual(ov["learning"], default_overlay()["learning"])
        self.assertNotIn("mystery", ov)

    def test_learning_subfields_recover_independently(self) -> None:
        ov = normalize_overlay(
            {"learning": {"completion_log": [{"id": "A"}, "x"], "move_log": {}, "stats": {"moves": -3, "completes": 5}}}
        )
        self.assertEqual(ov["learning"]["completion_log"], [{"id": "A"}])
        self.assertEqual(ov["learning"]["move_log"], [])
        self.assertEqual(ov["learning"]["stats"], {"moves": 0, "completes": 5})

    def test_save_stamps_updated_at_and_persists(self) -> None:
        store = MemoryOverlayStore()
        ov = store.open()
        ov["updated_at"] = "old"
        ov["deletions"].append("A")
        self.assertTrue(store.save(ov))
        self.assertNotEqual(ov["updated_at"], "old")
        self.assertEqual(store.writes, 1)
        self.assertEqual(json.loads(store.raw)["deletions"], ["A"])

    def test_file_store_lifecycle_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "nested" / "flowtasks_overlay_v1.json"
            with OverlayStore(path) as store:
                store.overlay["deletions"].append("A")
                store.overlay["task_overrides"]["B"] = {"priority": 1}
            self.assertTrue(path.exists())
            self.assertFalse(path.with_name(path.name + ".tmp").exists())

            reopened = OverlayStore(path).open()
            self.assertEqual(reopened["deletions"], ["A"])
            self.assertEqual(reopened["task_overrides"], {"B": {"priority": 1}})

    def test_save_failure_is_reported_not_raised(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            # The target path is an existing directory, so the final replace fails.
            path = Path(td) / "overlay.json"
            path.mkdir()
            store = OverlayStore(path)
            self.assertFalse(store.save(default_overlay()))

    def test_export_import_round_trip(self) -> None:
        ov = _populated()
        self.assertEqual(import_overlay(export_overlay(ov)), ov)

    def test_import_rejects_invalid_json(self) -> None:
        with self.assertRaises(StructuralError):
            import_overlay("{broken")
        with self.assertRaises(StructuralError):
            import_overlay("[]")

    def test_import_renormalizes(self) -> None:
        ov = import_overlay(json.dumps({"deletions": "A", "new_tasks": [{"id": "temp_1"}]}))
        self.assertEqual(ov["deletions"], [])
        self.assertEqual(ov["new_tasks"], [{"id": "temp_1"}])
        self.assertEqual(set(ov), _TOP_KEYS)

    def test_replace_normalizes_and_saves(self) -> None:
        store = MemoryOverlayStore()
        store.replace({"deletions": ["X"]})
        self.assertEqual(store.overlay["deletions"], ["X"])
        self.assertEqual(set(store.overlay), _TOP_KEYS)
        self.assertEqual(store.writes, 1)

    def test_stats(self) -> None:
        s = overlay_stats(_populated())
        self.assertEqual((s["deletions"], s["patches"], s["new_tasks"]), (2, 1, 1))
        self.assertIsInstance(s["size_kb"], int)
        self.assertTrue(format_overlay_stats(_populated()).startswith("Overlays: 2 del • 1 patch • 1 new"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
