from __future__ import annotations

import contextlib
import io
import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from flowtasks import cli
from flowtasks.tools import (
    ai_refine,
    apply_ops,
    backup_merged,
    export_overlay,
    import_overlay,
    validate_suggestion,
)

REPO_ROOT = Path(__file__).resolve().parents[1]
FIXTURE = REPO_ROOT / "tests" / "fixtures" / "base_dataset_fixture.json"
OVERLAY_NAME = "flowtasks_overlay_v1.json"


class _FakeResponse:
    def __init__(self, payload: dict):
        self._payload = payload

    def read(self) -> bytes:
        return json.dumps(self._payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def _run(main, argv):
    out, err = io.StringIO(), io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        rc = main(argv)
    return rc, out.getvalue(), err.getvalue()


class _ToolCase(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.td = Path(self._td.name)
        self.home = self.td / "home"
        self.base = self.td / "tasks.json"
        shutil.copyfile(FIXTURE, self.base)

    def tearDown(self) -> None:
        self._td.cleanup()

    def session_args(self) -> list:
        return ["--home", str(self.home), "--base", str(self.base), "--tz", "UTC"]

    def overlay(self) -> dict:
        return json.loads((self.home / OVERLAY_NAME).read_text(encoding="utf-8"))


class TestValidateSuggestionToolContract(_ToolCase):
    def test_ok_and_invalid(self) -> None:
        p = self.td / "suggestion.txt"
        p.write_text(
            'Model says: {"summary": "s", "ops": [{"op": "update", "id": "A", "fields": {"title": "x"}},'
            ' {"op": "delete", "id": "B"}]}',
            encoding="utf-8",
        )
        rc, out, _ = _run(validate_suggestion.main, ["--in", str(p)])
        self.assertEqual(rc, 0)
        self.assertIn("OK: 2 op(s), 1 auto, 1 review", out)

        p.write_text('{"ops": [{"op": "update", "id": "A"}]}', encoding="utf-8")
        rc, _, err = _run(validate_suggestion.main, ["--in", str(p)])
        self.assertEqual(rc, 3)
        self.assertIn("add/update must include fields{}", err)

        rc, _, err = _run(validate_suggestion.main, ["--in", str(self.td / "missing.txt")])
        self.assertEqual(rc, 2)


class TestApplyOpsToolContract(_ToolCase):
    def test_apply_all_and_auto(self) -> None:
        ops = self.td / "ops.json"
        ops.write_text(
            json.dumps(
                {
                    "summary": "s",
                    "ops": [
                        {"op": "update", "id": "A", "fields": {"title": "Draft Q4 report"}},
                        {"op": "update", "id": "B", "fields": {"due_date": "2026-11-01"}},
                    ],
                }
            ),
            encoding="utf-8",
        )
        rc, out, _ = _run(apply_ops.main, self.session_args() + ["--ops", str(ops), "--mode", "auto"])
        self.assertEqual(rc, 0)
        self.assertIn("applied 1 op(s), 1 left for review", out)
        self.assertEqual(self.overlay()["task_overrides"], {"A": {"title": "Draft Q4 report"}})

        rc, out, _ = _run(apply_ops.main, self.session_args() + ["--ops", str(ops)])
        self.assertEqual(rc, 0)
        self.assertEqual(self.overlay()["task_overrides"]["B"], {"due_date": "2026-11-01"})

    def test_invalid_payload_and_missing_base(self) -> None:
        ops = self.td / "ops.json"
        ops.write_text('{"ops": [{"op": "nuke", "id": "A"}]}', encoding="utf-8")
        rc, _, err = _run(apply_ops.main, self.session_args() + ["--ops", str(ops)])
        self.assertEqual(rc, 3)
        self.assertIn("Unsupported op: nuke", err)

        ops.write_text('{"ops": []}', encoding="utf-8")
        args = ["--home", str(self.home), "--base", str(self.td / "nope.json"), "--ops", str(ops)]
        rc, _, err = _run(apply_ops.main, args)
        self.assertEqual(rc, 2)
        self.assertIn("[flowtasks-apply-ops] ERROR:", err)


class TestOverlayTransferToolsContract(_ToolCase):
    def test_export_import_round_trip(self) -> None:
        exported = self.td / "overrides.json"
        imp = self.td / "incoming.json"
        imp.write_text(json.dumps({"deletions": ["A"], "task_overrides": {"B": {"priority": 1}}}), encoding="utf-8")

        rc, out, _ = _run(import_overlay.main, ["--home", str(self.home), "--in", str(imp)])
        self.assertEqual(rc, 0)
        self.assertIn("Overlays: 1 del • 1 patch • 0 new", out)

        rc, _, _ = _run(export_overlay.main, ["--home", str(self.home), "--out", str(exported)])
        self.assertEqual(rc, 0)
        data = json.loads(exported.read_text(encoding="utf-8"))
        self.assertEqual(data["deletions"], ["A"])
        self.assertEqual(data["task_overrides"], {"B": {"priority": 1}})

    def test_import_invalid_json(self) -> None:
        imp = self.td / "incoming.json"
        imp.write_text("{nope", encoding="utf-8")
        rc, _, err = _run(import_overlay.main, ["--home", str(self.home), "--in", str(imp)])
        self.assertEqual(rc, 2)
        self.assertIn("Invalid JSON", err)
        self.assertFalse((self.home / OVERLAY_NAME).exists())

    def test_backup_merged(self) -> None:
        out_path = self.td / "merged.json"
        rc, _, _ = _run(backup_merged.main, self.session_args() + ["--out", str(out_path)])
        self.assertEqual(rc, 0)
        merged = json.loads(out_path.read_text(encoding="utf-8"))
        self.assertEqual([t["id"] for t in merged["tasks"]], ["A", "B", "C", "D", "E"])
        self.assertIn("__overlays", merged)


class TestAiRefineToolContract(_ToolCase):
    def test_refine_with_mocked_provider(self) -> None:
        self.home.mkdir(parents=True)
        (self.home / "flowtasks_ai_settings_v2.json").write_text(
            json.dumps({"enabled": True, "provider": "openai", "api_key": "sk-1", "remember_key": True}),
            encoding="utf-8",
        )
        content = json.dumps(
            {
                "summary": "Sharper title",
                "ops": [
                    {"op": "update", "id": "B", "fields": {"title": "Book venue for launch"}},
                    {"op": "update", "id": "B", "fields": {"start_date": "2026-10-13"}, "reason": "lead time"},
                ],
            }
        )
        fake = _FakeResponse({"choices": [{"message": {"content": content}}]})
        pending = self.td / "pending.json"
        with mock.patch("flowtasks.ai.providers.request.urlopen", return_value=fake):
            rc, out, _ = _run(ai_refine.main, self.session_args() + ["--id", "B", "--pending-out", str(pending)])
        self.assertEqual(rc, 0)
        self.assertIn("Sharper title · 1 safe tweak applied · 1 change to review", out)
        self.assertIn("review: update B (lead time)", out)
        self.assertEqual(self.overlay()["task_overrides"]["B"], {"title": "Book venue for launch"})
        self.assertEqual(json.loads(pending.read_text(encoding="utf-8"))["ops"][0]["fields"], {"start_date": "2026-10-13"})

    def test_refine_disabled(self) -> None:
        rc, _, err = _run(ai_refine.main, self.session_args() + ["--id", "B"])
        self.assertEqual(rc, 4)
        self.assertIn("Enable AI in settings", err)


class TestCliContract(_ToolCase):
    def test_actions_and_json_listing(self) -> None:
        rc, out, _ = _run(cli.main, self.session_args() + ["--done", "A"])
        self.assertEqual(rc, 0)
        self.assertIn("Completed", out)

        rc, out, _ = _run(cli.main, self.session_args() + ["--view", "completed", "--json"])
        self.assertEqual(rc, 0)
        self.assertEqual(sorted(t["id"] for t in json.loads(out)), ["A", "C"])

        rc, out, _ = _run(cli.main, self.session_args() + ["--add", "Call plumber", "--view", "upcoming", "--json"])
        self.assertEqual(rc, 0)
        titles = [t["title"] for t in json.loads(out)]
        self.assertIn("Call plumber", titles)

    def test_text_listing_and_errors(self) -> None:
        rc, out, _ = _run(cli.main, self.session_args() + ["--view", "pillars"])
        self.assertEqual(rc, 0)
        self.assertIn("Pillars Dashboard", out)
        self.assertIn("Operations:", out)

        rc, _, err = _run(cli.main, self.session_args() + ["--done", "missing"])
        self.assertEqual(rc, 2)
        self.assertIn("Unknown item: missing", err)

        rc, _, err = _run(cli.main, self.session_args() + ["--to-today", "missing"])
        self.assertEqual(rc, 2)
        self.assertIn("Unknown item: missing", err)
        self.assertEqual(self.overlay()["task_overrides"], {})

        rc, _, err = _run(cli.main, ["--home", str(self.home), "--base", str(self.td / "nope.json")])
        self.assertEqual(rc, 2)
        self.assertIn("[flowtasks] ERROR:", err)


if __name__ == "__main__":
    unittest.main(verbosity=2)
