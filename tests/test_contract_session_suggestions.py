from __future__ import annotations

import asyncio
import json
import threading
import unittest
from pathlib import Path

from flowtasks.ai.interface import NOOP_SERVICE, UpdateOp
from flowtasks.merge import find_item
from flowtasks.overlay import MemoryOverlayStore
from flowtasks.session import Session, review_summary

REPO_ROOT = Path(__file__).resolve().parents[1]
FIXTURE = REPO_ROOT / "tests" / "fixtures" / "base_dataset_fixture.json"


def _base() -> dict:
    return json.loads(FIXTURE.read_text(encoding="utf-8"))


class _ScriptedService:
    """Returns a fixed response and records every call."""

    def __init__(self, text: str):
        self.text = text
        self.calls = []

    def complete(self, system, user, context):
        self.calls.append((system, user, context))
        return self.text


class _FailingService:
    def complete(self, system, user, context):
        raise ConnectionError("socket closed")


class _GatedService:
    """Blocks each refine call until the gate for that item id is opened."""

    def __init__(self, responses):
        self.responses = responses
        self.gates = {item_id: threading.Event() for item_id in responses}

    def complete(self, system, user, context):
        for item_id, text in self.responses.items():
            if f'"id": "{item_id}"' in user:
                if not self.gates[item_id].wait(timeout=5):
                    raise TimeoutError(f"gate for {item_id} never opened")
                return text
        raise AssertionError("unexpected prompt")


def _session(service) -> Session:
    return Session(_base(), MemoryOverlayStore(), service=service, tz_name="UTC")


MIXED_REFINE = json.dumps(
    {
        "summary": "Clarified the report task",
        "ops": [
            {"op": "update", "id": "A", "fields": {"title": "Draft Q4 report", "priority": 1}, "reason": "clearer"},
            {"op": "update", "id": "A", "fields": {"due_date": "2026-10-20"}, "reason": "more time"},
            {"op": "add", "id": "temp_split", "fields": {"title": "Collect finance numbers"}},
        ],
    }
)


class TestSessionSuggestionContract(unittest.TestCase):
    def test_refine_auto_applies_safe_ops_and_parks_the_rest(self) -> None:
        s = _session(_ScriptedService(MIXED_REFINE))
        out = s.refine_task("A")

        self.assertFalse(out.failed)
        self.assertEqual(out.applied, 1)
        self.assertEqual(out.message, "Clarified the report task · 1 safe tweak applied · 2 changes to review")
        self.assertIs(out.pending, s.pending)
        self.assertEqual([o.op for o in s.pending.ops], ["update", "add"])

        a = find_item(s.merged, "A")
        self.assertEqual(a["title"], "Draft Q4 report")
        self.assertEqual(a["due_date"], "2026-10-14")

        accepted = s.accept_pending()
        self.assertEqual(accepted.applied, 2)
        self.assertIsNone(s.pending)
        self.assertEqual(find_item(s.merged, "A")["due_date"], "2026-10-20")
        self.assertIsNotNone(find_item(s.merged, "temp_split"))

    def test_refine_sends_prompt_and_context(self) -> None:
        svc = _ScriptedService('{"summary": "ok", "ops": []}')
        s = _session(svc)
        out = s.refine_task("B", origin="manual")
        self.assertEqual(out.message, "No changes needed")
        system, user, context = svc.calls[0]
        self.assertIn('"op": "add" | "update"', system)
        self.assertIn('"id": "B"', user)
        self.assertEqual(context["origin"], "manual")

    def test_refine_all_safe_clears_pending(self) -> None:
        text = json.dumps({"summary": "s", "ops": [{"op": "update", "id": "B", "fields": {"notes": "Call two venues"}}]})
        s = _session(_ScriptedService(text))
        s.pending = "stale"  # type: ignore[assignment]
        out = s.refine_task("B")
        self.assertEqual((out.applied, out.pending, out.message), (1, None, "Refined"))
        self.assertIsNone(s.pending)

    def test_rebalance_always_goes_to_review(self) -> None:
        text = json.dumps({"summary": "Lighter day", "ops": [{"op": "update", "id": "E", "fields": {"priority": 3}}]})
        s = _session(_ScriptedService(text))
        out = s.rebalance_today()
        self.assertEqual(out.applied, 0)
        self.assertEqual(out.message, "Lighter day")
        self.assertEqual(s.pending.ops, (UpdateOp(id="E", fields={"priority": 3}),))
        self.assertNotIn("E", s.overlay["task_overrides"])

        self.assertEqual(s.discard_pending().message, "Discarded")
        self.assertIsNone(s.pending)
        self.assertEqual(s.accept_pending().message, "No ops to apply")

    def test_service_failure_mutates_nothing(self) -> None:
        s = _session(_FailingService())
        before = json.dumps(s.overlay, sort_keys=True)
        out = s.refine_task("A")
        self.assertTrue(out.failed)
        self.assertEqual(out.message, "AI error: socket closed")
        self.assertEqual(json.dumps(s.overlay, sort_keys=True), before)
        self.assertEqual(s.store.writes, 0)

    def test_invalid_payloads_are_rejected_whole(self) -> None:
        s = _session(_ScriptedService("no json here"))
        self.assertEqual(s.refine_task("A").message, "AI error: AI did not return valid JSON")

        bad = json.dumps({"ops": [{"op": "update", "id": "A", "fields": {"title": "ok"}}, {"op": "complete"}]})
        s = _session(_ScriptedService(bad))
        out = s.refine_task("A")
        self.assertEqual(out.message, "AI error: AI payload invalid: Op missing id")
        self.assertEqual(s.overlay["task_overrides"], {})

    def test_unknown_item_and_disabled_ai(self) -> None:
        self.assertTrue(_session(NOOP_SERVICE).refine_task("nope").failed)

        s = Session(_base(), MemoryOverlayStore(), settings={"enabled": False}, tz_name="UTC")
        out = s.refine_task("A")
        self.assertEqual(out.message, "Enable AI in settings")

        s = Session(_base(), MemoryOverlayStore(), settings={"enabled": True, "provider": "openai"}, tz_name="UTC")
        self.assertEqual(s.rebalance_today().message, "AI not ready: missing_key")

    def test_quick_add_auto_refines_when_enabled(self) -> None:
        svc = _ScriptedService('{"summary": "fine", "ops": []}')
        s = Session(_base(), MemoryOverlayStore(), service=svc, settings={"enabled": True, "auto_refine": True})
        new_id, outcome = s.quick_add({"title": "Inbox item"})
        self.assertTrue(new_id.startswith("temp_"))
        self.assertEqual(outcome.message, "No changes needed")
        self.assertEqual(svc.calls[0][2]["origin"], "inbox_capture")

        s.settings["auto_refine"] = False
        _, outcome = s.quick_add({"title": "Another"})
        self.assertIsNone(outcome)

    def test_review_summary(self) -> None:
        self.assertEqual(review_summary("", 0, 1), "1 change to review")
        self.assertEqual(review_summary("S", 2, 3), "S · 2 safe tweaks applied · 3 changes to review")


class TestSuggestionOrderingContract(unittest.TestCase):
    def test_overlapping_requests_apply_in_resolution_order(self) -> None:
        # Two refine requests in flight; the one issued first resolves last and
        # its review ops replace the pending payload of the other.
        def review_for(item_id: str, due: str) -> str:
            return json.dumps(
                {"summary": f"move {item_id}", "ops": [{"op": "update", "id": item_id, "fields": {"due_date": due}}]}
            )

        svc = _GatedService({"A": review_for("A", "2026-10-21"), "B": review_for("B", "2026-10-22")})
        s = _session(svc)

        async def scenario():
            first = asyncio.ensure_future(s.refine_task_async("A"))
            second = asyncio.ensure_future(s.refine_task_async("B"))
            await asyncio.sleep(0)
            svc.gates["B"].set()
            out_b = await second
            self.assertEqual([o.id for o in s.pending.ops], ["B"])
            svc.gates["A"].set()
            out_a = await first
            return out_a, out_b

        out_a, out_b = asyncio.run(scenario())
        self.assertFalse(out_a.failed or out_b.failed)
        self.assertEqual([o.id for o in s.pending.ops], ["A"])
        self.assertEqual(s.pending.summary, "move A · 1 change to review")

    def test_async_rebalance(self) -> None:
        text = json.dumps({"summary": "plan", "ops": [{"op": "complete", "id": "B"}]})
        s = _session(_ScriptedService(text))
        out = asyncio.run(s.rebalance_today_async())
        self.assertEqual(len(out.pending.ops), 1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
