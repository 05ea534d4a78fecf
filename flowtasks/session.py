"""One working session: base dataset + overlay store + suggestion flow.

Suggestion flows never raise. Every failure degrades to "nothing applied"
and a message on the returned SuggestionOutcome.

Refine (auto-apply mode): ops that pass the safety classifier are applied
immediately; the rest are parked as the pending payload for review.
Rebalance: always parked for review.

The async variants run the blocking completion call in a worker thread and
apply the result when it resolves. Two overlapping requests are applied in
resolution order; the later one replaces the pending payload of the
earlier one.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from . import config
from .ai.context import build_ai_context, load_reference
from .ai.engine import run_rebalance_today, run_refine_task
from .ai.interface import CompletionService, SuggestionPayload
from .ai.policy import classify
from .ai.providers import ai_ready_state, completion_service_from_settings, load_ai_settings
from .apply import OpApplier
from .backup import export_merged
from .base import load_base_dataset
from .errors import ServiceError
from .merge import find_item
from .overlay import OverlayStore, export_overlay, format_overlay_stats
from .util.console import obs_log
from .util.dates import today_local, today_local_iso
from .views import decorate_tasks

JsonDict = Dict[str, Any]


@dataclass(frozen=True)
class SuggestionOutcome:
    applied: int = 0
    pending: Optional[SuggestionPayload] = None
    message: str = ""
    failed: bool = False


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


def review_summary(summary: str, applied: int, review_count: int) -> str:
    bits: List[str] = []
    if applied:
        bits.append(f"{_plural(applied, 'safe tweak')} applied")
    bits.append(f"{_plural(review_count, 'change')} to review")
    joined = " · ".join(bits)
    return f"{summary} · {joined}" if summary else joined


class Session:
    def __init__(
        self,
        base: JsonDict,
        store: Optional[OverlayStore] = None,
        *,
        service: Optional[CompletionService] = None,
        settings: Optional[JsonDict] = None,
        tz_name: Optional[str] = None,
        reference: Optional[Any] = None,
    ) -> None:
        self.base = base
        self.store = store if store is not None else OverlayStore()
        self.store.open()
        self.tz_name = config.resolve_tz_name(base, tz_name)
        self.applier = OpApplier(self.store, base, tz_name=self.tz_name)
        self.service = service
        self.settings = settings if settings is not None else {}
        self.reference = reference
        self.pending: Optional[SuggestionPayload] = None

    @classmethod
    def from_paths(
        cls,
        base: Optional[str] = None,
        *,
        home: Optional[Path] = None,
        tz_name: Optional[str] = None,
        service: Optional[CompletionService] = None,
    ) -> "Session":
        """Load the base dataset, overlay, AI settings and reference from disk."""
        base_obj = load_base_dataset(config.base_path(base))
        return cls(
            base_obj,
            OverlayStore(config.overlay_path(home)),
            service=service,
            settings=load_ai_settings(config.ai_settings_path(home)),
            tz_name=tz_name,
            reference=load_reference(config.reference_path(home)),
        )

    @property
    def merged(self) -> JsonDict:
        return self.applier.merged

    @property
    def overlay(self) -> JsonDict:
        return self.store.overlay

    def today(self):
        return today_local(self.tz_name)

    def close(self) -> None:
        self.store.close()

    # --- overlay I/O ----------------------------------------------------------

    def export_overlay_text(self) -> str:
        return export_overlay(self.overlay)

    def import_overlay_text(self, text: str) -> None:
        """Replace the overlay; raises StructuralError on invalid JSON."""
        self.applier.import_text(text)

    def export_merged_text(self) -> str:
        return export_merged(self.merged)

    def reset(self) -> None:
        self.applier.reset()
        self.pending = None

    def storage_line(self) -> str:
        return format_overlay_stats(self.overlay)

    # --- manual actions -------------------------------------------------------

    def quick_add(self, fields: JsonDict) -> Tuple[str, Optional[SuggestionOutcome]]:
        """Add an item; with auto_refine on, refine it straight away."""
        new_id = self.applier.add_item(fields)
        if self.settings.get("enabled") and self.settings.get("auto_refine"):
            return new_id, self.refine_task(new_id, origin="inbox_capture")
        return new_id, None

    # --- suggestion flows -----------------------------------------------------

    def _completion_service(self) -> Tuple[Optional[CompletionService], str]:
        if self.service is not None:
            return self.service, ""
        state = ai_ready_state(self.settings)
        if not state["enabled"]:
            return None, "Enable AI in settings"
        if not state["ready"]:
            return None, f"AI not ready: {state['reason']}"
        try:
            return completion_service_from_settings(self.settings), ""
        except ValueError as e:
            return None, f"AI error: {e}"

    def _refine_request(self, item_id: str, origin: str) -> Tuple[Optional[JsonDict], JsonDict]:
        task = find_item(self.merged, item_id)
        ctx = build_ai_context(self.merged, self.overlay, origin=origin, reference=self.reference)
        return task, ctx

    def _rebalance_request(self) -> Tuple[str, List[JsonDict], JsonDict]:
        ctx = build_ai_context(self.merged, self.overlay, origin="rebalance_today", reference=self.reference)
        tasks = self.merged.get("tasks") or []
        open_tasks = [t for t in decorate_tasks(tasks, self.overlay) if t["__status"] == "open"]
        return today_local_iso(self.tz_name), open_tasks, ctx

    def resolve_refine(self, payload: SuggestionPayload) -> SuggestionOutcome:
        """Apply the safe part of a refine payload and park the rest."""
        split = classify(payload.ops)
        applied = self.applier.apply(list(split.auto_ops))
        if split.review_ops:
            self.pending = SuggestionPayload(
                summary=review_summary(payload.summary, applied, len(split.review_ops)),
                ops=split.review_ops,
            )
            return SuggestionOutcome(applied, self.pending, self.pending.summary)
        self.pending = None
        return SuggestionOutcome(applied, None, "Refined" if applied else "No changes needed")

    def resolve_rebalance(self, payload: SuggestionPayload) -> SuggestionOutcome:
        if not payload.ops:
            return SuggestionOutcome(0, self.pending, "No rebalance suggestions")
        self.pending = payload
        return SuggestionOutcome(0, payload, payload.summary or "AI has suggestions ready.")

    def refine_task(self, item_id: str, *, origin: str = "manual") -> SuggestionOutcome:
        service, msg = self._completion_service()
        if service is None:
            return SuggestionOutcome(message=msg, failed=True)
        task, ctx = self._refine_request(item_id, origin)
        if task is None:
            return SuggestionOutcome(message=f"Unknown item: {item_id}", failed=True)
        try:
            payload = run_refine_task(service, task, ctx)
        except ServiceError as e:
            obs_log("session", "warn", f"refine {item_id} failed: {e}")
            return SuggestionOutcome(message=f"AI error: {e}", failed=True)
        return self.resolve_refine(payload)

    def rebalance_today(self) -> SuggestionOutcome:
        service, msg = self._completion_service()
        if service is None:
            return SuggestionOutcome(message=msg, failed=True)
        today_iso, open_tasks, ctx = self._rebalance_request()
        try:
            payload = run_rebalance_today(service, today_iso, open_tasks, ctx)
        except ServiceError as e:
            obs_log("session", "warn", f"rebalance failed: {e}")
            return SuggestionOutcome(message=f"AI error: {e}", failed=True)
        return self.resolve_rebalance(payload)

    async def refine_task_async(self, item_id: str, *, origin: str = "manual") -> SuggestionOutcome:
        service, msg = self._completion_service()
        if service is None:
            return SuggestionOutcome(message=msg, failed=True)
        task, ctx = self._refine_request(item_id, origin)
        if task is None:
            return SuggestionOutcome(message=f"Unknown item: {item_id}", failed=True)
        try:
            payload = await asyncio.to_thread(run_refine_task, service, task, ctx)
        except ServiceError as e:
            obs_log("session", "warn", f"refine {item_id} failed: {e}")
            return SuggestionOutcome(message=f"AI error: {e}", failed=True)
        return self.resolve_refine(payload)

    async def rebalance_today_async(self) -> SuggestionOutcome:
        service, msg = self._completion_service()
        if service is None:
            return SuggestionOutcome(message=msg, failed=True)
        today_iso, open_tasks, ctx = self._rebalance_request()
        try:
            payload = await asyncio.to_thread(run_rebalance_today, service, today_iso, open_tasks, ctx)
        except ServiceError as e:
            obs_log("session", "warn", f"rebalance failed: {e}")
            return SuggestionOutcome(message=f"AI error: {e}", failed=True)
        return self.resolve_rebalance(payload)

    # --- review ---------------------------------------------------------------

    def accept_pending(self) -> SuggestionOutcome:
        payload = self.pending
        if payload is None or not payload.ops:
            self.pending = None
            return SuggestionOutcome(message="No ops to apply")
        applied = self.applier.apply(list(payload.ops))
        self.pending = None
        return SuggestionOutcome(applied, None, "Applied AI suggestions")

    def discard_pending(self) -> SuggestionOutcome:
        self.pending = None
        return SuggestionOutcome(message="Discarded")


__all__ = ["Session", "SuggestionOutcome", "review_summary"]
