"""Apply ops to the overlay.

``apply_ops`` is the single mutation routine for overlay deltas. The
``OpApplier`` wraps it with batch semantics: mutate, persist once, merge
once. User actions (toggle, defer, move to today, edit, delete) are
expressed as ops through the same path.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .ai.interface import AddOp, CompleteOp, DeleteOp, UndoCompleteOp, UpdateOp
from .ai.policy import is_temp_id, new_temp_id
from .audit import log_complete, log_move
from .errors import UserInputError
from .merge import find_item, is_done, merge, normalize_type
from .overlay import OverlayStore, default_overlay, import_overlay
from .util.dates import add_days, iso_from_date, parse_iso_date, today_local, today_local_iso, utc_now_iso

JsonDict = Dict[str, Any]


def _parts(op: Any):
    if isinstance(op, dict):
        return op.get("op"), op.get("id"), op.get("fields")
    return getattr(op, "op", None), getattr(op, "id", None), getattr(op, "fields", None)


def _priority(v: Any) -> int:
    if v is None or isinstance(v, bool):
        return 2
    try:
        n = int(v)
    except (TypeError, ValueError):
        return 2
    return n if 1 <= n <= 4 else 2


def ensure_patch(overlay: JsonDict, item_id: str) -> JsonDict:
    overrides = overlay.setdefault("task_overrides", {})
    patch = overrides.get(item_id)
    if not isinstance(patch, dict):
        patch = {}
        overrides[item_id] = patch
    return patch


def patch_fields(fields: Any) -> JsonDict:
    """Update fields as stored; an item's id never changes."""
    if not isinstance(fields, dict):
        return {}
    return {k: v for k, v in fields.items() if k != "id"}


def build_new_item(item_id: str, fields: JsonDict) -> JsonDict:
    """New-task record with defaults; optional fields only when present."""
    title = fields.get("title")
    item: JsonDict = {
        "id": item_id,
        "title": str(title) if title else "Untitled",
        "type": normalize_type(fields.get("type")),
        "pillar": fields.get("pillar"),
        "owner_id": fields.get("owner_id"),
        "start_date": fields.get("start_date"),
        "due_date": fields.get("due_date"),
        "priority": _priority(fields.get("priority")),
        "notes": str(fields.get("notes") or ""),
    }
    if isinstance(fields.get("subtasks"), list):
        item["subtasks"] = list(fields["subtasks"])
    for key in ("estimated_minutes", "energy"):
        if fields.get(key) is not None:
            item[key] = fields[key]
    return item


def _add(overlay: JsonDict, op_id: Any, fields: JsonDict) -> str:
    new_tasks = overlay.setdefault("new_tasks", [])
    # Tombstoned ids stay reserved; a new item under one would never be shown.
    taken = {t.get("id") for t in new_tasks if isinstance(t, dict)}
    taken.update(x for x in overlay.get("deletions") or [] if isinstance(x, str))
    item_id = op_id if is_temp_id(op_id) and op_id not in taken else new_temp_id()
    while item_id in taken:
        item_id = new_temp_id()
    new_tasks.append(build_new_item(item_id, fields or {}))
    return item_id


def _set_completed(overlay: JsonDict, item_id: str, completed: bool) -> None:
    patch = ensure_patch(overlay, item_id)
    patch["status"] = "completed" if completed else "open"
    patch["completed_at"] = utc_now_iso() if completed else None
    log_complete(overlay, item_id, completed)


def _delete(overlay: JsonDict, item_id: str) -> None:
    deletions = overlay.setdefault("deletions", [])
    if item_id not in deletions:
        deletions.append(item_id)
    overlay.setdefault("task_overrides", {}).pop(item_id, None)
    overlay["new_tasks"] = [
        t for t in overlay.get("new_tasks") or [] if not (isinstance(t, dict) and t.get("id") == item_id)
    ]


def apply_ops(overlay: JsonDict, ops: Iterable[Any]) -> int:
    """Mutate overlay in place for each op; returns the number of ops applied.

    Ops are assumed to have passed validation (typed ops or validated dicts).
    """
    n = 0
    for op in ops:
        kind, op_id, fields = _parts(op)
        if kind == "add":
            _add(overlay, op_id, fields if isinstance(fields, dict) else {})
        elif kind == "update":
            ensure_patch(overlay, op_id).update(patch_fields(fields))
        elif kind == "complete":
            _set_completed(overlay, op_id, True)
        elif kind == "undo_complete":
            _set_completed(overlay, op_id, False)
        elif kind == "delete":
            _delete(overlay, op_id)
        else:
            raise ValueError(f"Unsupported op: {kind}")
        n += 1
    return n


class OpApplier:
    """Batch applier bound to an overlay store and the session's base dataset."""

    def __init__(self, store: OverlayStore, base: JsonDict, *, tz_name: Optional[str] = None) -> None:
        self.store = store
        self.base = base
        self.tz_name = tz_name
        self.merged: JsonDict = merge(base, store.overlay)

    @property
    def overlay(self) -> JsonDict:
        return self.store.overlay

    def _commit(self, mutate: Callable[[JsonDict], Any]) -> Any:
        result = mutate(self.overlay)
        self.store.save(self.overlay)
        self.merged = merge(self.base, self.overlay)
        return result

    def apply(self, ops: Sequence[Any]) -> int:
        if not ops:
            return 0
        return self._commit(lambda ov: apply_ops(ov, ops))

    # --- user actions ---------------------------------------------------------

    def add_item(self, fields: JsonDict) -> str:
        """Quick add; returns the new temporary id."""
        title = str(fields.get("title") or "").strip()
        if not title:
            raise UserInputError("Title required")
        op = AddOp(id=new_temp_id(), fields={**fields, "title": title})
        return self._commit(lambda ov: _add(ov, op.id, op.fields))

    def edit_item(self, item_id: str, fields: JsonDict) -> bool:
        """Direct edit: pending new tasks are edited in place, others get a patch."""
        if "title" in fields and not str(fields.get("title") or "").strip():
            raise UserInputError("Title required")
        if find_item(self.merged, item_id) is None:
            return False

        def mutate(ov: JsonDict) -> None:
            for i, t in enumerate(ov.get("new_tasks") or []):
                if isinstance(t, dict) and t.get("id") == item_id:
                    ov["new_tasks"][i] = {**t, **patch_fields(fields)}
                    return
            apply_ops(ov, [UpdateOp(id=item_id, fields=dict(fields))])

        self._commit(mutate)
        return True

    def delete_item(self, item_id: str) -> int:
        if not item_id:
            return 0
        return self.apply([DeleteOp(id=item_id)])

    def toggle_complete(self, item_id: str) -> Optional[str]:
        """Flip open/completed; returns the new status or None for unknown ids."""
        item = find_item(self.merged, item_id)
        if item is None:
            return None
        now_done = not is_done(item, self.overlay)
        self.apply([CompleteOp(id=item_id) if now_done else UndoCompleteOp(id=item_id)])
        return "completed" if now_done else "open"

    def move_to_today(self, item_id: str, reason: str = "manual") -> Optional[str]:
        """Set start and due to today; returns the date or None for unknown ids."""
        item = find_item(self.merged, item_id)
        if item is None:
            return None
        today = today_local_iso(self.tz_name)
        before = {"start_date": item.get("start_date"), "due_date": item.get("due_date")}

        def mutate(ov: JsonDict) -> None:
            apply_ops(ov, [UpdateOp(id=item_id, fields={"start_date": today, "due_date": today})])
            log_move(ov, item_id, before, {"start_date": today, "due_date": today}, reason)

        self._commit(mutate)
        return today

    def defer_one_day(self, item_id: str) -> Optional[str]:
        """Push the later of due/start date by one day; returns the new due date."""
        item = next((t for t in self.merged.get("tasks") or [] if t.get("id") == item_id), None)
        if item is None:
            return None
        patch = (self.overlay.get("task_overrides") or {}).get(item_id) or {}

        due = patch.get("due_date") or item.get("due_date")
        start = patch.get("start_date") or item.get("start_date")
        dates: List[Any] = [d for d in (parse_iso_date(due), parse_iso_date(start)) if d]
        current = max(dates) if dates else today_local(self.tz_name)
        next_iso = iso_from_date(add_days(current, 1))

        before = {
            "start_date": patch.get("start_date", item.get("start_date")),
            "due_date": patch.get("due_date", item.get("due_date")),
        }
        fields = {"due_date": next_iso}
        if not patch.get("start_date"):
            fields["start_date"] = next_iso

        def mutate(ov: JsonDict) -> None:
            apply_ops(ov, [UpdateOp(id=item_id, fields=fields)])
            after = ov["task_overrides"][item_id]
            log_move(
                ov,
                item_id,
                before,
                {"start_date": after.get("start_date"), "due_date": after.get("due_date")},
                "defer_1d",
            )

        self._commit(mutate)
        return next_iso

    def set_recurrence_enabled(self, rule_id: str, enabled: bool) -> None:
        def mutate(ov: JsonDict) -> None:
            ov.setdefault("recurrence_overrides", {})[rule_id] = {"enabled": bool(enabled)}

        self._commit(mutate)

    def toggle_recurrence(self, rule_id: str) -> bool:
        cur = (self.overlay.get("recurrence_overrides") or {}).get(rule_id) or {}
        enabled = not cur.get("enabled", True)
        self.set_recurrence_enabled(rule_id, enabled)
        return enabled

    # --- whole-overlay replacement --------------------------------------------

    def reset(self) -> None:
        self.store.replace(default_overlay())
        self.merged = merge(self.base, self.overlay)

    def import_text(self, text: str) -> None:
        self.store.replace(import_overlay(text))
        self.merged = merge(self.base, self.overlay)


__all__ = ["OpApplier", "apply_ops", "build_new_item", "ensure_patch", "patch_fields"]
