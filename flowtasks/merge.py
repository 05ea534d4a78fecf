"""Merge the base dataset with the overlay into the merged view.

merge() is pure: it never mutates base or overlay, and the same inputs
always produce an equal result.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

JsonDict = Dict[str, Any]

ITEM_TYPES = ("task", "event", "meeting")


def normalize_type(value: Any) -> str:
    """Lower-cased item type; unknown or empty values become "task"."""
    v = str(value or "").strip().lower()
    return v if v in ITEM_TYPES else "task"


def _list(obj: Any, key: str) -> List[Any]:
    v = obj.get(key) if isinstance(obj, dict) else None
    return v if isinstance(v, list) else []


def _has_id(item: Any) -> bool:
    return isinstance(item, dict) and isinstance(item.get("id"), str) and bool(item.get("id"))


def _apply_patches(items: Iterable[Any], deletions: set, overrides: Dict[str, Any]) -> List[JsonDict]:
    out: List[JsonDict] = []
    for it in items:
        if not _has_id(it):
            continue
        item_id = it["id"]
        if item_id in deletions:
            continue
        patch = overrides.get(item_id)
        out.append({**it, **patch, "id": item_id} if isinstance(patch, dict) else it)
    return out


def merge(base: JsonDict, overlay: JsonDict) -> JsonDict:
    """Return base ⊕ overlay.

    1. base tasks/events whose id is deleted are dropped
    2. task_overrides patches are shallow-merged (an ``id`` key in a patch is ignored)
    3. new_tasks (not deleted, patched the same way) are appended in stored order
    4. recurrence rules get ``enabled`` from recurrence_overrides (default True)

    Other base keys (meta, owners, pillars, ...) pass through.
    """
    if not isinstance(base, dict):
        raise TypeError(f"base must be dict, got {type(base).__name__}")
    if not isinstance(overlay, dict):
        raise TypeError(f"overlay must be dict, got {type(overlay).__name__}")

    deletions = set(x for x in _list(overlay, "deletions") if isinstance(x, str))
    overrides = overlay.get("task_overrides")
    if not isinstance(overrides, dict):
        overrides = {}
    rec_overrides = overlay.get("recurrence_overrides")
    if not isinstance(rec_overrides, dict):
        rec_overrides = {}

    tasks = _apply_patches(_list(base, "tasks"), deletions, overrides)
    events = _apply_patches(_list(base, "events"), deletions, overrides)

    # Pending additions keep their stored order. Unlike a plain append they are
    # patched too: completing a temp item writes a task_overrides entry, and
    # skipping it here would leave that item open forever.
    tasks.extend(_apply_patches(_list(overlay, "new_tasks"), deletions, overrides))

    rules: List[JsonDict] = []
    for r in _list(base, "recurrence_rules"):
        if not isinstance(r, dict):
            continue
        ov = rec_overrides.get(r.get("id"))
        enabled = ov.get("enabled", True) if isinstance(ov, dict) else True
        rules.append({**r, "enabled": bool(enabled)})

    return {
        **base,
        "tasks": tasks,
        "events": events,
        "recurrence_rules": rules,
        "__overlays": overlay,
    }


# --- Status -------------------------------------------------------------------

def item_status(item: JsonDict, overlay: Optional[JsonDict] = None) -> str:
    """"completed" iff the patch status (else the item's own status) says so."""
    patch: Any = None
    if isinstance(overlay, dict):
        overrides = overlay.get("task_overrides")
        if isinstance(overrides, dict):
            patch = overrides.get(item.get("id"))
    status = (patch.get("status") if isinstance(patch, dict) else None) or item.get("status") or ""
    return "completed" if status == "completed" else "open"


def is_done(item: JsonDict, overlay: Optional[JsonDict] = None) -> bool:
    return item_status(item, overlay) == "completed"


def all_items(merged: JsonDict) -> List[JsonDict]:
    return _list(merged, "tasks") + _list(merged, "events")


def find_item(merged: JsonDict, item_id: str) -> Optional[JsonDict]:
    for it in all_items(merged):
        if it.get("id") == item_id:
            return it
    return None


__all__ = ["ITEM_TYPES", "all_items", "find_item", "is_done", "item_status", "merge", "normalize_type"]
