"""Compact context bundle sent with every suggestion request."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from flowtasks.audit import completion_tail, move_tail
from flowtasks.merge import is_done, normalize_type

JsonDict = Dict[str, Any]

MAX_OPEN_TASKS = 220
MAX_RECENT_COMPLETED = 60
MAX_OPEN_EVENTS = 60
MAX_LOG_TAIL = 60
NOTES_CLIP = 220


def load_reference(path: Optional[Path]) -> Optional[Any]:
    """Optional reference JSON (playbooks, workplans); missing or invalid -> None."""
    if path is None:
        return None
    try:
        return json.loads(Path(path).read_text(encoding="utf-8", errors="replace"))
    except (OSError, ValueError):
        return None


def _pick(item: JsonDict, overlay: JsonDict) -> JsonDict:
    return {
        "id": item.get("id"),
        "title": item.get("title") or "",
        "pillar": item.get("pillar") or "",
        "owner_id": item.get("owner_id") or "",
        "start_date": item.get("start_date") or None,
        "due_date": item.get("due_date") or None,
        "priority": item.get("priority"),
        "type": normalize_type(item.get("type")),
        "status": "completed" if is_done(item, overlay) else "open",
        "notes": str(item.get("notes") or "")[:NOTES_CLIP],
    }


def build_ai_context(
    merged: JsonDict,
    overlay: JsonDict,
    *,
    origin: str = "unknown",
    reference: Optional[Any] = None,
) -> JsonDict:
    tasks: List[JsonDict] = [t for t in merged.get("tasks") or [] if isinstance(t, dict)]
    events: List[JsonDict] = [e for e in merged.get("events") or [] if isinstance(e, dict)]
    learning = overlay.get("learning") if isinstance(overlay.get("learning"), dict) else {}

    open_tasks = [t for t in tasks if not is_done(t, overlay)][:MAX_OPEN_TASKS]
    done = [t for t in tasks if is_done(t, overlay)][:MAX_RECENT_COMPLETED]
    open_events = [e for e in events if not is_done(e, overlay)][:MAX_OPEN_EVENTS]

    return {
        "origin": origin,
        "open_tasks": [_pick(t, overlay) for t in open_tasks],
        "recent_completed": [_pick(t, overlay) for t in done],
        "open_events": [_pick(e, overlay) for e in open_events],
        "learning": {
            "stats": dict(learning.get("stats") or {}),
            "completion_log_tail": completion_tail(overlay, MAX_LOG_TAIL),
            "move_log_tail": move_tail(overlay, MAX_LOG_TAIL),
        },
        "reference": reference,
    }
