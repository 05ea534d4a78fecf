# flowtasks/audit.py
"""Bounded completion/move logs kept under overlay["learning"]."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .util.dates import utc_now_iso

LOG_LIMIT = 400

JsonDict = Dict[str, Any]


def _learning(overlay: JsonDict) -> JsonDict:
    learning = overlay.get("learning")
    if not isinstance(learning, dict):
        learning = {}
        overlay["learning"] = learning
    for key in ("completion_log", "move_log"):
        if not isinstance(learning.get(key), list):
            learning[key] = []
    stats = learning.get("stats")
    if not isinstance(stats, dict):
        stats = {}
        learning["stats"] = stats
    stats.setdefault("moves", 0)
    stats.setdefault("completes", 0)
    return learning


def _append_bounded(log: List[JsonDict], entry: JsonDict, limit: int) -> List[JsonDict]:
    log.append(entry)
    if len(log) > limit:
        del log[: len(log) - limit]
    return log


def log_complete(overlay: JsonDict, item_id: str, completed: bool, *, at: Optional[str] = None) -> JsonDict:
    learning = _learning(overlay)
    entry = {"id": item_id, "completed": bool(completed), "at": at or utc_now_iso()}
    learning["stats"]["completes"] = int(learning["stats"].get("completes") or 0) + 1
    _append_bounded(learning["completion_log"], entry, LOG_LIMIT)
    return entry


def log_move(
    overlay: JsonDict,
    item_id: str,
    before: JsonDict,
    after: JsonDict,
    reason: str,
    *,
    at: Optional[str] = None,
) -> JsonDict:
    learning = _learning(overlay)
    entry = {"id": item_id, "from": dict(before), "to": dict(after), "reason": reason, "at": at or utc_now_iso()}
    learning["stats"]["moves"] = int(learning["stats"].get("moves") or 0) + 1
    _append_bounded(learning["move_log"], entry, LOG_LIMIT)
    return entry


def _log(overlay: JsonDict, key: str) -> List[JsonDict]:
    learning = overlay.get("learning") if isinstance(overlay, dict) else None
    log = learning.get(key) if isinstance(learning, dict) else None
    return log if isinstance(log, list) else []


def completion_tail(overlay: JsonDict, n: int = 60) -> List[JsonDict]:
    """Last n completion entries; never mutates the overlay."""
    log = _log(overlay, "completion_log")
    return list(log[-n:]) if n > 0 else []


def move_tail(overlay: JsonDict, n: int = 60) -> List[JsonDict]:
    log = _log(overlay, "move_log")
    return list(log[-n:]) if n > 0 else []


__all__ = ["LOG_LIMIT", "completion_tail", "log_complete", "log_move", "move_tail"]
