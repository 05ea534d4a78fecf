# flowtasks/views.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .merge import is_done, normalize_type
from .util.dates import (
    end_of_month,
    end_of_week,
    iso_from_date,
    parse_iso_date,
    start_of_month,
    start_of_week,
)

JsonDict = Dict[str, Any]

VIEWS = ("today", "week", "month", "upcoming", "completed", "events", "pillars")
SORT_KEYS = ("due", "start", "priority")

_NO_DATE = 10**9
_NO_PRIORITY = 999


@dataclass(frozen=True)
class Filters:
    """List filters; "any" disables a filter."""

    q: str = ""
    pillar: str = "any"
    owner_id: str = "any"
    month: str = "any"
    status: str = "any"


NO_FILTERS = Filters()


def _tasks(merged: JsonDict) -> List[JsonDict]:
    v = merged.get("tasks")
    return [t for t in v if isinstance(t, dict)] if isinstance(v, list) else []


def item_date(item: JsonDict) -> Optional[dt.date]:
    """Due date, else start date."""
    return parse_iso_date(item.get("due_date")) or parse_iso_date(item.get("start_date"))


def is_overdue(item: JsonDict, today: dt.date, overlay: Optional[JsonDict] = None) -> bool:
    if item.get("__status") == "completed" or is_done(item, overlay):
        return False
    due = parse_iso_date(item.get("due_date"))
    return bool(due and due < today)


def decorate_tasks(items: List[JsonDict], overlay: Optional[JsonDict] = None) -> List[JsonDict]:
    """Copies with ``__status`` and a normalized ``type``."""
    return [
        {**t, "__status": "completed" if is_done(t, overlay) else "open", "type": normalize_type(t.get("type"))}
        for t in items
    ]


def matches_filters(item: JsonDict, filters: Filters = NO_FILTERS) -> bool:
    q = (filters.q or "").strip().lower()
    if q:
        hay = f"{item.get('title') or ''} {item.get('notes') or ''} {item.get('id') or ''}".lower()
        if q not in hay:
            return False

    if filters.pillar != "any" and (item.get("pillar") or "") != filters.pillar:
        return False
    if filters.owner_id != "any" and (item.get("owner_id") or "") != filters.owner_id:
        return False

    if filters.month != "any":
        d = str(item.get("due_date") or item.get("start_date") or "")
        if not d.startswith(filters.month):
            return False

    if filters.status in ("open", "completed") and item.get("__status") != filters.status:
        return False
    return True


def _priority_num(p: Any) -> float:
    if p is None or isinstance(p, bool):
        return _NO_PRIORITY
    try:
        return float(p)
    except (TypeError, ValueError):
        return _NO_PRIORITY


def sort_items(items: List[JsonDict], today: dt.date, *, sort: str = "due") -> List[JsonDict]:
    """Overdue open items first, then by the sort key, then by title."""

    def key(it: JsonDict) -> Tuple[int, float, str]:
        overdue = it.get("__status") == "open" and is_overdue(it, today)
        if sort == "priority":
            k = _priority_num(it.get("priority"))
        else:
            first, second = ("start_date", "due_date") if sort == "start" else ("due_date", "start_date")
            d = parse_iso_date(it.get(first)) or parse_iso_date(it.get(second))
            k = d.toordinal() if d else _NO_DATE
        return (0 if overdue else 1, k, str(it.get("title") or "").casefold())

    return sorted(items, key=key)


def build_task_list(
    merged: JsonDict,
    view: str,
    today: dt.date,
    *,
    filters: Filters = NO_FILTERS,
    sort: str = "due",
) -> List[JsonDict]:
    overlay = merged.get("__overlays")
    items = decorate_tasks(_tasks(merged), overlay)

    wanted = "completed" if view == "completed" else "open"
    items = [t for t in items if t["__status"] == wanted]

    if view == "week":
        lo, hi = start_of_week(today), end_of_week(today)
        items = [t for t in items if item_date(t) and lo <= item_date(t) <= hi]
    elif view == "month":
        lo, hi = start_of_month(today), end_of_month(today)
        items = [t for t in items if item_date(t) and lo <= item_date(t) <= hi]
    elif view == "upcoming":
        items = [t for t in items if item_date(t) is None or item_date(t) >= today]

    items = [t for t in items if matches_filters(t, filters)]
    return sort_items(items, today, sort=sort)


def today_sections(
    merged: JsonDict,
    today: dt.date,
    *,
    filters: Filters = NO_FILTERS,
    sort: str = "due",
) -> List[Tuple[str, List[JsonDict]]]:
    """Non-empty ("Overdue" | "Today" | "Next", items) sections of the today view."""
    items = build_task_list(merged, "today", today, filters=filters, sort=sort)
    overdue = [t for t in items if is_overdue(t, today)]
    due_today = [t for t in items if not is_overdue(t, today) and item_date(t) == today]
    taken = {id(t) for t in overdue} | {id(t) for t in due_today}
    rest = [t for t in items if id(t) not in taken]
    sections = [("Overdue", overdue), ("Today", due_today), ("Next", rest)]
    return [(label, sort_items(arr, today, sort=sort)) for label, arr in sections if arr]


def build_events(
    merged: JsonDict,
    today: dt.date,
    *,
    filters: Filters = NO_FILTERS,
    sort: str = "due",
) -> List[JsonDict]:
    """Open base events plus tasks typed event/meeting."""
    overlay = merged.get("__overlays")
    events = merged.get("events") if isinstance(merged.get("events"), list) else []
    from_tasks = [
        {**t, "__from_tasks": True}
        for t in _tasks(merged)
        if normalize_type(t.get("type")) in ("event", "meeting")
    ]
    combined = []
    for e in [e for e in events if isinstance(e, dict)] + from_tasks:
        t = normalize_type(e.get("type"))
        combined.append(
            {
                **e,
                "__status": "completed" if is_done(e, overlay) else "open",
                "type": t if t != "task" else "event",
            }
        )
    combined = [e for e in combined if e["__status"] == "open" and matches_filters(e, filters)]
    return sort_items(combined, today, sort=sort)


def summary_counts(merged: JsonDict, today: dt.date) -> Dict[str, int]:
    """Open-item counts for today, this week, and overdue."""
    items = build_task_list(merged, "today", today)
    lo, hi = start_of_week(today), end_of_week(today)
    return {
        "today": sum(1 for t in items if item_date(t) == today),
        "week": sum(1 for t in items if item_date(t) and lo <= item_date(t) <= hi),
        "overdue": sum(1 for t in items if is_overdue(t, today)),
    }


def group_counts(merged: JsonDict, today: dt.date, key: str) -> List[Tuple[str, JsonDict]]:
    """Per-``key`` (pillar / owner_id) totals for open items, largest first."""
    counts: Dict[str, JsonDict] = {}
    for t in build_task_list(merged, "today", today):
        k = str(t.get(key) or "—")
        c = counts.setdefault(k, {"total": 0, "overdue": 0, "p1": 0})
        c["total"] += 1
        if is_overdue(t, today):
            c["overdue"] += 1
        if str(t.get("priority")) == "1":
            c["p1"] += 1
    return sorted(counts.items(), key=lambda kv: -kv[1]["total"])


def view_title(view: str, today: dt.date) -> str:
    if view == "today":
        return f"Today ({iso_from_date(today)})"
    if view == "week":
        return f"Week ({iso_from_date(start_of_week(today))} → {iso_from_date(end_of_week(today))})"
    if view == "month":
        return f"Month ({today.year}-{today.month:02d})"
    if view == "upcoming":
        return "Upcoming"
    if view == "completed":
        return "Completed"
    if view == "events":
        return "Events / Milestones"
    if view == "pillars":
        return "Pillars Dashboard"
    return "Tasks"


__all__ = [
    "Filters",
    "NO_FILTERS",
    "SORT_KEYS",
    "VIEWS",
    "build_events",
    "build_task_list",
    "decorate_tasks",
    "group_counts",
    "is_overdue",
    "item_date",
    "matches_filters",
    "sort_items",
    "summary_counts",
    "today_sections",
    "view_title",
]
