from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List

from .base import meta_line, owner_name, pillar_label
from .errors import FlowtasksError
from .session import Session
from .tools._common import add_session_args, home_path
from .views import (
    SORT_KEYS,
    VIEWS,
    Filters,
    build_events,
    build_task_list,
    group_counts,
    summary_counts,
    today_sections,
    view_title,
)


def _line(session: Session, t: Dict[str, Any]) -> str:
    mark = "x" if t.get("__status") == "completed" else " "
    when = t.get("due_date") or t.get("start_date") or "-"
    bits = [f"[{mark}] {t.get('title') or 'Untitled'}", f"P{t.get('priority') or '-'}", str(when)]
    if t.get("pillar"):
        bits.append(pillar_label(session.base, t["pillar"]))
    if t.get("owner_id"):
        bits.append(owner_name(session.base, t["owner_id"]))
    return "  " + " · ".join(bits) + f"  ({t.get('id')})"


def _run_action(session: Session, args: argparse.Namespace) -> str:
    if args.add:
        new_id, outcome = session.quick_add({"title": args.add})
        return f"Added {new_id}" + (f" · {outcome.message}" if outcome else "")
    if args.done:
        status = session.applier.toggle_complete(args.done)
        if status is None:
            raise FlowtasksError(f"Unknown item: {args.done}")
        return "Completed" if status == "completed" else "Undone"
    if args.defer:
        if session.applier.defer_one_day(args.defer) is None:
            raise FlowtasksError(f"Unknown task: {args.defer}")
        return "Deferred"
    if args.to_today:
        if session.applier.move_to_today(args.to_today) is None:
            raise FlowtasksError(f"Unknown item: {args.to_today}")
        return "Moved to Today"
    if args.delete:
        session.applier.delete_item(args.delete)
        return "Deleted (overlay)"
    if args.toggle_rule:
        enabled = session.applier.toggle_recurrence(args.toggle_rule)
        return "Recurring enabled" if enabled else "Recurring disabled"
    if args.reset:
        session.reset()
        return "Reset"
    return ""


def _render(session: Session, args: argparse.Namespace) -> List[str]:
    today = session.today()
    filters = Filters(q=args.q, pillar=args.pillar, owner_id=args.owner, month=args.month, status=args.status)
    counts = summary_counts(session.merged, today)
    out = [
        f"{meta_line(session.base)}",
        f"Today {counts['today']} · Week {counts['week']} · Overdue {counts['overdue']}",
        "",
        view_title(args.view, today),
    ]

    if args.view == "today":
        sections = today_sections(session.merged, today, filters=filters, sort=args.sort)
        if not sections:
            out.append("  Nothing here. Quick Add to capture something.")
        for label, items in sections:
            out.append(f"{label}:")
            out.extend(_line(session, t) for t in items)
    elif args.view == "events":
        out.extend(_line(session, e) for e in build_events(session.merged, today, filters=filters, sort=args.sort))
    elif args.view == "pillars":
        for key, title in (("pillar", "By pillar"), ("owner_id", "By owner")):
            out.append(f"{title}:")
            for k, c in group_counts(session.merged, today, key):
                name = pillar_label(session.base, k) if key == "pillar" else owner_name(session.base, k)
                out.append(f"  {name}: {c['total']} open · {c['overdue']} overdue · {c['p1']} P1")
    else:
        items = build_task_list(session.merged, args.view, today, filters=filters, sort=args.sort)
        out.extend(_line(session, t) for t in items)

    out.extend(["", session.storage_line()])
    return out


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="flowtasks",
        description="Task list over a read-only base dataset with local overlays.",
    )
    add_session_args(ap)
    ap.add_argument("--view", choices=list(VIEWS), default="today", help="View to list (default: today)")
    ap.add_argument("--sort", choices=list(SORT_KEYS), default="due", help="Sort key (default: due)")
    ap.add_argument("--q", default="", help="Search title, notes and id")
    ap.add_argument("--pillar", default="any", help="Filter by pillar code")
    ap.add_argument("--owner", default="any", help="Filter by owner id")
    ap.add_argument("--month", default="any", help="Filter by YYYY-MM of due/start date")
    ap.add_argument("--status", choices=["any", "open", "completed"], default="any", help="Filter by status")
    ap.add_argument("--json", action="store_true", help="Print the selected list as JSON")

    act = ap.add_mutually_exclusive_group()
    act.add_argument("--add", default=None, metavar="TITLE", help="Quick add a task")
    act.add_argument("--done", default=None, metavar="ID", help="Toggle completion of an item")
    act.add_argument("--defer", default=None, metavar="ID", help="Defer a task by one day")
    act.add_argument("--to-today", default=None, metavar="ID", help="Move an item to today")
    act.add_argument("--delete", default=None, metavar="ID", help="Delete an item (overlay tombstone)")
    act.add_argument("--toggle-rule", default=None, metavar="RULE_ID", help="Enable/disable a recurrence rule")
    act.add_argument("--reset", action="store_true", help="Discard all local overlays")
    args = ap.parse_args(argv)

    try:
        session = Session.from_paths(args.base, home=home_path(args.home), tz_name=args.tz)
    except (FlowtasksError, ValueError) as e:
        print(f"[flowtasks] ERROR: {e}", file=sys.stderr)
        return 2

    try:
        note = _run_action(session, args)
    except (FlowtasksError, ValueError) as e:
        print(f"[flowtasks] ERROR: {e}", file=sys.stderr)
        session.close()
        return 2

    if args.json:
        filters = Filters(q=args.q, pillar=args.pillar, owner_id=args.owner, month=args.month, status=args.status)
        today = session.today()
        if args.view == "events":
            items = build_events(session.merged, today, filters=filters, sort=args.sort)
        else:
            items = build_task_list(session.merged, args.view, today, filters=filters, sort=args.sort)
        print(json.dumps(items, indent=2, ensure_ascii=False))
    else:
        if note:
            print(note)
        print("\n".join(_render(session, args)))
    session.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
