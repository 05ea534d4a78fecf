#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from flowtasks.ai.providers import PROVIDERS
from flowtasks.session import Session

from ._common import add_session_args, home_path


def _die(msg: str, rc: int = 2) -> int:
    print(f"[flowtasks-ai-refine] ERROR: {msg}", file=sys.stderr)
    return rc


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="flowtasks-ai-refine",
        description="Ask the configured AI provider to refine one item or rebalance today.",
    )
    add_session_args(ap)
    target = ap.add_mutually_exclusive_group(required=True)
    target.add_argument("--id", default=None, help="Item id to refine")
    target.add_argument("--rebalance", action="store_true", help="Rebalance today's open tasks")
    ap.add_argument("--provider", choices=list(PROVIDERS), default=None, help="Override the stored provider")
    ap.add_argument("--model", default=None, help="Override the stored model")
    ap.add_argument("--endpoint", default=None, help="Override the stored endpoint URL")
    ap.add_argument("--api-key", default=None, help="API key for this run (not stored)")
    ap.add_argument("--accept", action="store_true", help="Apply ops left for review instead of only listing them")
    ap.add_argument("--pending-out", default=None, help="Write ops left for review to this JSON path")
    ns = ap.parse_args(argv)

    try:
        session = Session.from_paths(ns.base, home=home_path(ns.home), tz_name=ns.tz)
    except Exception as e:
        return _die(f"Failed to open session: {e}")

    overrides = {"provider": ns.provider, "model": ns.model, "endpoint": ns.endpoint, "api_key": ns.api_key}
    session.settings.update({k: v for k, v in overrides.items() if v is not None})
    if any(v is not None for v in overrides.values()):
        session.settings["enabled"] = True

    outcome = session.rebalance_today() if ns.rebalance else session.refine_task(ns.id)
    if outcome.failed:
        session.close()
        return _die(outcome.message, rc=4)

    print(f"[flowtasks-ai-refine] {outcome.message}")
    if outcome.pending is not None:
        if ns.pending_out:
            out_path = Path(ns.pending_out)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_text(json.dumps(outcome.pending.to_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        for op in outcome.pending.ops:
            print(f"  review: {op.op} {op.id}" + (f" ({op.reason})" if op.reason else ""))
        if ns.accept:
            print(f"[flowtasks-ai-refine] {session.accept_pending().message}")
    session.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
