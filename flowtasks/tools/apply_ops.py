#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, List

from flowtasks.ai import ParseError, classify, parse_suggestion_text
from flowtasks.session import Session

from ._common import add_session_args, home_path


def _die(msg: str, rc: int = 2) -> int:
    print(f"[flowtasks-apply-ops] ERROR: {msg}", file=sys.stderr)
    return rc


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="flowtasks-apply-ops",
        description="Apply a suggestion payload to the local overlay.",
    )
    add_session_args(ap)
    ap.add_argument("--ops", required=True, help="Suggestion payload JSON (or raw model output) path")
    ap.add_argument(
        "--mode",
        choices=["all", "auto"],
        default="all",
        help="all: apply every op; auto: apply only ops the safety policy auto-applies (default: all)",
    )
    ns = ap.parse_args(argv)

    ops_path = Path(ns.ops)
    if not ops_path.exists():
        return _die(f"Missing ops file: {ops_path}")
    try:
        text = ops_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        return _die(f"Failed to read: {ops_path} ({e})")

    parsed = parse_suggestion_text(text)
    if isinstance(parsed, ParseError):
        return _die(f"Invalid payload: {parsed.reason}", rc=3)

    try:
        session = Session.from_paths(ns.base, home=home_path(ns.home), tz_name=ns.tz)
    except Exception as e:
        return _die(f"Failed to open session: {e}")

    ops: List[Any] = list(parsed.ops)
    skipped = 0
    if ns.mode == "auto":
        split = classify(ops)
        ops = list(split.auto_ops)
        skipped = len(split.review_ops)

    try:
        n = session.applier.apply(ops)
    except Exception as e:
        return _die(f"Failed to apply ops: {e}")
    finally:
        session.close()

    msg = f"[flowtasks-apply-ops] applied {n} op(s)"
    if skipped:
        msg += f", {skipped} left for review"
    print(msg)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
