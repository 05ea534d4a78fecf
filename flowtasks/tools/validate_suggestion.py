#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from flowtasks.ai import ParseError, classify, parse_suggestion_text


def _die(msg: str, rc: int = 2) -> int:
    print(f"[flowtasks-validate-suggestion] ERROR: {msg}", file=sys.stderr)
    return rc


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="flowtasks-validate-suggestion",
        description="Validate a suggestion payload (raw model text or JSON) and show its risk tiering.",
    )
    ap.add_argument("--in", dest="in_path", required=True, help="Model output or payload JSON path")
    ap.add_argument("--json", action="store_true", help="Print the parsed payload with auto/review split as JSON")
    ns = ap.parse_args(argv)

    in_path = Path(ns.in_path)
    if not in_path.exists():
        return _die(f"Missing input: {in_path}")

    try:
        text = in_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        return _die(f"Failed to read: {in_path} ({e})")

    parsed = parse_suggestion_text(text)
    if isinstance(parsed, ParseError):
        return _die(parsed.reason, rc=3)

    split = classify(parsed.ops)
    if ns.json:
        out = parsed.to_dict()
        out["auto_ops"] = len(split.auto_ops)
        out["review_ops"] = len(split.review_ops)
        print(json.dumps(out, indent=2, ensure_ascii=False))
        return 0

    print(
        f"[flowtasks-validate-suggestion] OK: {len(parsed.ops)} op(s), "
        f"{len(split.auto_ops)} auto, {len(split.review_ops)} review"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
