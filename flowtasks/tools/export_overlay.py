#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List

from flowtasks.backup import OVERLAY_EXPORT_NAME
from flowtasks.config import overlay_path
from flowtasks.overlay import OverlayStore, export_overlay

from ._common import add_session_args, home_path


def _die(msg: str, rc: int = 2) -> int:
    print(f"[flowtasks-export-overlay] ERROR: {msg}", file=sys.stderr)
    return rc


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="flowtasks-export-overlay",
        description="Export the local overlay (deletions, patches, new items, learning) as JSON.",
    )
    add_session_args(ap, base=False)
    ap.add_argument("--out", default=OVERLAY_EXPORT_NAME, help=f"Output path, '-' for stdout (default: {OVERLAY_EXPORT_NAME})")
    ns = ap.parse_args(argv)

    store = OverlayStore(overlay_path(home_path(ns.home)))
    text = export_overlay(store.load())

    if ns.out == "-":
        sys.stdout.write(text)
        return 0

    out_path = Path(ns.out)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
    except OSError as e:
        return _die(f"Failed to write: {out_path} ({e})")
    print(f"[flowtasks-export-overlay] wrote {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
