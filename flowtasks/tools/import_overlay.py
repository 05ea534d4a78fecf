#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List

from flowtasks.config import overlay_path
from flowtasks.errors import StructuralError
from flowtasks.overlay import OverlayStore, format_overlay_stats, import_overlay

from ._common import add_session_args, home_path


def _die(msg: str, rc: int = 2) -> int:
    print(f"[flowtasks-import-overlay] ERROR: {msg}", file=sys.stderr)
    return rc


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="flowtasks-import-overlay",
        description="Replace the local overlay with an exported overlay JSON.",
    )
    add_session_args(ap, base=False)
    ap.add_argument("--in", dest="in_path", required=True, help="Exported overlay JSON path")
    ns = ap.parse_args(argv)

    in_path = Path(ns.in_path)
    if not in_path.exists():
        return _die(f"Missing input JSON: {in_path}")

    try:
        overlay = import_overlay(in_path.read_text(encoding="utf-8", errors="replace"))
    except StructuralError as e:
        return _die(f"Invalid JSON: {e}")
    except OSError as e:
        return _die(f"Failed to read: {in_path} ({e})")

    store = OverlayStore(overlay_path(home_path(ns.home)))
    store.replace(overlay)
    print(f"[flowtasks-import-overlay] Imported overlays. {format_overlay_stats(store.overlay)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
