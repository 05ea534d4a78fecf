#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List

from flowtasks.backup import MERGED_BACKUP_NAME
from flowtasks.session import Session

from ._common import add_session_args, home_path


def _die(msg: str, rc: int = 2) -> int:
    print(f"[flowtasks-backup-merged] ERROR: {msg}", file=sys.stderr)
    return rc


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="flowtasks-backup-merged",
        description="Write the merged view (base + overlay) as a JSON backup.",
    )
    add_session_args(ap)
    ap.add_argument("--out", default=MERGED_BACKUP_NAME, help=f"Output path (default: {MERGED_BACKUP_NAME})")
    ns = ap.parse_args(argv)

    try:
        session = Session.from_paths(ns.base, home=home_path(ns.home), tz_name=ns.tz)
    except Exception as e:
        return _die(f"Failed to open session: {e}")

    out_path = Path(ns.out)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(session.export_merged_text(), encoding="utf-8")
    except OSError as e:
        return _die(f"Failed to write: {out_path} ({e})")
    print(f"[flowtasks-backup-merged] wrote {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
