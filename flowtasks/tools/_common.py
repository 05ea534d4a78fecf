# flowtasks/tools/_common.py
from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Optional


def add_session_args(ap: argparse.ArgumentParser, *, base: bool = True) -> None:
    """Shared --home/--base/--tz options (env FLOWTASKS_HOME/BASE/TZ)."""
    ap.add_argument(
        "--home",
        default=os.getenv("FLOWTASKS_HOME") or None,
        help="Data directory holding the overlay and AI settings (default: env FLOWTASKS_HOME or ~/.flowtasks)",
    )
    if base:
        ap.add_argument(
            "--base",
            default=os.getenv("FLOWTASKS_BASE") or None,
            help="Base dataset JSON (default: env FLOWTASKS_BASE or ./tasks.json)",
        )
        ap.add_argument(
            "--tz",
            default=os.getenv("FLOWTASKS_TZ") or None,
            help="Timezone for today's date (default: env FLOWTASKS_TZ, base meta.timezone, else local)",
        )


def home_path(raw: Optional[str]) -> Optional[Path]:
    return Path(raw).expanduser() if raw else None
