# flowtasks/util/console.py
from __future__ import annotations

import os
import sys
from typing import Any


def eprint(*args: Any) -> None:
    print(*args, file=sys.stderr)


def obs_enabled() -> bool:
    v = (os.getenv("FLOWTASKS_OBS_LOG", "") or "").strip().lower()
    return v in {"1", "true", "yes", "on"}


def obs_log(module: str, level: str, msg: str) -> None:
    """Emit a diagnostic line when FLOWTASKS_OBS_LOG is set.

    Format: ``[flowtasks.<module>] <LEVEL>: <msg>``
    """
    if not obs_enabled():
        return
    eprint(f"[flowtasks.{module}] {level.upper()}: {msg}")
