# flowtasks/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

OVERLAY_KEY = "flowtasks_overlay_v1"
AI_SETTINGS_KEY = "flowtasks_ai_settings_v2"

DEFAULT_BASE_NAME = "tasks.json"
REFERENCE_NAME = "reference.json"


def data_dir() -> Path:
    """Data directory (env FLOWTASKS_HOME, default ~/.flowtasks)."""
    raw = (os.getenv("FLOWTASKS_HOME", "") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".flowtasks"


def overlay_path(home: Optional[Path] = None) -> Path:
    return (home or data_dir()) / f"{OVERLAY_KEY}.json"


def ai_settings_path(home: Optional[Path] = None) -> Path:
    return (home or data_dir()) / f"{AI_SETTINGS_KEY}.json"


def reference_path(home: Optional[Path] = None) -> Path:
    """Optional AI reference document (playbooks, workplans) as JSON."""
    return (home or data_dir()) / REFERENCE_NAME


def base_path(explicit: Optional[str] = None) -> Path:
    """Base dataset path: explicit arg, env FLOWTASKS_BASE, else ./tasks.json."""
    if explicit:
        return Path(explicit).expanduser()
    raw = (os.getenv("FLOWTASKS_BASE", "") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path(DEFAULT_BASE_NAME)


def resolve_tz_name(base: Optional[Dict[str, Any]] = None, explicit: Optional[str] = None) -> str:
    """Timezone used for "today": explicit, env FLOWTASKS_TZ, base meta.timezone, else local."""
    if explicit and explicit.strip():
        return explicit.strip()
    env = (os.getenv("FLOWTASKS_TZ", "") or "").strip()
    if env:
        return env
    if isinstance(base, dict):
        meta = base.get("meta")
        if isinstance(meta, dict):
            tz = meta.get("timezone")
            if isinstance(tz, str) and tz.strip():
                return tz.strip()
    return "local"
