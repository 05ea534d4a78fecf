"""Overlay persistence: load, normalize, save, export/import.

The overlay is the only mutable structure. It is a JSON-compatible dict:

  {
    "version": 1,
    "updated_at": "<iso>",
    "deletions": ["<id>", ...],
    "task_overrides": {"<id>": {<partial fields>}},
    "new_tasks": [{<item>}, ...],
    "recurrence_overrides": {"<rule id>": {"enabled": bool}},
    "learning": {"completion_log": [...], "move_log": [...],
                 "stats": {"moves": int, "completes": int}}
  }

Loading never fails: every sub-field is checked on its own and falls back
to the default scaffold when missing or malformed.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .audit import LOG_LIMIT
from .config import overlay_path
from .errors import StructuralError
from .util.console import eprint, obs_log
from .util.dates import utc_now_iso

OVERLAY_VERSION = 1

JsonDict = Dict[str, Any]


def default_learning() -> JsonDict:
    return {
        "completion_log": [],
        "move_log": [],
        "stats": {"moves": 0, "completes": 0},
    }


def default_overlay() -> JsonDict:
    return {
        "version": OVERLAY_VERSION,
        "updated_at": utc_now_iso(),
        "deletions": [],
        "task_overrides": {},
        "new_tasks": [],
        "recurrence_overrides": {},
        "learning": default_learning(),
    }


def _norm_deletions(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    out: List[str] = []
    seen = set()
    for x in raw:
        if isinstance(x, str) and x and x not in seen:
            out.append(x)
            seen.add(x)
    return out


def _norm_task_overrides(raw: Any) -> Dict[str, JsonDict]:
    if not isinstance(raw, dict):
        return {}
    return {k: dict(v) for k, v in raw.items() if isinstance(k, str) and k and isinstance(v, dict)}


def _norm_new_tasks(raw: Any) -> List[JsonDict]:
    if not isinstance(raw, list):
        return []
    return [dict(t) for t in raw if isinstance(t, dict)]


def _norm_recurrence_overrides(raw: Any) -> Dict[str, JsonDict]:
    if not isinstance(raw, dict):
        return {}
    out: Dict[str, JsonDict] = {}
    for k, v in raw.items():
        if not isinstance(k, str) or not k or not isinstance(v, dict):
            continue
        enabled = v.get("enabled", True)
        out[k] = {"enabled": enabled if isinstance(enabled, bool) else True}
    return out


def _norm_log(raw: Any) -> List[JsonDict]:
    if not isinstance(raw, list):
        return []
    entries = [dict(e) for e in raw if isinstance(e, dict)]
    return entries[-LOG_LIMIT:]


def _norm_count(raw: Any) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        return 0
    return raw


def _norm_learning(raw: Any) -> JsonDict:
    learning = default_learning()
    if not isinstance(raw, dict):
        return learning
    learning["completion_log"] = _norm_log(raw.get("completion_log"))
    learning["move_log"] = _norm_log(raw.get("move_log"))
    stats = raw.get("stats")
    if isinstance(stats, dict):
        learning["stats"] = {
            "moves": _norm_count(stats.get("moves")),
            "completes": _norm_count(stats.get("completes")),
        }
    return learning


def normalize_overlay(obj: Any) -> JsonDict:
    """Return a structurally complete overlay built from whatever in obj is valid.

    Unknown keys are dropped. Each field is recovered independently, so a
    corrupt ``learning`` does not discard valid ``deletions``.
    """
    out = default_overlay()
    if not isinstance(obj, dict):
        return out

    version = obj.get("version")
    if isinstance(version, int) and not isinstance(version, bool):
        out["version"] = version
    updated_at = obj.get("updated_at")
    if isinstance(updated_at, str) and updated_at:
        out["updated_at"] = updated_at

    out["deletions"] = _norm_deletions(obj.get("deletions"))
    out["task_overrides"] = _norm_task_overrides(obj.get("task_overrides"))
    out["new_tasks"] = _norm_new_tasks(obj.get("new_tasks"))
    out["recurrence_overrides"] = _norm_recurrence_overrides(obj.get("recurrence_overrides"))
    out["learning"] = _norm_learning(obj.get("learning"))
    return out


# --- Export / import ----------------------------------------------------------

def export_overlay(overlay: JsonDict) -> str:
    """Serialize an overlay to the same record that is persisted."""
    return json.dumps(overlay, indent=2, ensure_ascii=False) + "\n"


def import_overlay(text: str) -> JsonDict:
    """Parse an exported overlay and re-normalize it.

    Raises StructuralError when the text is not a JSON object.
    """
    try:
        obj = json.loads(text)
    except (TypeError, ValueError) as e:
        raise StructuralError(f"overlay import is not valid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise StructuralError(f"overlay import must be a JSON object, got {type(obj).__name__}")
    return normalize_overlay(obj)


def overlay_stats(overlay: JsonDict) -> JsonDict:
    """Counts of each delta kind plus approximate serialized size."""
    try:
        size_kb = round(len(json.dumps(overlay).encode("utf-8")) / 1024)
    except (TypeError, ValueError):
        size_kb = None
    return {
        "deletions": len(overlay.get("deletions") or []),
        "patches": len(overlay.get("task_overrides") or {}),
        "new_tasks": len(overlay.get("new_tasks") or []),
        "size_kb": size_kb,
    }


def format_overlay_stats(overlay: JsonDict) -> str:
    s = overlay_stats(overlay)
    if s["size_kb"] is None:
        return "Local overlays stored."
    return (
        f"Overlays: {s['deletions']} del • {s['patches']} patch • "
        f"{s['new_tasks']} new • ~{s['size_kb']} KB"
    )


# --- Stores -------------------------------------------------------------------

class OverlayStore:
    """File-backed overlay store with an explicit open/mutate/flush/close lifecycle.

    ``overlay`` is the live dict; OpApplier mutates it in place and calls
    ``save`` once per batch.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else overlay_path()
        self._overlay: Optional[JsonDict] = None
        self.closed = False

    # lifecycle

    def open(self) -> JsonDict:
        if self._overlay is None:
            self._overlay = self.load()
        self.closed = False
        return self._overlay

    @property
    def overlay(self) -> JsonDict:
        if self._overlay is None:
            return self.open()
        return self._overlay

    def replace(self, overlay: JsonDict) -> JsonDict:
        """Swap in a new overlay (import/reset) and persist it."""
        self._overlay = normalize_overlay(overlay)
        self.save(self._overlay)
        return self._overlay

    def flush(self) -> bool:
        if self._overlay is None:
            return True
        return self.save(self._overlay)

    def close(self) -> None:
        self.flush()
        self.closed = True

    def __enter__(self) -> "OverlayStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # persistence

    def _read_raw(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8", errors="replace")

    def _write_raw(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, self.path)

    def load(self) -> JsonDict:
        """Load the persisted overlay; absence or corruption yields defaults."""
        try:
            raw = self._read_raw()
        except OSError as e:
            obs_log("overlay", "warn", f"cannot read overlay {self.path}: {e}")
            return default_overlay()
        if not raw:
            return default_overlay()
        try:
            obj = json.loads(raw)
        except ValueError as e:
            obs_log("overlay", "warn", f"corrupt overlay {self.path}, using defaults: {e}")
            return default_overlay()
        if not isinstance(obj, dict):
            obs_log("overlay", "warn", f"overlay {self.path} is {type(obj).__name__}, using defaults")
            return default_overlay()
        return normalize_overlay(obj)

    def save(self, overlay: JsonDict) -> bool:
        """Stamp updated_at and persist. Failures are reported, never raised."""
        overlay["updated_at"] = utc_now_iso()
        try:
            self._write_raw(json.dumps(overlay, ensure_ascii=False))
        except (OSError, TypeError, ValueError) as e:
            eprint(f"[flowtasks.overlay] WARN: failed to save overlay {self.path}: {e}")
            return False
        obs_log("overlay", "info", format_overlay_stats(overlay))
        return True


class MemoryOverlayStore(OverlayStore):
    """In-memory store holding the serialized record, like a key/value slot."""

    def __init__(self, raw: Optional[str] = None) -> None:
        super().__init__(Path(":memory:"))
        self.raw = raw
        self.writes = 0

    def _read_raw(self) -> Optional[str]:
        return self.raw

    def _write_raw(self, text: str) -> None:
        self.raw = text
        self.writes += 1


__all__ = [
    "OVERLAY_VERSION",
    "MemoryOverlayStore",
    "OverlayStore",
    "default_learning",
    "default_overlay",
    "export_overlay",
    "format_overlay_stats",
    "import_overlay",
    "normalize_overlay",
    "overlay_stats",
]
