# flowtasks/backup.py
"""Merged-view backup export."""

from __future__ import annotations

import json
from typing import Any, Dict

try:
    import orjson  # type: ignore
except ImportError:  # pragma: no cover
    orjson = None  # type: ignore

OVERLAY_EXPORT_NAME = "overrides.json"
MERGED_BACKUP_NAME = "merged.json"


def export_merged(merged: Dict[str, Any]) -> str:
    """Pretty JSON dump of the merged view, ``__overlays`` included."""
    if not isinstance(merged, dict):
        raise TypeError(f"merged must be dict, got {type(merged).__name__}")
    if orjson is not None:
        return orjson.dumps(merged, option=orjson.OPT_INDENT_2).decode("utf-8") + "\n"
    return json.dumps(merged, indent=2, ensure_ascii=False) + "\n"


__all__ = ["MERGED_BACKUP_NAME", "OVERLAY_EXPORT_NAME", "export_merged"]
