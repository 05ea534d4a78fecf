# flowtasks/base.py
"""Base dataset loading and lookups (owners, pillars, meta)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from .errors import StructuralError

JsonDict = Dict[str, Any]


def load_base_dataset(path: Path) -> JsonDict:
    """Read the base dataset JSON. Raises StructuralError on unreadable content."""
    try:
        obj = json.loads(Path(path).read_text(encoding="utf-8", errors="replace"))
    except OSError as e:
        raise StructuralError(f"Failed to load base dataset {path} ({e})") from e
    except ValueError as e:
        raise StructuralError(f"Base dataset {path} is not valid JSON ({e})") from e
    if not isinstance(obj, dict):
        raise StructuralError(f"base dataset must be a JSON object; got {type(obj).__name__}")
    return obj


def owners_list(base: JsonDict) -> List[JsonDict]:
    arr = base.get("owners") or base.get("people") or []
    return [o for o in arr if isinstance(o, dict)] if isinstance(arr, list) else []


def pillars_list(base: JsonDict) -> List[JsonDict]:
    """Declared pillars, else pillar codes collected from tasks (sorted)."""
    p = base.get("pillars")
    if isinstance(p, list) and p:
        return [x for x in p if isinstance(x, dict)]
    tasks = base.get("tasks") if isinstance(base.get("tasks"), list) else []
    codes = sorted({t.get("pillar") for t in tasks if isinstance(t, dict) and t.get("pillar")})
    return [{"code": c, "name": c} for c in codes]


def owner_name(base: JsonDict, owner_id: Any) -> str:
    if not owner_id:
        return "—"
    for o in owners_list(base):
        if o.get("owner_id") == owner_id or o.get("id") == owner_id:
            return str(o.get("name") or owner_id)
    return str(owner_id)


def pillar_label(base: JsonDict, code: Any) -> str:
    if not code:
        return "—"
    for p in pillars_list(base):
        if code in (p.get("code"), p.get("id"), p.get("pillar")):
            return str(p.get("name") or p.get("label") or code)
    return str(code)


def meta_line(base: JsonDict) -> str:
    meta = base.get("meta") if isinstance(base.get("meta"), dict) else {}
    parts = []
    if meta.get("version"):
        parts.append(f"v{meta['version']}")
    if meta.get("last_updated"):
        parts.append(f"updated {meta['last_updated']}")
    if meta.get("timezone"):
        parts.append(f"• {meta['timezone']}")
    return " ".join(parts) or "Flow Tasks"
