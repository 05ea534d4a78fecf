"""Risk tiering for suggested ops (auto-apply vs. review).

An op is auto-applied only when it is an ``update`` of an existing
(non-temporary) item touching allowlisted fields only. Schedule and
structural edits always go to review.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from typing import Any, Iterable, List, Tuple

TEMP_PREFIX = "temp_"

SAFE_FIELDS = frozenset(
    {
        "title",
        "notes",
        "pillar",
        "owner_id",
        "priority",
        "type",
        "estimated_minutes",
        "energy",
    }
)

REVIEW_FIELDS = frozenset({"start_date", "due_date", "subtasks"})

_ALPHABET = string.digits + string.ascii_lowercase


def is_temp_id(item_id: Any) -> bool:
    return isinstance(item_id, str) and item_id.startswith(TEMP_PREFIX)


def _base36(n: int) -> str:
    if n <= 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_ALPHABET[r])
    return "".join(reversed(out))


def new_temp_id() -> str:
    """temp_<ms timestamp base36>_<4 random base36 chars>."""
    suffix = "".join(random.choice(_ALPHABET) for _ in range(4))
    return f"{TEMP_PREFIX}{_base36(int(time.time() * 1000))}_{suffix}"


@dataclass(frozen=True)
class Classification:
    auto_ops: Tuple[Any, ...] = ()
    review_ops: Tuple[Any, ...] = ()


def _parts(op: Any) -> Tuple[Any, Any, Any]:
    if isinstance(op, dict):
        return op.get("op"), op.get("id"), op.get("fields")
    return getattr(op, "op", None), getattr(op, "id", None), getattr(op, "fields", None)


def is_auto_appliable(op: Any) -> bool:
    kind, op_id, fields = _parts(op)
    if kind != "update":
        return False
    if not isinstance(op_id, str) or is_temp_id(op_id):
        return False
    keys = set(fields.keys()) if isinstance(fields, dict) else set()
    if keys & REVIEW_FIELDS:
        return False
    return keys <= SAFE_FIELDS


def classify(ops: Iterable[Any]) -> Classification:
    """Split ops into (auto, review), preserving relative order in each bucket."""
    auto: List[Any] = []
    review: List[Any] = []
    for op in ops:
        if op is None:
            continue
        (auto if is_auto_appliable(op) else review).append(op)
    return Classification(auto_ops=tuple(auto), review_ops=tuple(review))


__all__ = [
    "Classification",
    "REVIEW_FIELDS",
    "SAFE_FIELDS",
    "TEMP_PREFIX",
    "classify",
    "is_auto_appliable",
    "is_temp_id",
    "new_temp_id",
]
