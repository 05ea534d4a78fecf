"""Suggestion payload contract: structural validation and typed parsing.

Shape:
  {"summary": "...", "ops": [{"op": <kind>, "id": "...", "fields": {...}, "reason": "..."}]}

Validation short-circuits on the first violation; any failure rejects the
whole payload.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .interface import (
    OP_KINDS,
    AddOp,
    CompleteOp,
    DeleteOp,
    Op,
    ParseError,
    SuggestionPayload,
    UndoCompleteOp,
    UpdateOp,
)

JsonDict = Dict[str, Any]

_FIELD_KINDS = {"add", "update"}


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    error: Optional[str] = None


def validate_payload(obj: Any) -> ValidationResult:
    if not isinstance(obj, dict):
        return ValidationResult(False, "Not an object")
    ops = obj.get("ops")
    if not isinstance(ops, list):
        return ValidationResult(False, "Missing ops[]")
    for op in ops:
        if not isinstance(op, dict):
            return ValidationResult(False, "Bad op object")
        kind = op.get("op")
        if kind not in OP_KINDS:
            return ValidationResult(False, f"Unsupported op: {kind}")
        op_id = op.get("id")
        if not isinstance(op_id, str) or not op_id:
            return ValidationResult(False, "Op missing id")
        if kind in _FIELD_KINDS and not isinstance(op.get("fields"), dict):
            return ValidationResult(False, "add/update must include fields{}")
    return ValidationResult(True)


def _reason(raw: Any) -> Optional[str]:
    return raw if isinstance(raw, str) and raw else None


def _build_op(raw: JsonDict) -> Op:
    kind = raw["op"]
    op_id = raw["id"]
    reason = _reason(raw.get("reason"))
    if kind == "add":
        return AddOp(id=op_id, fields=dict(raw["fields"]), reason=reason)
    if kind == "update":
        return UpdateOp(id=op_id, fields=dict(raw["fields"]), reason=reason)
    if kind == "complete":
        return CompleteOp(id=op_id, reason=reason)
    if kind == "undo_complete":
        return UndoCompleteOp(id=op_id, reason=reason)
    return DeleteOp(id=op_id, reason=reason)


def parse_payload(obj: Any) -> Union[SuggestionPayload, ParseError]:
    """Validate then build a typed SuggestionPayload; invalid input becomes ParseError."""
    v = validate_payload(obj)
    if not v.ok:
        return ParseError(reason=v.error or "invalid payload")
    summary = obj.get("summary")
    return SuggestionPayload(
        summary=summary if isinstance(summary, str) else "",
        ops=tuple(_build_op(o) for o in obj["ops"]),
    )


# --- Free-text extraction -----------------------------------------------------

def _balanced_object_span(text: str) -> Optional[str]:
    """First {...} span with balanced braces, skipping braces inside strings."""
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_str = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _candidates(text: str) -> List[str]:
    out: List[str] = []
    direct = text.strip()
    if direct:
        out.append(direct)
    span = _balanced_object_span(text)
    if span and span not in out:
        out.append(span)
    first, last = text.find("{"), text.rfind("}")
    if 0 <= first < last:
        greedy = text[first : last + 1]
        if greedy not in out:
            out.append(greedy)
    return out


def extract_json_object(text: Any) -> Union[JsonDict, ParseError]:
    """Strict parse of the whole text, then boundary-matched substring fallback."""
    if not isinstance(text, str):
        return ParseError(reason=f"response must be text, got {type(text).__name__}")
    for cand in _candidates(text):
        try:
            obj = json.loads(cand)
        except ValueError:
            continue
        if isinstance(obj, dict):
            return obj
    return ParseError(reason="No JSON object found in model output", raw=text[:400], kind="no_json")


def parse_suggestion_text(text: Any) -> Union[SuggestionPayload, ParseError]:
    obj = extract_json_object(text)
    if isinstance(obj, ParseError):
        return obj
    return parse_payload(obj)


__all__ = [
    "ValidationResult",
    "extract_json_object",
    "parse_payload",
    "parse_suggestion_text",
    "validate_payload",
]
