"""Suggestion boundary: typed ops and the completion service protocol.

Ops are a closed set of frozen dataclasses. They are only constructed by
``parse_payload`` after the raw payload has passed validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Tuple, Union

JsonDict = Dict[str, Any]

OP_KINDS = ("add", "update", "complete", "undo_complete", "delete")


@dataclass(frozen=True)
class AddOp:
    id: str
    fields: JsonDict
    reason: Optional[str] = None
    op: str = field(default="add", init=False)


@dataclass(frozen=True)
class UpdateOp:
    id: str
    fields: JsonDict
    reason: Optional[str] = None
    op: str = field(default="update", init=False)


@dataclass(frozen=True)
class CompleteOp:
    id: str
    reason: Optional[str] = None
    op: str = field(default="complete", init=False)


@dataclass(frozen=True)
class UndoCompleteOp:
    id: str
    reason: Optional[str] = None
    op: str = field(default="undo_complete", init=False)


@dataclass(frozen=True)
class DeleteOp:
    id: str
    reason: Optional[str] = None
    op: str = field(default="delete", init=False)


Op = Union[AddOp, UpdateOp, CompleteOp, UndoCompleteOp, DeleteOp]


def op_to_dict(op: Op) -> JsonDict:
    """Wire form {op, id, fields?, reason?}."""
    out: JsonDict = {"op": op.op, "id": op.id}
    fields = getattr(op, "fields", None)
    if fields is not None:
        out["fields"] = dict(fields)
    if op.reason:
        out["reason"] = op.reason
    return out


@dataclass(frozen=True)
class SuggestionPayload:
    summary: str
    ops: Tuple[Op, ...] = ()

    def to_dict(self) -> JsonDict:
        return {"summary": self.summary, "ops": [op_to_dict(o) for o in self.ops]}


@dataclass(frozen=True)
class ParseError:
    """Why a completion response or payload could not be used."""

    reason: str
    raw: Optional[str] = None
    kind: str = "invalid"  # "no_json" | "invalid"


class CompletionService(Protocol):
    def complete(self, system: str, user: str, context: JsonDict) -> str:
        """Return the raw model text for the given prompts and context."""


class NoopCompletionService:
    """Baseline service that proposes no changes."""

    def complete(self, system: str, user: str, context: JsonDict) -> str:
        return '{"summary": "No changes needed", "ops": []}'


NOOP_SERVICE = NoopCompletionService()


__all__ = [
    "AddOp",
    "CompleteOp",
    "CompletionService",
    "DeleteOp",
    "NOOP_SERVICE",
    "NoopCompletionService",
    "OP_KINDS",
    "Op",
    "ParseError",
    "SuggestionPayload",
    "UndoCompleteOp",
    "UpdateOp",
    "op_to_dict",
]
