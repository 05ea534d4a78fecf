"""Suggestion boundary: payload contract, safety policy, completion services."""

from __future__ import annotations

from .interface import (
    AddOp,
    CompleteOp,
    CompletionService,
    DeleteOp,
    NOOP_SERVICE,
    ParseError,
    SuggestionPayload,
    UndoCompleteOp,
    UpdateOp,
)
from .contract import ValidationResult, parse_payload, parse_suggestion_text, validate_payload
from .policy import Classification, classify, is_auto_appliable, is_temp_id, new_temp_id
from .engine import run_ops, run_rebalance_today, run_refine_task

__all__ = [
    "AddOp",
    "Classification",
    "CompleteOp",
    "CompletionService",
    "DeleteOp",
    "NOOP_SERVICE",
    "ParseError",
    "SuggestionPayload",
    "UndoCompleteOp",
    "UpdateOp",
    "ValidationResult",
    "classify",
    "is_auto_appliable",
    "is_temp_id",
    "new_temp_id",
    "parse_payload",
    "parse_suggestion_text",
    "run_ops",
    "run_rebalance_today",
    "run_refine_task",
    "validate_payload",
]
