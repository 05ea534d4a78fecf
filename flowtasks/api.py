"""flowtasks.api

Stable *library* entrypoint for flowtasks.

Policy:
  - Only names listed in __all__ are considered public API.
  - Everything else is internal and may change without notice.
"""

from __future__ import annotations

from flowtasks.ai.contract import parse_payload, parse_suggestion_text, validate_payload
from flowtasks.ai.policy import classify, is_temp_id
from flowtasks.apply import OpApplier, apply_ops
from flowtasks.backup import export_merged
from flowtasks.base import load_base_dataset
from flowtasks.errors import FlowtasksError, ServiceError, StructuralError, UserInputError
from flowtasks.merge import find_item, item_status, merge
from flowtasks.overlay import (
    MemoryOverlayStore,
    OverlayStore,
    default_overlay,
    export_overlay,
    import_overlay,
    normalize_overlay,
)
from flowtasks.session import Session, SuggestionOutcome


# --- Public API exports (locked by contract tests) ------------------------
# Keep changes intentional and reviewable.
# Prefer append-only unless you are intentionally reshaping the public surface.
_PUBLIC_EXPORTS = (
    "FlowtasksError",
    "MemoryOverlayStore",
    "OpApplier",
    "OverlayStore",
    "ServiceError",
    "Session",
    "StructuralError",
    "SuggestionOutcome",
    "UserInputError",
    "apply_ops",
    "classify",
    "default_overlay",
    "export_merged",
    "export_overlay",
    "find_item",
    "import_overlay",
    "is_temp_id",
    "item_status",
    "load_base_dataset",
    "merge",
    "normalize_overlay",
    "parse_payload",
    "parse_suggestion_text",
    "validate_payload",
)

__all__ = [n for n in _PUBLIC_EXPORTS if n in globals()]
# --- /Public API exports --------------------------------------------------
