"""Error taxonomy.

Nothing here is fatal to the process: callers recover locally (defaults,
whole-payload rejection) or surface a message and leave state untouched.
"""

from __future__ import annotations


class FlowtasksError(Exception):
    """Base class for flowtasks errors."""


class StructuralError(FlowtasksError, ValueError):
    """Malformed persisted overlay, import file or suggestion payload."""


class ServiceError(FlowtasksError, RuntimeError):
    """Completion service failed or returned unusable content."""


class UserInputError(FlowtasksError, ValueError):
    """Required user input missing (e.g. empty title)."""


__all__ = ["FlowtasksError", "StructuralError", "ServiceError", "UserInputError"]
