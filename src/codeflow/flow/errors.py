"""Error types raised by flow operations.

Each class derives from the builtin exception that callers already
catch (``KeyError`` for missing entities, ``ValueError`` for bad input),
so tool wrappers written as ``except (ValueError, KeyError)`` keep working.
Storage failures are plain ``OSError`` and are never wrapped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from codeflow.flow.validation import ValidationError


class CodeflowError(Exception):
    """Mixin shared by every error this package raises on purpose."""


class NotFoundError(CodeflowError, KeyError):
    """A referenced flow, node or phase does not exist."""

    def __init__(self, message: str, target_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.target_id = target_id

    def __str__(self) -> str:
        # KeyError quotes its argument; show the plain message instead.
        return self.message


class ConflictError(CodeflowError, ValueError):
    """An entity with the requested id already exists."""


class MalformedInputError(CodeflowError, ValueError):
    """Unparseable JSON or a mutation argument missing a required field."""


class PatchOperationError(MalformedInputError):
    """A patch operation cannot be applied to the current document.

    Attributes:
        index: Position of the failing operation in the submitted sequence.
        reason: Why the operation was rejected.
    """

    def __init__(self, index: int, reason: str, operation: Any = None) -> None:
        super().__init__(f"Invalid operation at index {index}: {reason}")
        self.index = index
        self.reason = reason
        self.operation = operation


class ValidationFailedError(CodeflowError, ValueError):
    """A prospective document violates the flow schema.

    Attributes:
        errors: Every violation reported by the validator.
    """

    def __init__(self, errors: list[ValidationError], message: str | None = None) -> None:
        self.errors = list(errors)
        if message is None:
            lines = "\n".join(f"  - {e.path}: {e.message}" for e in self.errors)
            message = f"Resulting flow is invalid:\n{lines}"
        super().__init__(message)
