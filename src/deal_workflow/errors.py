"""
Custom exceptions and error handling for the Deal Workflow Engine.

Provides:
- Typed exception hierarchy for each way a mutation can be refused
- Error context preservation for debugging
- Wrapping of foreign persistence failures into StorageError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models.validation import ValidationResult


class DealWorkflowError(Exception):
    """Base exception for all deal workflow errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Transition Errors
# =============================================================================


class TransitionError(DealWorkflowError):
    """
    Base class for refused stage, status and rollback transitions.

    Carries the ValidationResult when one was computed, so callers can render
    blocking errors and non-blocking warnings together.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        result: ValidationResult | None = None,
    ):
        super().__init__(message, context)
        self.result = result

    @property
    def warnings(self) -> list[str]:
        return list(self.result.warnings) if self.result else []


class InvalidTransitionError(TransitionError):
    """Target stage/status is not reachable from the current one."""

    pass


class ValidationFailedError(InvalidTransitionError):
    """Custom field validators or blocking requirements failed."""

    def __init__(
        self,
        message: str,
        errors: list[str],
        context: dict[str, Any] | None = None,
        result: ValidationResult | None = None,
    ):
        super().__init__(message, context, result)
        self.errors = list(errors)


class UnknownStageError(InvalidTransitionError):
    """Deal sits at a stage that is not part of its type's workflow."""

    pass


class TerminalStateViolationError(TransitionError):
    """Mutation attempted on a Completed or Cancelled deal."""

    pass


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(DealWorkflowError):
    """Persistence read/write failure. The transition was not applied."""

    pass


class DealNotFoundError(StorageError):
    """No deal stored under the requested id."""

    pass


class ConcurrentModificationError(StorageError):
    """Optimistic concurrency check failed on save; reload and retry."""

    pass


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_storage_error(exc: Exception, context: dict[str, Any] | None = None) -> StorageError:
    """
    Wrap a persistence-layer exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed StorageError subclass
    """
    if isinstance(exc, StorageError):
        return exc

    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if 'conflict' in error_str or 'version mismatch' in error_str:
        return ConcurrentModificationError(
            f"Concurrent modification detected: {exc}",
            context=ctx,
        )
    elif 'not found' in error_str:
        return DealNotFoundError(
            f"Deal not found: {exc}",
            context=ctx,
        )
    else:
        return StorageError(
            f"Storage operation failed: {exc}",
            context=ctx,
        )
