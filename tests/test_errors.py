"""
Tests for the errors module.
"""

import pytest

from deal_workflow.errors import (
    ConcurrentModificationError,
    DealNotFoundError,
    DealWorkflowError,
    InvalidTransitionError,
    StorageError,
    TerminalStateViolationError,
    TransitionError,
    UnknownStageError,
    ValidationFailedError,
    wrap_storage_error,
)
from deal_workflow.models import DealStage, ValidationResult


class TestErrorHierarchy:
    """Test error class hierarchy."""

    def test_base_error_with_context(self):
        """Test that base error captures context."""
        error = DealWorkflowError(
            "Something went wrong",
            context={"deal_id": "d1", "version": 3},
        )

        assert error.message == "Something went wrong"
        assert error.context == {"deal_id": "d1", "version": 3}
        assert "deal_id" in str(error)

    def test_base_error_without_context(self):
        """Test error without context."""
        error = DealWorkflowError("Simple error")

        assert error.message == "Simple error"
        assert error.context == {}
        assert str(error) == "Simple error"

    def test_transition_error_inheritance(self):
        """Validation failures are invalid transitions; terminal violations are not."""
        assert issubclass(InvalidTransitionError, TransitionError)
        assert issubclass(ValidationFailedError, InvalidTransitionError)
        assert issubclass(UnknownStageError, InvalidTransitionError)
        assert issubclass(TerminalStateViolationError, TransitionError)
        assert not issubclass(TerminalStateViolationError, InvalidTransitionError)
        assert issubclass(TransitionError, DealWorkflowError)

    def test_storage_error_inheritance(self):
        assert issubclass(DealNotFoundError, StorageError)
        assert issubclass(ConcurrentModificationError, StorageError)
        assert issubclass(StorageError, DealWorkflowError)
        assert not issubclass(StorageError, TransitionError)


class TestTransitionErrorPayload:
    """Transition errors carry their ValidationResult."""

    def test_warnings_from_result(self):
        result = ValidationResult(
            target_stage=DealStage.DISCUSSION,
            can_progress=False,
            warnings=('Draft lease agreement',),
            validation_errors=('duration requirement not met',),
        )
        error = ValidationFailedError(
            "Transition failed",
            errors=list(result.validation_errors),
            result=result,
        )

        assert error.errors == ['duration requirement not met']
        assert error.warnings == ['Draft lease agreement']
        assert error.result is result

    def test_warnings_without_result(self):
        error = InvalidTransitionError("Not adjacent")

        assert error.result is None
        assert error.warnings == []


class TestErrorWrapping:
    """Test error wrapping utilities."""

    def test_storage_error_passes_through(self):
        original = DealNotFoundError("Deal d1 not found")
        assert wrap_storage_error(original) is original

    @pytest.mark.parametrize(
        'message',
        ['Write conflict on deals/d1', 'version mismatch: expected 3 got 4'],
    )
    def test_wrap_conflict(self, message):
        wrapped = wrap_storage_error(Exception(message))

        assert isinstance(wrapped, ConcurrentModificationError)
        assert wrapped.context['original_error'] == message

    def test_wrap_not_found(self):
        wrapped = wrap_storage_error(LookupError("Document not found"))

        assert isinstance(wrapped, DealNotFoundError)
        assert wrapped.context['error_type'] == 'LookupError'

    def test_wrap_generic(self):
        wrapped = wrap_storage_error(OSError("disk full"), context={'deal_id': 'd1'})

        assert type(wrapped) is StorageError
        assert wrapped.context['deal_id'] == 'd1'
        assert "disk full" in wrapped.message
