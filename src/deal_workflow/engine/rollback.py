"""
Stage rollback: step a deal back exactly one stage.

Rollbacks skip requirement and field validation (moving back never needs
new paperwork) but are recorded as STAGE_CHANGE entries flagged
is_rollback, which the projector excludes from forward-progress metrics.
"""

from ..errors import InvalidTransitionError
from ..models.deal import Deal
from ..models.enums import DealStage
from ..models.events import DealEventType
from ..registry import DealTypeRegistry, default_registry
from .executor import TransitionExecutor, TransitionResult


class RollbackHandler:
    """Validates and applies single-step stage rollbacks."""

    def __init__(
        self,
        registry: DealTypeRegistry | None = None,
        executor: TransitionExecutor | None = None,
    ):
        self.registry = registry or default_registry
        self.executor = executor or TransitionExecutor(self.registry)

    def rollback(
        self,
        deal: Deal,
        target_stage: DealStage,
        actor: str,
        reason: str | None = None,
    ) -> TransitionResult:
        """
        Move deal back to the stage immediately before its current one.

        Args:
            deal: Current deal snapshot
            target_stage: Must equal the preceding stage in the type's list
            actor: User id performing the rollback
            reason: Optional free-text reason stored on the entry

        Returns:
            TransitionResult with the rolled-back deal

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            UnknownStageError: Deal sits at a stage outside its type's workflow
            InvalidTransitionError: Deal not Active, already at the first
                stage, or target is not the preceding stage
        """
        context = {
            'deal_id': deal.id,
            'current_stage': deal.stage.value,
            'target_stage': target_stage.value,
        }
        self.executor.check_stage_mutable(deal, context)

        previous = self.registry.previous_stage(deal.type, deal.stage)
        if previous is None:
            raise InvalidTransitionError(
                f'Cannot roll back from {deal.stage.value}: it is the first stage',
                context=context,
            )
        if target_stage != previous:
            raise InvalidTransitionError(
                f'Rollback from {deal.stage.value} must target {previous.value}, '
                f'not {target_stage.value}',
                context=context,
            )

        return self.executor.record_stage_change(
            deal,
            target_stage,
            actor,
            reason=reason,
            is_rollback=True,
            event_type=DealEventType.STAGE_ROLLBACK,
        )
