"""
Deal workflow service: the operations exposed to controllers and jobs.

Orchestrates the engine components:
1. Per-deal lock (DealLockRegistry)
2. Load the deal from the repository
3. Validate and apply through TransitionExecutor / RollbackHandler
4. Save with an optimistic version check
5. Hand the resulting DealEvent to the NotificationDispatcher

Key design decisions:
- Validation happens inside the lock, right before apply, so the check and
  the write see the same snapshot.
- Events are emitted only after a successful save and never awaited; a
  notification failure cannot fail the operation.
- Repository failures surface as StorageError. Anything else escaping a
  repository is wrapped with wrap_storage_error().
"""

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from .engine import projector
from .engine.executor import TransitionExecutor, TransitionResult
from .engine.rollback import RollbackHandler
from .engine.validator import TransitionValidator
from .errors import StorageError, TransitionError, wrap_storage_error
from .locks import DealLockRegistry
from .logging import OperationTimer, get_logger, logging_context
from .models.deal import Deal, DealDocument, Participant
from .models.enums import (
    DealStage,
    DealStatus,
    DealType,
    DocumentStatus,
    ParticipantRole,
    TimelineEventType,
)
from .models.timeline import TimelineEntry
from .models.validation import ProgressSignal, ValidationResult
from .notifications import NotificationDispatcher
from .registry import DealTypeRegistry, default_registry
from .repository import DealRepository
from .utils import utcnow

logger = get_logger(__name__)

DealMutation = Callable[[Deal], TransitionResult]


class DealWorkflowService:
    """
    Async facade over the workflow engine.

    Example:
        service = DealWorkflowService(InMemoryDealRepository())
        deal = await service.create_deal(DealType.FULL_SALE, actor='user_1')
        deal = await service.transition_stage(deal.id, DealStage.DISCUSSION, actor='user_1')
    """

    def __init__(
        self,
        repository: DealRepository,
        dispatcher: NotificationDispatcher | None = None,
        registry: DealTypeRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
        min_hold_hours: float | None = None,
        locks: DealLockRegistry | None = None,
    ):
        """
        Initialize the service.

        Args:
            repository: Deal persistence
            dispatcher: Notification dispatcher (a consumer-less one by default)
            registry: Deal type registry (defaults to the shipped table)
            clock: Source of timestamps
            min_hold_hours: Override config.MIN_HOLD_HOURS
            locks: Share a lock registry between service instances
        """
        self.repository = repository
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.registry = registry or default_registry
        self.clock = clock
        self.locks = locks or DealLockRegistry()

        self.validator = TransitionValidator(self.registry)
        self.executor = TransitionExecutor(
            self.registry,
            validator=self.validator,
            clock=clock,
            min_hold_hours=min_hold_hours,
        )
        self.rollback_handler = RollbackHandler(self.registry, executor=self.executor)

    # =========================================================================
    # Read operations
    # =========================================================================

    async def get_deal(self, deal_id: str) -> Deal:
        return await self._load(deal_id)

    async def validate_transition(
        self,
        deal_id: str,
        target_stage: DealStage,
        progress: ProgressSignal | None = None,
    ) -> ValidationResult:
        """
        Dry-run a stage transition. Takes no lock and changes nothing.

        Args:
            deal_id: Deal to check
            target_stage: Proposed stage
            progress: Caller-supplied progress and field overrides

        Returns:
            ValidationResult with errors and warnings
        """
        deal = await self._load(deal_id)
        return self.validator.validate(deal, target_stage, progress)

    async def get_timeline(self, deal_id: str) -> list[TimelineEntry]:
        """Timeline entries ordered by date (stable for equal dates)."""
        deal = await self._load(deal_id)
        return sorted(deal.timeline, key=lambda entry: entry.date)

    async def get_timeline_entries(
        self,
        deal_id: str,
        *,
        entry_type: TimelineEventType | None = None,
        stage: DealStage | None = None,
        actor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[TimelineEntry]:
        """
        Filtered timeline, ordered by date. Filters combine with AND.

        Args:
            deal_id: Deal to read
            entry_type: Only entries of this kind
            stage: Only entries recorded at this stage
            actor: Only entries by this user id
            since: Inclusive lower bound on the entry date
            until: Inclusive upper bound on the entry date
        """
        entries = await self.get_timeline(deal_id)
        if entry_type is not None:
            entries = projector.entries_by_type(entries, entry_type)
        if stage is not None:
            entries = projector.entries_for_stage(entries, stage)
        if actor is not None:
            entries = projector.entries_by_actor(entries, actor)
        if since is not None or until is not None:
            entries = projector.entries_in_range(entries, since, until)
        return entries

    async def get_stage_metrics(
        self,
        deal_id: str,
        progress: ProgressSignal | None = None,
    ) -> projector.StageMetrics:
        deal = await self._load(deal_id)
        return projector.stage_metrics(deal, self.clock(), progress, self.registry)

    async def get_timeline_summary(self, deal_id: str) -> projector.TimelineSummary:
        deal = await self._load(deal_id)
        return projector.summarize(deal, self.clock())

    async def get_pending_actions(
        self,
        deal_id: str,
        progress: ProgressSignal | None = None,
    ) -> list[str]:
        deal = await self._load(deal_id)
        return projector.pending_actions(deal, progress, self.registry)

    async def get_history(self, deal_id: str) -> list[str]:
        deal = await self._load(deal_id)
        return projector.describe_history(deal.timeline)

    # =========================================================================
    # Stage and status transitions
    # =========================================================================

    async def transition_stage(
        self,
        deal_id: str,
        target_stage: DealStage,
        actor: str,
        reason: str | None = None,
        progress: ProgressSignal | None = None,
    ) -> Deal:
        """
        Move a deal to an adjacent stage.

        Args:
            deal_id: Deal to transition
            target_stage: Adjacent stage in the deal type's workflow
            actor: User id performing the change
            reason: Optional reason recorded on the timeline
            progress: Caller-supplied progress for requirement evaluation

        Returns:
            The persisted deal after the transition

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            InvalidTransitionError: Deal not Active or stages not adjacent
            ValidationFailedError: Field validators or blocking requirements failed
            StorageError: Load or save failed (including version conflicts)
        """
        return await self._mutate(
            'stage_transition',
            deal_id,
            actor,
            lambda deal: self.executor.apply(deal, target_stage, actor, reason, progress),
            target_stage=target_stage.value,
        )

    async def transition_status(
        self,
        deal_id: str,
        target_status: DealStatus,
        actor: str,
        reason: str | None = None,
    ) -> Deal:
        """
        Change a deal's status (hold, resume, cancel).

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            InvalidTransitionError: Status move not allowed
            ValidationFailedError: Missing reason or minimum hold not elapsed
            StorageError: Load or save failed
        """
        return await self._mutate(
            'status_transition',
            deal_id,
            actor,
            lambda deal: self.executor.apply_status(deal, target_status, actor, reason),
            target_status=target_status.value,
        )

    async def rollback_stage(
        self,
        deal_id: str,
        target_stage: DealStage,
        actor: str,
        reason: str | None = None,
    ) -> Deal:
        """
        Step a deal back to the immediately preceding stage.

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            InvalidTransitionError: Not Active, at the first stage, or wrong target
            StorageError: Load or save failed
        """
        return await self._mutate(
            'stage_rollback',
            deal_id,
            actor,
            lambda deal: self.rollback_handler.rollback(deal, target_stage, actor, reason),
            target_stage=target_stage.value,
        )

    # =========================================================================
    # Creation and bookkeeping
    # =========================================================================

    async def create_deal(
        self,
        deal_type: DealType,
        actor: str,
        participants: Iterable[Participant] = (),
        documents: Iterable[DealDocument] = (),
        terms: dict[str, Any] | None = None,
        logistics: dict[str, Any] | None = None,
    ) -> Deal:
        """
        Create and persist a new deal at Initiation / Active.

        Returns:
            The persisted deal (version 1, one SYSTEM timeline entry)
        """
        result = self.executor.create(
            deal_type,
            actor,
            participants=tuple(participants),
            documents=tuple(documents),
            terms=dict(terms or {}),
            logistics=dict(logistics or {}),
        )
        deal = result.deal
        with logging_context(deal_id=deal.id, actor=actor):
            async with self.locks.hold(deal.id):
                await self._save(deal, expected_version=None)
            self.dispatcher.emit(result.event)
            logger.info('workflow.deal_created', deal_type=deal_type.value)
        return deal

    async def add_participant(
        self,
        deal_id: str,
        user_id: str,
        role: ParticipantRole,
        actor: str,
        permissions: Iterable[str] = (),
    ) -> Deal:
        participant = Participant(user_id=user_id, role=role, permissions=tuple(permissions))
        return await self._mutate(
            'participant_added',
            deal_id,
            actor,
            lambda deal: self.executor.add_participant(deal, participant, actor),
            role=role.value,
        )

    async def update_participant(
        self,
        deal_id: str,
        participant_id: str,
        actor: str,
        role: ParticipantRole | None = None,
        permissions: Iterable[str] | None = None,
    ) -> Deal:
        return await self._mutate(
            'participant_updated',
            deal_id,
            actor,
            lambda deal: self.executor.update_participant(
                deal,
                participant_id,
                actor,
                role=role,
                permissions=None if permissions is None else tuple(permissions),
            ),
            participant_id=participant_id,
        )

    async def remove_participant(
        self,
        deal_id: str,
        participant_id: str,
        actor: str,
        reason: str | None = None,
    ) -> Deal:
        return await self._mutate(
            'participant_removed',
            deal_id,
            actor,
            lambda deal: self.executor.remove_participant(deal, participant_id, actor, reason),
            participant_id=participant_id,
        )

    async def update_terms(
        self,
        deal_id: str,
        changes: Mapping[str, Any],
        actor: str,
        reason: str | None = None,
    ) -> Deal:
        """
        Set or clear deal terms (a None value clears the term).

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            ValidationFailedError: The terms would be left unchanged
            StorageError: Load or save failed
        """
        return await self._mutate(
            'terms_updated',
            deal_id,
            actor,
            lambda deal: self.executor.update_terms(deal, changes, actor, reason),
            fields=sorted(changes),
        )

    async def update_logistics(
        self,
        deal_id: str,
        component: str,
        details: Mapping[str, Any],
        actor: str,
        reason: str | None = None,
    ) -> Deal:
        return await self._mutate(
            'logistics_updated',
            deal_id,
            actor,
            lambda deal: self.executor.update_logistics(deal, component, details, actor, reason),
            component=component,
        )

    async def add_document(
        self,
        deal_id: str,
        document_type: str,
        actor: str,
        name: str = '',
        status: DocumentStatus = DocumentStatus.PENDING,
    ) -> Deal:
        document = DealDocument(document_type=document_type, name=name, status=status)
        return await self._mutate(
            'document_added',
            deal_id,
            actor,
            lambda deal: self.executor.add_document(deal, document, actor),
            document_type=document_type,
        )

    async def update_document_status(
        self,
        deal_id: str,
        document_id: str,
        status: DocumentStatus,
        actor: str,
        reason: str | None = None,
    ) -> Deal:
        return await self._mutate(
            'document_status',
            deal_id,
            actor,
            lambda deal: self.executor.update_document_status(
                deal, document_id, status, actor, reason
            ),
            document_id=document_id,
            document_status=status.value,
        )

    async def add_comment(self, deal_id: str, text: str, actor: str) -> Deal:
        return await self._mutate(
            'comment_added',
            deal_id,
            actor,
            lambda deal: self.executor.add_comment(deal, text, actor),
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _mutate(
        self,
        operation: str,
        deal_id: str,
        actor: str,
        mutation: DealMutation,
        **log_fields: Any,
    ) -> Deal:
        """Run mutation under the deal's lock: load, apply, save, then emit."""
        timer = OperationTimer()
        with logging_context(deal_id=deal_id, actor=actor):
            async with self.locks.hold(deal_id):
                with timer.step('load'):
                    deal = await self._load(deal_id)

                try:
                    with timer.step('apply'):
                        result = mutation(deal)
                except TransitionError as e:
                    logger.warning(
                        f'workflow.{operation}.rejected',
                        error=e.message,
                        error_type=type(e).__name__,
                        stage=deal.stage.value,
                        status=deal.status.value,
                        **log_fields,
                    )
                    raise

                with timer.step('save'):
                    await self._save(result.deal, expected_version=deal.version)

            self.dispatcher.emit(result.event)
            logger.info(
                f'workflow.{operation}.applied',
                previous_stage=deal.stage.value,
                stage=result.deal.stage.value,
                previous_status=deal.status.value,
                status=result.deal.status.value,
                version=result.deal.version,
                **log_fields,
                **timer.summary(),
            )
        return result.deal

    async def _load(self, deal_id: str) -> Deal:
        try:
            return await self.repository.load_deal(deal_id)
        except StorageError:
            raise
        except Exception as e:
            logger.error('workflow.load_failed', deal_id=deal_id, error=str(e))
            raise wrap_storage_error(e, context={'deal_id': deal_id, 'operation': 'load'}) from e

    async def _save(self, deal: Deal, expected_version: int | None) -> None:
        try:
            await self.repository.save_deal(deal, expected_version=expected_version)
        except StorageError:
            raise
        except Exception as e:
            logger.error('workflow.save_failed', deal_id=deal.id, error=str(e))
            raise wrap_storage_error(
                e, context={'deal_id': deal.id, 'operation': 'save'}
            ) from e
