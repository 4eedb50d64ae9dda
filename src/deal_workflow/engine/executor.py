"""
Transition execution: turn a validated change into a new Deal.

Every accepted mutation produces a TransitionResult holding the new Deal
snapshot, the single TimelineEntry appended to it and the outbound DealEvent.
The input Deal is never modified (models are frozen), so a failed transition
leaves no partial state behind.

Key design decisions:
- The executor re-validates itself; callers cannot skip validation by
  calling apply() directly.
- Entry dates are max(clock(), last entry date) so the timeline stays
  ordered even when the clock steps backwards.
- Events are built here but delivered by the service after persistence.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from ..config import config
from ..errors import (
    InvalidTransitionError,
    TerminalStateViolationError,
    UnknownStageError,
    ValidationFailedError,
)
from ..models.deal import Deal, DealDocument, Participant
from ..models.enums import (
    DealStage,
    DealStatus,
    DealType,
    DocumentStatus,
    ParticipantRole,
    TimelineEventType,
)
from ..models.events import DealEvent, DealEventType
from ..models.timeline import TimelineEntry, TimelineMetadata
from ..models.validation import ProgressSignal
from ..registry import DealTypeRegistry, default_registry
from ..utils import utcnow
from .validator import TransitionValidator

# Allowed status moves. Completed is reachable only through stage Complete.
STATUS_TRANSITIONS: dict[DealStatus, frozenset[DealStatus]] = {
    DealStatus.ACTIVE: frozenset({DealStatus.ON_HOLD, DealStatus.CANCELLED}),
    DealStatus.ON_HOLD: frozenset({DealStatus.ACTIVE, DealStatus.CANCELLED}),
    DealStatus.PENDING: frozenset({DealStatus.ACTIVE, DealStatus.CANCELLED}),
    DealStatus.COMPLETED: frozenset(),
    DealStatus.CANCELLED: frozenset(),
}

REASON_REQUIRED_STATUSES = frozenset({DealStatus.ON_HOLD, DealStatus.CANCELLED})

LOGISTICS_COMPONENTS = frozenset({'transportation', 'inspection', 'insurance'})


@dataclass(frozen=True)
class TransitionResult:
    """A new deal snapshot plus the entry and event describing the change."""

    deal: Deal
    entry: TimelineEntry
    event: DealEvent

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'deal_id': self.deal.id,
            'version': self.deal.version,
            'stage': self.deal.stage.value,
            'status': self.deal.status.value,
            'entry': self.entry.model_dump(mode='json'),
            'event': self.event.to_dict(),
        }


class TransitionExecutor:
    """
    Applies stage, status and bookkeeping changes to deals.

    Stage changes go through TransitionValidator first. Status changes follow
    STATUS_TRANSITIONS. Participant, document, terms, logistics and comment
    changes are recorded via append_entry().
    """

    def __init__(
        self,
        registry: DealTypeRegistry | None = None,
        validator: TransitionValidator | None = None,
        clock: Callable[[], datetime] = utcnow,
        min_hold_hours: float | None = None,
    ):
        """
        Initialize the executor.

        Args:
            registry: Deal type registry (defaults to the shipped table)
            validator: Override the transition validator
            clock: Source of timestamps for new entries
            min_hold_hours: Minimum On Hold period before reactivation
                            (defaults to config.MIN_HOLD_HOURS)
        """
        self.registry = registry or default_registry
        self.validator = validator or TransitionValidator(self.registry)
        self.clock = clock
        self.min_hold_hours = (
            config.MIN_HOLD_HOURS if min_hold_hours is None else min_hold_hours
        )

    # =========================================================================
    # Stage transitions
    # =========================================================================

    def apply(
        self,
        deal: Deal,
        target_stage: DealStage,
        actor: str,
        reason: str | None = None,
        progress: ProgressSignal | None = None,
    ) -> TransitionResult:
        """
        Validate and apply a stage transition.

        Args:
            deal: Current deal snapshot
            target_stage: Stage to move to (must neighbour the current stage)
            actor: User id performing the change
            reason: Optional free-text reason stored on the entry
            progress: Caller-supplied progress for requirement evaluation

        Returns:
            TransitionResult with the new deal

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            UnknownStageError: Deal sits at a stage outside its type's workflow
            InvalidTransitionError: Deal is not Active, or stages not adjacent
            ValidationFailedError: Field validators or blocking requirements failed
        """
        context = {
            'deal_id': deal.id,
            'current_stage': deal.stage.value,
            'target_stage': target_stage.value,
        }
        self.check_stage_mutable(deal, context)

        result = self.validator.validate(deal, target_stage, progress)
        if result.adjacency_error:
            raise InvalidTransitionError(
                result.validation_errors[0], context=context, result=result
            )
        if not result.can_progress:
            raise ValidationFailedError(
                f'Transition to {target_stage.value} failed validation',
                errors=list(result.validation_errors),
                context=context,
                result=result,
            )

        is_rollback = self._is_backward(deal, target_stage)
        return self.record_stage_change(
            deal,
            target_stage,
            actor,
            reason=reason,
            is_rollback=is_rollback,
            event_type=DealEventType.STAGE_ROLLBACK if is_rollback else DealEventType.STAGE_CHANGED,
        )

    def check_stage_mutable(self, deal: Deal, context: dict[str, Any]) -> None:
        """Raise unless the deal's status allows its stage to change."""
        if deal.is_terminal:
            raise TerminalStateViolationError(
                f'Deal is {deal.status.value}; no further transitions are allowed',
                context=context,
            )
        if not self.registry.has_stage(deal.type, deal.stage):
            raise UnknownStageError(
                f'Deal is at {deal.stage.value}, which is not a stage of '
                f'{self.registry.get_config(deal.type).title} deals',
                context=context,
            )
        if deal.status != DealStatus.ACTIVE:
            raise InvalidTransitionError(
                f'Stage is frozen while the deal is {deal.status.value}',
                context=context,
            )

    def record_stage_change(
        self,
        deal: Deal,
        target_stage: DealStage,
        actor: str,
        reason: str | None,
        is_rollback: bool,
        event_type: DealEventType,
    ) -> TransitionResult:
        """Build the post-transition deal. No validation happens here."""
        new_status = DealStatus.COMPLETED if target_stage == DealStage.COMPLETE else deal.status
        verb = 'Rolled back' if is_rollback else 'Moved'
        description = f'{verb} from {deal.stage.value} to {target_stage.value}'
        if reason:
            description = f'{description}: {reason}'
        metadata = TimelineMetadata(
            previous_stage=deal.stage,
            new_stage=target_stage,
            previous_status=deal.status if new_status != deal.status else None,
            new_status=new_status if new_status != deal.status else None,
            is_rollback=is_rollback,
            reason=reason,
        )
        return self.append_entry(
            deal,
            entry_type=TimelineEventType.STAGE_CHANGE,
            actor=actor,
            description=description,
            metadata=metadata,
            event_type=event_type,
            event_data={
                'previous_stage': deal.stage.value,
                'new_stage': target_stage.value,
                'status': new_status.value,
                'is_rollback': is_rollback,
                'reason': reason,
            },
            updates={'stage': target_stage, 'status': new_status},
        )

    def _is_backward(self, deal: Deal, target_stage: DealStage) -> bool:
        current = self.registry.stage_index(deal.type, deal.stage)
        target = self.registry.stage_index(deal.type, target_stage)
        return current is not None and target is not None and target < current

    # =========================================================================
    # Status transitions
    # =========================================================================

    def apply_status(
        self,
        deal: Deal,
        target_status: DealStatus,
        actor: str,
        reason: str | None = None,
    ) -> TransitionResult:
        """
        Apply a status change.

        Args:
            deal: Current deal snapshot
            target_status: Status to move to
            actor: User id performing the change
            reason: Required when putting a deal On Hold or cancelling it

        Returns:
            TransitionResult with the new deal

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            InvalidTransitionError: Move not in STATUS_TRANSITIONS
            ValidationFailedError: Missing reason, or minimum hold not elapsed
        """
        context = {
            'deal_id': deal.id,
            'current_status': deal.status.value,
            'target_status': target_status.value,
        }
        if deal.is_terminal:
            raise TerminalStateViolationError(
                f'Deal is {deal.status.value}; its status can no longer change',
                context=context,
            )
        if target_status not in STATUS_TRANSITIONS[deal.status]:
            raise InvalidTransitionError(
                f'Cannot change status from {deal.status.value} to {target_status.value}',
                context=context,
            )

        errors = []
        if target_status in REASON_REQUIRED_STATUSES and not (reason and reason.strip()):
            errors.append(f'A reason is required to set status {target_status.value}')

        now = self._entry_date(deal)
        if deal.status == DealStatus.ON_HOLD and target_status == DealStatus.ACTIVE:
            held_since = self._held_since(deal)
            if held_since and now - held_since < timedelta(hours=self.min_hold_hours):
                errors.append(
                    f'Deal must stay On Hold for at least {self.min_hold_hours:g} hours'
                )

        if errors:
            raise ValidationFailedError(
                f'Status change to {target_status.value} failed validation',
                errors=errors,
                context=context,
            )

        return self.append_entry(
            deal,
            entry_type=TimelineEventType.STATUS_CHANGE,
            actor=actor,
            description=f'Status changed from {deal.status.value} to {target_status.value}',
            metadata=TimelineMetadata(
                previous_status=deal.status,
                new_status=target_status,
                reason=reason,
            ),
            event_type=DealEventType.STATUS_CHANGED,
            event_data={
                'previous_status': deal.status.value,
                'new_status': target_status.value,
                'stage': deal.stage.value,
                'reason': reason,
            },
            updates={'status': target_status},
        )

    def _held_since(self, deal: Deal) -> datetime | None:
        for entry in reversed(deal.timeline):
            if (
                entry.type == TimelineEventType.STATUS_CHANGE
                and entry.metadata.new_status == DealStatus.ON_HOLD
            ):
                return entry.date
        return None

    # =========================================================================
    # Creation and bookkeeping entries
    # =========================================================================

    def create(
        self,
        deal_type: DealType,
        actor: str,
        **fields: Any,
    ) -> TransitionResult:
        """
        Build a brand-new deal at Initiation/Active with its creation entry.

        Args:
            deal_type: Type of the new deal
            actor: User id creating the deal
            **fields: Initial participants, documents, terms and logistics

        Returns:
            TransitionResult whose deal has version 1
        """
        now = self.clock()
        seed = Deal(type=deal_type, created_at=now, updated_at=now, **fields)
        config_title = self.registry.get_config(deal_type).title
        entry = TimelineEntry(
            type=TimelineEventType.SYSTEM,
            stage=seed.stage,
            status=seed.status,
            date=now,
            description=f'{config_title} deal created',
            actor=actor,
            metadata=TimelineMetadata(new_stage=seed.stage, new_status=seed.status, automatic=True),
        )
        deal = seed.model_copy(update={'timeline': (entry,)})
        event = self._event(
            deal, DealEventType.CREATED, actor, {'type': deal_type.value, 'stage': deal.stage.value}
        )
        return TransitionResult(deal=deal, entry=entry, event=event)

    def add_participant(self, deal: Deal, participant: Participant, actor: str) -> TransitionResult:
        context = {'deal_id': deal.id, 'user_id': participant.user_id}
        self._check_open(deal, context)
        if any(
            p.user_id == participant.user_id and p.role == participant.role
            for p in deal.participants
        ):
            raise ValidationFailedError(
                'Participant already assigned',
                errors=[f'{participant.user_id} is already a {participant.role.value}'],
                context=context,
            )
        return self.append_entry(
            deal,
            entry_type=TimelineEventType.PARTICIPANT_CHANGE,
            actor=actor,
            description=f'{participant.role.value} {participant.user_id} joined the deal',
            metadata=TimelineMetadata(
                action='added',
                participant_id=participant.id,
                participant_role=participant.role,
            ),
            event_type=DealEventType.PARTICIPANT_ADDED,
            event_data={
                'participant_id': participant.id,
                'user_id': participant.user_id,
                'role': participant.role.value,
            },
            updates={'participants': (*deal.participants, participant)},
        )

    def update_participant(
        self,
        deal: Deal,
        participant_id: str,
        actor: str,
        role: ParticipantRole | None = None,
        permissions: Sequence[str] | None = None,
    ) -> TransitionResult:
        """
        Change a participant's role and/or permissions.

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            ValidationFailedError: Unknown participant, nothing to change, or
                the user already holds the new role
        """
        context = {'deal_id': deal.id, 'participant_id': participant_id}
        self._check_open(deal, context)
        participant = self._find_participant(deal, participant_id, context)

        changes: dict[str, Any] = {}
        if role is not None and role != participant.role:
            if any(
                p.user_id == participant.user_id and p.role == role for p in deal.participants
            ):
                raise ValidationFailedError(
                    'Participant already assigned',
                    errors=[f'{participant.user_id} is already a {role.value}'],
                    context=context,
                )
            changes['role'] = role
        if permissions is not None and tuple(permissions) != participant.permissions:
            changes['permissions'] = tuple(permissions)
        if not changes:
            raise ValidationFailedError(
                'Nothing to update',
                errors=[f'Participant {participant_id} already has these settings'],
                context=context,
            )

        updated = participant.model_copy(update=changes)
        return self.append_entry(
            deal,
            entry_type=TimelineEventType.PARTICIPANT_CHANGE,
            actor=actor,
            description=f'Participant {participant.user_id} was updated',
            metadata=TimelineMetadata(
                action='updated',
                participant_id=participant.id,
                participant_role=updated.role,
                changed_fields=tuple(changes),
            ),
            event_type=DealEventType.PARTICIPANT_UPDATED,
            event_data={
                'participant_id': participant.id,
                'user_id': participant.user_id,
                'role': updated.role.value,
                'previous_role': participant.role.value,
                'permissions': list(updated.permissions),
            },
            updates={
                'participants': tuple(
                    updated if p.id == participant_id else p for p in deal.participants
                )
            },
        )

    def remove_participant(
        self,
        deal: Deal,
        participant_id: str,
        actor: str,
        reason: str | None = None,
    ) -> TransitionResult:
        context = {'deal_id': deal.id, 'participant_id': participant_id}
        self._check_open(deal, context)
        participant = self._find_participant(deal, participant_id, context)
        return self.append_entry(
            deal,
            entry_type=TimelineEventType.PARTICIPANT_CHANGE,
            actor=actor,
            description=f'Participant {participant.user_id} was removed',
            metadata=TimelineMetadata(
                action='removed',
                participant_id=participant.id,
                participant_role=participant.role,
                reason=reason,
            ),
            event_type=DealEventType.PARTICIPANT_REMOVED,
            event_data={
                'participant_id': participant.id,
                'user_id': participant.user_id,
                'role': participant.role.value,
                'reason': reason,
            },
            updates={
                'participants': tuple(p for p in deal.participants if p.id != participant_id)
            },
        )

    def _find_participant(
        self, deal: Deal, participant_id: str, context: dict[str, Any]
    ) -> Participant:
        participant = next((p for p in deal.participants if p.id == participant_id), None)
        if participant is None:
            raise ValidationFailedError(
                'Unknown participant',
                errors=[f'Participant {participant_id} is not part of this deal'],
                context=context,
            )
        return participant

    def add_document(self, deal: Deal, document: DealDocument, actor: str) -> TransitionResult:
        self._check_open(deal, {'deal_id': deal.id, 'document_type': document.document_type})
        return self.append_entry(
            deal,
            entry_type=TimelineEventType.DOCUMENT_CHANGE,
            actor=actor,
            description=f'Document "{document.name or document.document_type}" uploaded',
            metadata=TimelineMetadata(
                action='added',
                document_id=document.id,
                document_type=document.document_type,
            ),
            event_type=DealEventType.DOCUMENT_UPDATED,
            event_data={
                'document_id': document.id,
                'document_type': document.document_type,
                'status': document.status.value,
            },
            updates={'documents': (*deal.documents, document)},
        )

    def update_document_status(
        self,
        deal: Deal,
        document_id: str,
        status: DocumentStatus,
        actor: str,
        reason: str | None = None,
    ) -> TransitionResult:
        """
        Record a review decision on one of the deal's documents.

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            ValidationFailedError: No document with document_id on this deal
        """
        context = {'deal_id': deal.id, 'document_id': document_id}
        self._check_open(deal, context)
        document = next((d for d in deal.documents if d.id == document_id), None)
        if document is None:
            raise ValidationFailedError(
                'Unknown document',
                errors=[f'Document {document_id} is not attached to this deal'],
                context=context,
            )
        updated = document.model_copy(update={'status': status})
        return self.append_entry(
            deal,
            entry_type=TimelineEventType.DOCUMENT_CHANGE,
            actor=actor,
            description=f'Document "{document.name or document.document_type}" {status.value}',
            metadata=TimelineMetadata(
                action=status.value,
                document_id=document.id,
                document_type=document.document_type,
                reason=reason,
            ),
            event_type=DealEventType.DOCUMENT_UPDATED,
            event_data={
                'document_id': document.id,
                'document_type': document.document_type,
                'previous_status': document.status.value,
                'status': status.value,
            },
            updates={
                'documents': tuple(updated if d.id == document_id else d for d in deal.documents)
            },
        )

    # =========================================================================
    # Terms and logistics
    # =========================================================================

    def update_terms(
        self,
        deal: Deal,
        changes: Mapping[str, Any],
        actor: str,
        reason: str | None = None,
    ) -> TransitionResult:
        """
        Merge changes into the deal's terms.

        Args:
            deal: Current deal snapshot
            changes: Term values to set; a None value removes the term
            actor: User id performing the change
            reason: Optional free-text reason stored on the entry

        Returns:
            TransitionResult with the new deal

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            ValidationFailedError: changes leave the terms as they were
        """
        context = {'deal_id': deal.id, 'fields': sorted(changes)}
        self._check_open(deal, context)
        terms, changed = _merge(deal.terms, changes)
        if not changed:
            raise ValidationFailedError(
                'Nothing to update', errors=['Terms are unchanged'], context=context
            )
        return self.append_entry(
            deal,
            entry_type=TimelineEventType.TERMS_CHANGE,
            actor=actor,
            description=f'Deal terms updated: {", ".join(changed)}',
            metadata=TimelineMetadata(changed_fields=changed, reason=reason),
            event_type=DealEventType.TERMS_UPDATED,
            event_data={
                'changed_fields': list(changed),
                'values': {name: terms.get(name) for name in changed},
                'reason': reason,
            },
            updates={'terms': terms},
        )

    def update_logistics(
        self,
        deal: Deal,
        component: str,
        details: Mapping[str, Any],
        actor: str,
        reason: str | None = None,
    ) -> TransitionResult:
        """
        Merge details into one logistics section (transportation, inspection
        or insurance). A None value removes the key; an emptied section is
        dropped.

        Raises:
            TerminalStateViolationError: Deal is Completed or Cancelled
            ValidationFailedError: Unknown component, or nothing changed
        """
        context = {'deal_id': deal.id, 'component': component}
        self._check_open(deal, context)
        if component not in LOGISTICS_COMPONENTS:
            raise ValidationFailedError(
                'Unknown logistics component',
                errors=[
                    f'{component!r} is not one of {", ".join(sorted(LOGISTICS_COMPONENTS))}'
                ],
                context=context,
            )

        current = deal.logistics.get(component)
        section, changed = _merge(current if isinstance(current, Mapping) else {}, details)
        if not changed:
            raise ValidationFailedError(
                'Nothing to update',
                errors=[f'{component.capitalize()} details are unchanged'],
                context=context,
            )
        logistics = {key: value for key, value in deal.logistics.items() if key != component}
        if section:
            logistics[component] = section

        return self.append_entry(
            deal,
            entry_type=TimelineEventType.LOGISTICS_CHANGE,
            actor=actor,
            description=f'{component.capitalize()} details updated: {", ".join(changed)}',
            metadata=TimelineMetadata(
                changed_fields=changed, component=component, reason=reason
            ),
            event_type=DealEventType.LOGISTICS_UPDATED,
            event_data={
                'component': component,
                'changed_fields': list(changed),
                'details': dict(section),
                'reason': reason,
            },
            updates={'logistics': logistics},
        )

    def add_comment(self, deal: Deal, text: str, actor: str) -> TransitionResult:
        """Comments are accepted in every status, including terminal ones."""
        if not text.strip():
            raise ValidationFailedError(
                'Empty comment', errors=['Comment text is required'], context={'deal_id': deal.id}
            )
        return self.append_entry(
            deal,
            entry_type=TimelineEventType.COMMENT,
            actor=actor,
            description=text,
            metadata=TimelineMetadata(),
            event_type=DealEventType.COMMENT_ADDED,
            event_data={'text': text},
        )

    def _check_open(self, deal: Deal, context: dict[str, Any]) -> None:
        if deal.is_terminal:
            raise TerminalStateViolationError(
                f'Deal is {deal.status.value}; it can no longer be changed',
                context=context,
            )

    def append_entry(
        self,
        deal: Deal,
        entry_type: TimelineEventType,
        actor: str,
        description: str,
        metadata: TimelineMetadata,
        event_type: DealEventType,
        event_data: dict[str, Any],
        updates: dict[str, Any] | None = None,
    ) -> TransitionResult:
        """
        Append one timeline entry and apply field updates as a new deal.

        Args:
            deal: Current deal snapshot
            entry_type: Kind of timeline entry
            actor: User id (or 'system') recorded on the entry
            description: Human-readable summary
            metadata: Structured entry details
            event_type: Outbound event type
            event_data: Outbound event payload
            updates: Deal fields to replace (stage, status, participants, ...)

        Returns:
            TransitionResult; version is incremented by one
        """
        updates = dict(updates or {})
        date = self._entry_date(deal)
        entry = TimelineEntry(
            type=entry_type,
            stage=updates.get('stage', deal.stage),
            status=updates.get('status', deal.status),
            date=date,
            description=description,
            actor=actor,
            metadata=metadata,
        )
        updates.update(
            timeline=(*deal.timeline, entry),
            version=deal.version + 1,
            updated_at=date,
        )
        # model_copy skips validation, so re-validate the invariants explicitly
        new_deal = Deal.model_validate({**deal.model_dump(), **updates})
        event = self._event(new_deal, event_type, actor, event_data)
        return TransitionResult(deal=new_deal, entry=entry, event=event)

    def _entry_date(self, deal: Deal) -> datetime:
        now = self.clock()
        last = deal.last_entry
        if last is not None and last.date > now:
            return last.date
        return now

    def _event(
        self,
        deal: Deal,
        event_type: DealEventType,
        actor: str,
        data: dict[str, Any],
    ) -> DealEvent:
        return DealEvent(
            type=event_type,
            deal_id=deal.id,
            actor=actor,
            data=data,
            recipients=tuple(deal.participant_user_ids()),
            timestamp=self._entry_date(deal),
        )


def _merge(
    current: Mapping[str, Any], changes: Mapping[str, Any]
) -> tuple[dict[str, Any], tuple[str, ...]]:
    """Apply changes to current (None deletes). Returns the result and the keys that changed."""
    merged = dict(current)
    changed = []
    for key, value in changes.items():
        if value is None:
            if key in merged:
                del merged[key]
                changed.append(key)
        elif merged.get(key) != value:
            merged[key] = value
            changed.append(key)
    return merged, tuple(changed)
