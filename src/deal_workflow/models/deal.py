"""
Deal aggregate and its value types for the Deal Workflow Engine.

The Deal is the aggregate root: one current (stage, status) pair plus an
append-only timeline that is the audit source of truth.

Key design decisions:
- Models are frozen. A deal changes only by the executor producing a new
  copy, so a half-applied transition can never leak into a caller's hands.
- stage and status are orthogonal, tied by one invariant:
  status == COMPLETED if and only if stage == COMPLETE.
- terms and logistics are free-form, read-only mappings (nested dicts and
  lists are frozen too); which keys matter for which deal
  type is declared in the registry, not here.
- version is the optimistic concurrency token, bumped on every accepted
  mutation.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils import FrozenDict, freeze, uuid7
from .enums import (
    TERMINAL_STATUSES,
    DealStage,
    DealStatus,
    DealType,
    DocumentStatus,
    ParticipantRole,
)
from .timeline import TimelineEntry


class Participant(BaseModel):
    """A user taking part in a deal under a given role."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid7()), description='Participant id')
    user_id: str = Field(..., description='Platform user id')
    role: ParticipantRole = Field(..., description='Role in this deal')
    permissions: tuple[str, ...] = Field(
        default_factory=tuple, description='Caller-managed permission names'
    )
    added_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc),
        description='When the participant joined the deal',
    )


class DealDocument(BaseModel):
    """
    Document metadata as seen by the engine.

    The engine only reads document_type and status; document bytes live in
    the external document store.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid7()), description='Document id')
    document_type: str = Field(..., description='Type name matched against requirements')
    name: str = Field(default='', description='Display name')
    status: DocumentStatus = Field(default=DocumentStatus.PENDING, description='Review status')


class Deal(BaseModel):
    """
    Deal aggregate root.

    Owned by the engine and mutated only through validated transitions.
    Derived statistics (dwell times, rollback counts) are deliberately absent:
    they are recomputed from the timeline on read.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid7()), description='Deal id')
    type: DealType = Field(..., description='Deal type, immutable')
    stage: DealStage = Field(default=DealStage.INITIATION, description='Current stage')
    status: DealStatus = Field(default=DealStatus.ACTIVE, description='Current status')

    participants: tuple[Participant, ...] = Field(default_factory=tuple)
    documents: tuple[DealDocument, ...] = Field(default_factory=tuple)

    terms: dict[str, Any] = Field(
        default_factory=FrozenDict,
        description='Free-form per-type terms (price, duration, start_date, conditions, goals)',
    )
    logistics: dict[str, Any] = Field(
        default_factory=FrozenDict,
        description='Free-form logistics (inspection, insurance, transportation)',
    )

    timeline: tuple[TimelineEntry, ...] = Field(
        default_factory=tuple, description='Append-only audit log'
    )

    version: int = Field(default=1, ge=1, description='Optimistic concurrency token')
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc),
        description='When the deal was created',
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc),
        description='Last accepted mutation',
    )

    @field_validator('terms', 'logistics', mode='after')
    @classmethod
    def _freeze_mapping(cls, value: dict[str, Any]) -> dict[str, Any]:
        return freeze(value)

    @model_validator(mode='after')
    def _check_invariants(self) -> 'Deal':
        if (self.status == DealStatus.COMPLETED) != (self.stage == DealStage.COMPLETE):
            raise ValueError(
                f'status {self.status.value!r} is inconsistent with stage {self.stage.value!r}'
            )
        for earlier, later in zip(self.timeline, self.timeline[1:]):
            if later.date < earlier.date:
                raise ValueError('timeline entries must be ordered by date')
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def last_entry(self) -> TimelineEntry | None:
        return self.timeline[-1] if self.timeline else None

    def participant_user_ids(self) -> list[str]:
        """User ids of every participant, in join order, without duplicates."""
        return list(dict.fromkeys(p.user_id for p in self.participants))

    def has_role(self, role: ParticipantRole) -> bool:
        return any(p.role == role for p in self.participants)

    def field_data(self) -> dict[str, Any]:
        """Mapping used to resolve validator field paths like 'terms.price'."""
        return {'terms': self.terms, 'logistics': self.logistics}
