"""
Timeline models: the append-only audit log of a deal.

Every accepted mutation appends exactly one TimelineEntry. Entries are frozen
and never edited or removed; rollback detection, dwell times and summaries
are all projected from them on read.
"""

from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..utils import uuid7
from .enums import DealStage, DealStatus, ParticipantRole, TimelineEventType


class TimelineMetadata(BaseModel):
    """Structured details attached to a timeline entry."""

    model_config = ConfigDict(frozen=True)

    previous_stage: DealStage | None = None
    new_stage: DealStage | None = None
    previous_status: DealStatus | None = None
    new_status: DealStatus | None = None
    is_rollback: bool = Field(
        default=False, description='Backward stage move, excluded from forward-progress metrics'
    )
    automatic: bool = Field(default=False, description='Recorded by the system, not a user')
    reason: str | None = None

    # Terms / logistics changes
    changed_fields: tuple[str, ...] = ()
    component: str | None = Field(
        default=None, description='Logistics section: transportation, inspection or insurance'
    )

    # Participant / document changes
    action: str | None = None
    participant_id: str | None = None
    participant_role: ParticipantRole | None = None
    document_id: str | None = None
    document_type: str | None = None


class TimelineEntry(BaseModel):
    """A single audit record. stage/status are the values after the change."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid7, description='UUIDv7, sortable by creation')
    type: TimelineEventType = Field(..., description='Kind of change')
    stage: DealStage = Field(..., description='Deal stage after the change')
    status: DealStatus = Field(..., description='Deal status after the change')
    date: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc),
        description='When the change was recorded',
    )
    description: str = Field(default='', description='Human-readable summary')
    actor: str = Field(..., description='User id or "system"')
    metadata: TimelineMetadata = Field(default_factory=TimelineMetadata)

    @property
    def is_stage_change(self) -> bool:
        return self.type == TimelineEventType.STAGE_CHANGE

    @property
    def is_rollback(self) -> bool:
        return self.is_stage_change and self.metadata.is_rollback
