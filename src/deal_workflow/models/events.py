"""
Outbound deal events handed to the notification consumer.

The engine builds these after a transition is persisted; how they reach
users (socket, queue, email) is the consumer's business.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..utils import uuid7


class DealEventType(str, Enum):
    """Deal lifecycle events, named {domain}.{past-tense action}."""

    CREATED = 'deal.created'
    STAGE_CHANGED = 'deal.stage_changed'
    STAGE_ROLLBACK = 'deal.stage_rollback'
    STATUS_CHANGED = 'deal.status_changed'
    PARTICIPANT_ADDED = 'deal.participant_added'
    PARTICIPANT_UPDATED = 'deal.participant_updated'
    PARTICIPANT_REMOVED = 'deal.participant_removed'
    TERMS_UPDATED = 'deal.terms_updated'
    LOGISTICS_UPDATED = 'deal.logistics_updated'
    DOCUMENT_UPDATED = 'deal.document_updated'
    COMMENT_ADDED = 'deal.comment_added'


class DealEvent(BaseModel):
    """Event payload: {type, deal_id, actor, data} plus delivery hints."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid7)
    type: DealEventType
    deal_id: str
    actor: str
    data: dict[str, Any] = Field(default_factory=dict)
    recipients: tuple[str, ...] = Field(
        default_factory=tuple, description='User ids that should receive this event'
    )
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for transports that expect plain JSON."""
        return self.model_dump(mode='json')
