"""
Enumerations shared by the Deal Workflow models.

All enums subclass str so values serialize as plain strings and compare
equal to their stored representation.
"""

from enum import Enum


class DealType(str, Enum):
    """Kind of horse transaction. Fixed at creation."""

    FULL_SALE = 'Full Sale'
    LEASE = 'Lease'
    PARTNERSHIP = 'Partnership'
    BREEDING = 'Breeding'
    TRAINING = 'Training'


class DealStage(str, Enum):
    """Deal stages. Ordering is per deal type, see the registry."""

    INITIATION = 'Initiation'
    DISCUSSION = 'Discussion'
    EVALUATION = 'Evaluation'
    DOCUMENTATION = 'Documentation'
    CLOSING = 'Closing'
    COMPLETE = 'Complete'


class DealStatus(str, Enum):
    """Lifecycle flag, orthogonal to stage."""

    ACTIVE = 'Active'
    PENDING = 'Pending'
    ON_HOLD = 'On Hold'
    CANCELLED = 'Cancelled'
    COMPLETED = 'Completed'


TERMINAL_STATUSES = frozenset({DealStatus.COMPLETED, DealStatus.CANCELLED})


class ParticipantRole(str, Enum):
    SELLER = 'Seller'
    BUYER = 'Buyer'
    AGENT = 'Agent'
    VETERINARIAN = 'Veterinarian'
    TRAINER = 'Trainer'
    INSPECTOR = 'Inspector'
    TRANSPORTER = 'Transporter'


class DocumentStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class TimelineEventType(str, Enum):
    """Kinds of timeline entries."""

    STAGE_CHANGE = 'STAGE_CHANGE'
    STATUS_CHANGE = 'STATUS_CHANGE'
    PARTICIPANT_CHANGE = 'PARTICIPANT_CHANGE'
    TERMS_CHANGE = 'TERMS_CHANGE'
    LOGISTICS_CHANGE = 'LOGISTICS_CHANGE'
    DOCUMENT_CHANGE = 'DOCUMENT_CHANGE'
    COMMENT = 'COMMENT'
    SYSTEM = 'SYSTEM'


class RequirementType(str, Enum):
    DOCUMENT = 'document'
    PARTICIPANT = 'participant'
    APPROVAL = 'approval'
    CONDITION = 'condition'


class RequirementPolicy(str, Enum):
    """
    How a missing requirement affects a transition.

    ADVISORY reports it as a warning only; BLOCKING turns it into a
    validation error.
    """

    ADVISORY = 'advisory'
    BLOCKING = 'blocking'
