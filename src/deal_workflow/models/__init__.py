"""
Data models for the Deal Workflow Engine.

Provides the Deal aggregate, its append-only timeline, declarative stage
requirements with validation results, and outbound events.
"""

from .deal import Deal, DealDocument, Participant
from .enums import (
    TERMINAL_STATUSES,
    DealStage,
    DealStatus,
    DealType,
    DocumentStatus,
    ParticipantRole,
    RequirementPolicy,
    RequirementType,
    TimelineEventType,
)
from .events import DealEvent, DealEventType
from .timeline import TimelineEntry, TimelineMetadata
from .validation import (
    ProgressSignal,
    RequirementEvaluation,
    StageRequirement,
    ValidationResult,
)

__all__ = [
    # Aggregate
    'Deal',
    'DealDocument',
    'Participant',
    # Enums
    'TERMINAL_STATUSES',
    'DealStage',
    'DealStatus',
    'DealType',
    'DocumentStatus',
    'ParticipantRole',
    'RequirementPolicy',
    'RequirementType',
    'TimelineEventType',
    # Timeline
    'TimelineEntry',
    'TimelineMetadata',
    # Requirements and validation
    'ProgressSignal',
    'RequirementEvaluation',
    'StageRequirement',
    'ValidationResult',
    # Events
    'DealEvent',
    'DealEventType',
]
