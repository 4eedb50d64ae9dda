"""
Deal Workflow Engine

Per-deal-type stage/status state machine for horse transaction deals (sale,
lease, partnership, breeding, training): requirement tables, transition
validation, rollback and an append-only timeline with derived metrics.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .service import DealWorkflowService
from .registry import DealTypeConfig, DealTypeRegistry, default_registry
from .repository import DealRepository, InMemoryDealRepository
from .notifications import NotificationConsumer, NotificationDispatcher
from .engine import (
    RequirementEvaluator,
    RollbackHandler,
    StageMetrics,
    TimelineSummary,
    TransitionExecutor,
    TransitionResult,
    TransitionValidator,
)
from .models import (
    Deal,
    DealDocument,
    DealEvent,
    DealEventType,
    DealStage,
    DealStatus,
    DealType,
    DocumentStatus,
    Participant,
    ParticipantRole,
    ProgressSignal,
    TimelineEntry,
    ValidationResult,
)
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    OperationTimer,
)
from .errors import (
    DealWorkflowError,
    TransitionError,
    InvalidTransitionError,
    ValidationFailedError,
    TerminalStateViolationError,
    UnknownStageError,
    StorageError,
    DealNotFoundError,
    ConcurrentModificationError,
)

__all__ = [
    # Version
    '__version__',
    # Service
    'DealWorkflowService',
    # Registry
    'DealTypeConfig',
    'DealTypeRegistry',
    'default_registry',
    # Ports
    'DealRepository',
    'InMemoryDealRepository',
    'NotificationConsumer',
    'NotificationDispatcher',
    # Engine
    'RequirementEvaluator',
    'RollbackHandler',
    'StageMetrics',
    'TimelineSummary',
    'TransitionExecutor',
    'TransitionResult',
    'TransitionValidator',
    # Models
    'Deal',
    'DealDocument',
    'DealEvent',
    'DealEventType',
    'DealStage',
    'DealStatus',
    'DealType',
    'DocumentStatus',
    'Participant',
    'ParticipantRole',
    'ProgressSignal',
    'TimelineEntry',
    'ValidationResult',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'OperationTimer',
    # Errors
    'DealWorkflowError',
    'TransitionError',
    'InvalidTransitionError',
    'ValidationFailedError',
    'TerminalStateViolationError',
    'UnknownStageError',
    'StorageError',
    'DealNotFoundError',
    'ConcurrentModificationError',
]
