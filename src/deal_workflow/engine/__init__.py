"""
Workflow engine components: requirement evaluation, transition validation,
execution, rollback and timeline projection.
"""

from .evaluator import RequirementEvaluator
from .executor import (
    STATUS_TRANSITIONS,
    TransitionExecutor,
    TransitionResult,
)
from .projector import (
    StageMetrics,
    TimelineSummary,
    TransitionStats,
    average_dwell,
    average_time_in_stage,
    blockers,
    completion_rate,
    describe_history,
    pending_actions,
    projected_completion,
    stage_dwell_times,
    stage_metrics,
    summarize,
    transition_stats,
)
from .rollback import RollbackHandler
from .validator import TransitionValidator

__all__ = [
    # Evaluation and validation
    'RequirementEvaluator',
    'TransitionValidator',
    # Execution
    'TransitionExecutor',
    'TransitionResult',
    'RollbackHandler',
    'STATUS_TRANSITIONS',
    # Projection
    'StageMetrics',
    'TimelineSummary',
    'TransitionStats',
    'average_dwell',
    'average_time_in_stage',
    'blockers',
    'completion_rate',
    'describe_history',
    'pending_actions',
    'projected_completion',
    'stage_dwell_times',
    'stage_metrics',
    'summarize',
    'transition_stats',
]
