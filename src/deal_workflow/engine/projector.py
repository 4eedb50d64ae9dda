"""
Timeline/audit projections.

Everything here is a pure function of a deal's timeline (plus the deal and
caller-supplied progress where requirements matter). Nothing computed here is
ever stored on the deal; metrics are recomputed on every read.

Key design decisions:
- Dwell time is measured between consecutive forward STAGE_CHANGE entries.
  Rollback entries are skipped so backward moves never shorten or inflate it.
- With fewer than two forward entries the average dwell is zero and the
  projected completion date is undefined (None).
"""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..config import config
from ..models.deal import Deal
from ..models.enums import DealStage, DealStatus, DocumentStatus, RequirementType, TimelineEventType
from ..models.timeline import TimelineEntry
from ..models.validation import ProgressSignal
from ..registry import DealTypeRegistry, default_registry
from .evaluator import RequirementEvaluator

Timeline = Sequence[TimelineEntry]


# =============================================================================
# Result Models
# =============================================================================


@dataclass(frozen=True)
class TransitionStats:
    """Counts of forward and backward stage moves."""

    forward: int = 0
    rollbacks: int = 0

    @property
    def total(self) -> int:
        return self.forward + self.rollbacks


@dataclass(frozen=True)
class StageMetrics:
    """Read-side metrics for a deal's current stage."""

    stage: DealStage
    average_dwell: timedelta
    completion_rate: float
    blockers: tuple[str, ...] = ()
    projected_completion: datetime | None = None
    forward_transitions: int = 0
    rollbacks: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'stage': self.stage.value,
            'average_dwell_seconds': self.average_dwell.total_seconds(),
            'completion_rate': round(self.completion_rate, 2),
            'blockers': list(self.blockers),
            'projected_completion': (
                self.projected_completion.isoformat() if self.projected_completion else None
            ),
            'forward_transitions': self.forward_transitions,
            'rollbacks': self.rollbacks,
        }


@dataclass(frozen=True)
class TimelineSummary:
    """Aggregate view of a deal's timeline."""

    total_entries: int
    entries_by_type: dict[TimelineEventType, int] = field(default_factory=dict)
    entries_by_stage: dict[DealStage, int] = field(default_factory=dict)
    average_time_in_stage: dict[DealStage, timedelta] = field(default_factory=dict)
    last_modified: datetime | None = None
    is_stale: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'total_entries': self.total_entries,
            'entries_by_type': {k.value: v for k, v in self.entries_by_type.items()},
            'entries_by_stage': {k.value: v for k, v in self.entries_by_stage.items()},
            'average_time_in_stage': {
                k.value: v.total_seconds() for k, v in self.average_time_in_stage.items()
            },
            'last_modified': self.last_modified.isoformat() if self.last_modified else None,
            'is_stale': self.is_stale,
        }


# =============================================================================
# Timeline-only projections
# =============================================================================


def forward_stage_changes(timeline: Timeline) -> list[TimelineEntry]:
    return [e for e in timeline if e.is_stage_change and not e.is_rollback]


def stage_dwell_times(timeline: Timeline) -> list[timedelta]:
    """Gaps between consecutive forward stage changes."""
    forward = forward_stage_changes(timeline)
    return [later.date - earlier.date for earlier, later in zip(forward, forward[1:])]


def average_dwell(timeline: Timeline) -> timedelta:
    """Mean forward dwell time; zero when fewer than two forward changes exist."""
    dwells = stage_dwell_times(timeline)
    if not dwells:
        return timedelta(0)
    return sum(dwells, timedelta(0)) / len(dwells)


def transition_stats(timeline: Timeline) -> TransitionStats:
    stage_changes = [e for e in timeline if e.is_stage_change]
    rollbacks = sum(1 for e in stage_changes if e.is_rollback)
    return TransitionStats(forward=len(stage_changes) - rollbacks, rollbacks=rollbacks)


def average_time_in_stage(timeline: Timeline, now: datetime) -> dict[DealStage, timedelta]:
    """
    Average length of each visit to a stage.

    Every stage change (forward or rollback) closes the visit to the stage
    being left; the visit to the current stage runs until now. Only stages
    actually visited appear in the result.
    """
    if not timeline:
        return {}

    visits: dict[DealStage, list[timedelta]] = {}
    entered_at = timeline[0].date
    current = timeline[0].stage
    for entry in timeline:
        if not entry.is_stage_change:
            continue
        visits.setdefault(current, []).append(entry.date - entered_at)
        entered_at = entry.date
        current = entry.stage
    visits.setdefault(current, []).append(max(now - entered_at, timedelta(0)))

    return {stage: sum(times, timedelta(0)) / len(times) for stage, times in visits.items()}


def describe_history(timeline: Timeline) -> list[str]:
    """
    One human-readable line per entry, oldest first.

    Stage change descriptions already end with their reason; other entries
    get it appended in parentheses.
    """
    lines = []
    for entry in sorted(timeline, key=lambda e: e.date):
        line = f'{entry.date:%Y-%m-%d %H:%M} {entry.actor}: {entry.description}'
        if entry.metadata.reason and not entry.is_stage_change:
            line += f' (reason: {entry.metadata.reason})'
        lines.append(line)
    return lines


# =============================================================================
# Timeline queries
# =============================================================================


def entries_by_type(timeline: Timeline, entry_type: TimelineEventType) -> list[TimelineEntry]:
    return [e for e in timeline if e.type == entry_type]


def entries_for_stage(timeline: Timeline, stage: DealStage) -> list[TimelineEntry]:
    """Entries recorded while the deal was at stage (stage is the post-change value)."""
    return [e for e in timeline if e.stage == stage]


def entries_by_actor(timeline: Timeline, actor: str) -> list[TimelineEntry]:
    return [e for e in timeline if e.actor == actor]


def entries_in_range(
    timeline: Timeline,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[TimelineEntry]:
    """Entries dated within [start, end]; either bound may be left open."""
    return [
        e
        for e in timeline
        if (start is None or e.date >= start) and (end is None or e.date <= end)
    ]


# =============================================================================
# Requirement-aware projections
# =============================================================================


def completion_rate(
    deal: Deal,
    progress: ProgressSignal | None = None,
    registry: DealTypeRegistry | None = None,
) -> float:
    """Percentage of the current stage's requirements already satisfied."""
    evaluation = RequirementEvaluator(registry).evaluate(deal, deal.stage, progress)
    if evaluation.total == 0:
        return 100.0
    return len(evaluation.satisfied) / evaluation.total * 100


def blockers(deal: Deal, registry: DealTypeRegistry | None = None) -> list[str]:
    """Current-stage document requirements whose document was rejected and not replaced."""
    registry = registry or default_registry
    statuses: dict[str, set[DocumentStatus]] = {}
    for doc in deal.documents:
        statuses.setdefault(doc.document_type, set()).add(doc.status)

    found = []
    for requirement in registry.get_stage_requirements(deal.type, deal.stage):
        if requirement.type != RequirementType.DOCUMENT:
            continue
        seen = statuses.get(requirement.matches_document_type, set())
        if DocumentStatus.REJECTED in seen and DocumentStatus.APPROVED not in seen:
            found.append(requirement.description)
    return found


def projected_completion(
    deal: Deal,
    now: datetime,
    progress: ProgressSignal | None = None,
    registry: DealTypeRegistry | None = None,
) -> datetime | None:
    """now + average dwell scaled by the remaining share of current-stage work."""
    if len(stage_dwell_times(deal.timeline)) == 0:
        return None
    remaining = 1 - completion_rate(deal, progress, registry) / 100
    return now + average_dwell(deal.timeline) * remaining


def stage_metrics(
    deal: Deal,
    now: datetime,
    progress: ProgressSignal | None = None,
    registry: DealTypeRegistry | None = None,
) -> StageMetrics:
    """Aggregate current-stage metrics for dashboards."""
    stats = transition_stats(deal.timeline)
    return StageMetrics(
        stage=deal.stage,
        average_dwell=average_dwell(deal.timeline),
        completion_rate=completion_rate(deal, progress, registry),
        blockers=tuple(blockers(deal, registry)),
        projected_completion=projected_completion(deal, now, progress, registry),
        forward_transitions=stats.forward,
        rollbacks=stats.rollbacks,
    )


def summarize(deal: Deal, now: datetime, stale_days: int | None = None) -> TimelineSummary:
    """
    Summarize a deal's timeline.

    A deal is stale when it is Active and nothing has been recorded for
    stale_days (defaults to config.STALE_DEAL_DAYS).
    """
    stale_days = config.STALE_DEAL_DAYS if stale_days is None else stale_days
    last_modified = deal.last_entry.date if deal.last_entry else deal.created_at
    return TimelineSummary(
        total_entries=len(deal.timeline),
        entries_by_type=dict(Counter(e.type for e in deal.timeline)),
        entries_by_stage=dict(Counter(e.stage for e in deal.timeline)),
        average_time_in_stage=average_time_in_stage(deal.timeline, now),
        last_modified=last_modified,
        is_stale=(
            deal.status == DealStatus.ACTIVE
            and now - last_modified >= timedelta(days=stale_days)
        ),
    )


def pending_actions(
    deal: Deal,
    progress: ProgressSignal | None = None,
    registry: DealTypeRegistry | None = None,
) -> list[str]:
    """Missing next-stage requirements followed by the type's next processing steps."""
    registry = registry or default_registry
    if deal.is_terminal or not registry.has_stage(deal.type, deal.stage):
        return []

    actions = []
    next_stage = registry.next_stage(deal.type, deal.stage)
    if next_stage is not None:
        evaluation = RequirementEvaluator(registry).evaluate(deal, next_stage, progress)
        actions.extend(r.description for r in evaluation.missing)
    actions.extend(registry.get_next_steps(deal.type, deal.stage))
    return actions
