"""
Tests for the timeline/audit projector.

Tests cover:
- Dwell times between forward stage changes (rollbacks excluded)
- Zero average dwell and undefined projection with fewer than two forward changes
- Transition counts, per-stage visit averages
- Completion rate, blockers and projected completion for the current stage
- Timeline summary (counts, staleness), history lines and pending actions
- Timeline queries by type, stage, actor and inclusive date range

Run with: pytest tests/test_projector.py -v
"""

from datetime import timedelta

import pytest

from deal_workflow.engine import projector
from deal_workflow.engine.executor import TransitionExecutor
from deal_workflow.engine.rollback import RollbackHandler
from deal_workflow.models import (
    DealStage,
    DealStatus,
    DealType,
    DocumentStatus,
    ParticipantRole,
    ProgressSignal,
    TimelineEventType,
)
from deal_workflow.registry import DealTypeConfig, DealTypeRegistry

S = DealStage


@pytest.fixture
def executor(clock) -> TransitionExecutor:
    return TransitionExecutor(clock=clock, min_hold_hours=0)


class TestDwellTimes:

    def test_two_forward_changes_three_days_apart(self, executor, make_deal, clock):
        deal = make_deal(terms={'price': 100})
        deal = executor.apply(deal, S.DISCUSSION, actor='u').deal
        clock.advance(days=3)
        deal = executor.apply(deal, S.EVALUATION, actor='u').deal

        assert projector.stage_dwell_times(deal.timeline) == [timedelta(days=3)]
        assert projector.average_dwell(deal.timeline) == timedelta(days=3)

    def test_rollbacks_excluded(self, executor, make_deal, clock):
        rollback = RollbackHandler(executor=executor)
        deal = make_deal(terms={'price': 100})
        deal = executor.apply(deal, S.DISCUSSION, actor='u').deal
        clock.advance(days=1)
        deal = executor.apply(deal, S.EVALUATION, actor='u').deal
        clock.advance(days=1)
        deal = rollback.rollback(deal, S.DISCUSSION, actor='u').deal
        clock.advance(days=3)
        deal = executor.apply(deal, S.EVALUATION, actor='u').deal

        assert projector.stage_dwell_times(deal.timeline) == [timedelta(days=1), timedelta(days=4)]
        stats = projector.transition_stats(deal.timeline)
        assert stats.forward == 3
        assert stats.rollbacks == 1
        assert stats.total == 4

    @pytest.mark.parametrize('forward_changes', [0, 1])
    def test_fewer_than_two_forward_changes(self, executor, make_deal, clock, forward_changes):
        deal = make_deal(terms={'price': 100})
        if forward_changes:
            deal = executor.apply(deal, S.DISCUSSION, actor='u').deal

        assert projector.average_dwell(deal.timeline) == timedelta(0)
        assert projector.projected_completion(deal, clock.now) is None

    def test_status_entries_ignored(self, executor, make_deal, clock):
        deal = make_deal(terms={'price': 100})
        deal = executor.apply(deal, S.DISCUSSION, actor='u').deal
        clock.advance(days=1)
        deal = executor.apply_status(deal, DealStatus.ON_HOLD, actor='u', reason='vet').deal
        clock.advance(days=1)
        deal = executor.apply_status(deal, DealStatus.ACTIVE, actor='u').deal
        deal = executor.apply(deal, S.EVALUATION, actor='u').deal

        assert projector.average_dwell(deal.timeline) == timedelta(days=2)


class TestTimeInStage:

    def test_visits_averaged_per_stage(self, executor, make_deal, clock):
        created = executor.create(DealType.FULL_SALE, actor='u', terms={'price': 100}).deal
        clock.advance(days=2)
        deal = executor.apply(created, S.DISCUSSION, actor='u').deal
        clock.advance(days=4)

        averages = projector.average_time_in_stage(deal.timeline, clock.now)

        assert averages[S.INITIATION] == timedelta(days=2)
        assert averages[S.DISCUSSION] == timedelta(days=4)
        assert S.EVALUATION not in averages

    def test_empty_timeline(self, clock):
        assert projector.average_time_in_stage((), clock.now) == {}


class TestStageMetrics:

    def test_completion_rate(self, make_deal):
        deal = make_deal(roles=[ParticipantRole.SELLER, ParticipantRole.BUYER])
        # Initiation: seller, buyer, intent to purchase
        assert projector.completion_rate(deal) == pytest.approx(200 / 3)

    def test_completion_rate_without_requirements(self, make_deal):
        registry = DealTypeRegistry({
            DealType.TRAINING: DealTypeConfig(
                deal_type=DealType.TRAINING,
                title='Training',
                description='',
                stages=(S.INITIATION, S.COMPLETE),
            )
        })
        deal = make_deal(DealType.TRAINING)
        assert projector.completion_rate(deal, registry=registry) == 100.0

    def test_blockers(self, make_deal):
        deal = make_deal(
            stage=S.EVALUATION,
            documents={
                'Veterinary examination report': DocumentStatus.REJECTED,
                'Pre-purchase examination report': DocumentStatus.PENDING,
            },
        )
        assert projector.blockers(deal) == ['Veterinary examination report']

    def test_projected_completion(self, executor, make_deal, clock):
        deal = make_deal(terms={'price': 100}, roles=[ParticipantRole.VETERINARIAN])
        deal = executor.apply(deal, S.DISCUSSION, actor='u').deal
        clock.advance(days=4)
        deal = executor.apply(deal, S.EVALUATION, actor='u').deal

        # Evaluation: vet assigned (1 of 4 satisfied) -> 75% of 4 days remaining
        projected = projector.projected_completion(deal, clock.now)
        assert projected == clock.now + timedelta(days=3)

        metrics = projector.stage_metrics(deal, clock.now)
        assert metrics.stage == S.EVALUATION
        assert metrics.completion_rate == pytest.approx(25.0)
        assert metrics.forward_transitions == 2
        assert metrics.rollbacks == 0
        assert metrics.to_dict()['average_dwell_seconds'] == timedelta(days=4).total_seconds()

    def test_progress_signal_raises_completion(self, make_deal):
        deal = make_deal(stage=S.EVALUATION)
        progress = ProgressSignal(stage_progress={S.EVALUATION: 100})
        assert projector.completion_rate(deal, progress) == pytest.approx(25.0)


class TestSummary:

    def test_summary_counts(self, executor, make_deal, clock):
        deal = executor.create(DealType.FULL_SALE, actor='u', terms={'price': 100}).deal
        deal = executor.apply(deal, S.DISCUSSION, actor='u').deal
        deal = executor.add_comment(deal, 'Looks good', actor='u').deal

        summary = projector.summarize(deal, clock.now)

        assert summary.total_entries == 3
        assert summary.entries_by_type == {
            TimelineEventType.SYSTEM: 1,
            TimelineEventType.STAGE_CHANGE: 1,
            TimelineEventType.COMMENT: 1,
        }
        assert summary.entries_by_stage == {S.INITIATION: 1, S.DISCUSSION: 2}
        assert summary.last_modified == clock.now
        assert summary.is_stale is False

    def test_stale_active_deal(self, executor, clock):
        deal = executor.create(DealType.LEASE, actor='u').deal
        clock.advance(days=31)

        assert projector.summarize(deal, clock.now, stale_days=30).is_stale is True

    def test_on_hold_deal_never_stale(self, executor, make_deal, clock):
        deal = executor.apply_status(make_deal(), DealStatus.ON_HOLD, actor='u', reason='x').deal
        clock.advance(days=90)

        assert projector.summarize(deal, clock.now, stale_days=30).is_stale is False

    def test_describe_history(self, executor, make_deal):
        deal = make_deal(terms={'price': 100})
        deal = executor.apply(deal, S.DISCUSSION, actor='user_7', reason='price agreed').deal
        deal = executor.apply_status(
            deal, DealStatus.ON_HOLD, actor='user_7', reason='vet away'
        ).deal

        assert projector.describe_history(deal.timeline) == [
            '2024-03-01 09:00 user_7: Moved from Initiation to Discussion: price agreed',
            '2024-03-01 09:00 user_7: Status changed from Active to On Hold (reason: vet away)',
        ]


class TestPendingActions:

    def test_next_stage_requirements_then_steps(self, make_deal):
        deal = make_deal(DealType.TRAINING, stage=S.DOCUMENTATION)
        actions = projector.pending_actions(deal)

        assert actions[:3] == [
            'Training completion report',
            'Progress evaluation',
            'Owner satisfaction confirmation',
        ]
        assert 'Prepare for Complete stage' in actions

    def test_terminal_deal_has_none(self, make_deal):
        assert projector.pending_actions(make_deal(stage=S.COMPLETE)) == []

    def test_stage_outside_workflow_has_none(self, make_deal):
        deal = make_deal(DealType.TRAINING, stage=S.EVALUATION)
        assert projector.pending_actions(deal) == []


class TestTimelineQueries:

    @pytest.fixture
    def timeline(self, executor, make_deal, clock):
        deal = make_deal(terms={'price': 100})
        deal = executor.apply(deal, S.DISCUSSION, actor='user_1').deal
        clock.advance(days=1)
        deal = executor.add_comment(deal, 'Vet booked', actor='user_2').deal
        clock.advance(days=1)
        deal = executor.apply_status(deal, DealStatus.ON_HOLD, actor='user_1', reason='travel').deal
        return deal.timeline

    def test_by_type(self, timeline):
        entries = projector.entries_by_type(timeline, TimelineEventType.COMMENT)
        assert [e.description for e in entries] == ['Vet booked']

    def test_for_stage(self, timeline):
        assert len(projector.entries_for_stage(timeline, S.DISCUSSION)) == 3
        assert projector.entries_for_stage(timeline, S.INITIATION) == []

    def test_by_actor(self, timeline):
        entries = projector.entries_by_actor(timeline, 'user_1')
        assert [e.type for e in entries] == [
            TimelineEventType.STAGE_CHANGE,
            TimelineEventType.STATUS_CHANGE,
        ]

    def test_range_bounds_are_inclusive(self, timeline):
        start = timeline[0].date
        entries = projector.entries_in_range(timeline, start, start + timedelta(days=1))

        assert entries == list(timeline[:2])

    def test_open_range(self, timeline):
        assert projector.entries_in_range(timeline) == list(timeline)
        assert projector.entries_in_range(timeline, start=timeline[-1].date) == [timeline[-1]]
