"""
Tests for the logging module.
"""

import time

from deal_workflow.logging import (
    OperationTimer,
    add_context_info,
    current_context,
    get_actor,
    get_deal_id,
    get_trace_id,
    logging_context,
)


class TestLoggingContext:
    """Test logging context management."""

    def test_logging_context_sets_values(self):
        """Test that logging context sets values correctly."""
        with logging_context(
            trace_id="trace_123",
            deal_id="deal_abc",
            actor="user_1",
        ):
            assert get_trace_id() == "trace_123"
            assert get_deal_id() == "deal_abc"
            assert get_actor() == "user_1"

    def test_logging_context_restores_values(self):
        """Test that context is restored after exiting."""
        with logging_context(deal_id="outer"):
            assert get_deal_id() == "outer"

            with logging_context(deal_id="inner"):
                assert get_deal_id() == "inner"

            assert get_deal_id() == "outer"

        assert get_deal_id() is None

    def test_logging_context_partial_values(self):
        """Test that partial context values work."""
        with logging_context(actor="user_only"):
            assert get_actor() == "user_only"
            assert get_trace_id() is None
            assert get_deal_id() is None

    def test_context_added_to_event_dict(self):
        """Context variables are merged into log entries without overriding explicit keys."""
        with logging_context(deal_id="deal_ctx", actor="user_ctx"):
            event = add_context_info(None, "info", {"event": "x", "actor": "explicit"})

        assert event["deal_id"] == "deal_ctx"
        assert event["actor"] == "explicit"
        assert "trace_id" not in event


class TestOperationTimer:
    """Test operation timing functionality."""

    def test_timer_records_steps(self):
        """Test that timer records step durations."""
        timer = OperationTimer()

        with timer.step("load"):
            pass

        with timer.step("save"):
            time.sleep(0.001)

        assert set(timer.steps) == {"load", "save"}
        assert timer.steps["load"] >= 0
        assert timer.steps["save"] > 0

    def test_step_recorded_when_block_raises(self):
        timer = OperationTimer()

        try:
            with timer.step("apply"):
                raise ValueError("rejected")
        except ValueError:
            pass

        assert "apply" in timer.steps

    def test_timer_summary(self):
        """Test summary dictionary format."""
        timer = OperationTimer()
        with timer.step("load"):
            pass

        summary = timer.summary()

        assert summary["total_ms"] >= 0
        assert list(summary["steps"]) == ["load"]


class TestCurrentContext:

    def test_empty_outside_context(self):
        assert dict(current_context()) == {}

    def test_nested_context_inherits_unset_ids(self):
        with logging_context(trace_id="t1", deal_id="d1"):
            with logging_context(actor="u1"):
                assert dict(current_context()) == {
                    "trace_id": "t1",
                    "deal_id": "d1",
                    "actor": "u1",
                }
