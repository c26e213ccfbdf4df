"""
Tests for ErrorHandler - routing, suppression and the context manager
"""

import pytest

from ledger_system.core.error_handler import (
    ErrorCategory,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
)
from ledger_system.core.hashchain import MiningCancelledError, MiningExhaustedError
from ledger_system.core.providers import ReplicationAbortedError


@pytest.fixture
def handler():
    return ErrorHandler()


class TestHandleError:

    def test_medium_alert_is_queued_and_suppressed(self, handler):
        suppress = handler.handle_error(
            ValueError("bad input"), ErrorCategory.UI_INPUT, ErrorSeverity.MEDIUM_ALERT,
            context="menu", operation="read_record"
        )

        assert suppress is True
        assert len(handler.alert_queue) == 1
        assert "During read_record - menu: bad input" in handler.alert_queue[0]
        assert handler.recent_errors[0]['category'] == "ui_input"

    def test_critical_propagates(self, handler):
        suppress = handler.handle_error(
            RuntimeError("boom"), ErrorCategory.REPLICATION, ErrorSeverity.CRITICAL_STOP
        )
        assert suppress is False
        assert len(handler.critical_alerts) == 1

    def test_low_debug_only_shown_in_debug_mode(self):
        quiet = ErrorHandler()
        quiet.handle_error(ValueError("x"), ErrorCategory.QUERY, ErrorSeverity.LOW_DEBUG)
        assert quiet.alert_queue == []
        assert len(quiet.recent_errors) == 1

        verbose = ErrorHandler(debug_mode=True)
        verbose.handle_error(ValueError("x"), ErrorCategory.QUERY, ErrorSeverity.LOW_DEBUG)
        assert len(verbose.alert_queue) == 1

    def test_duplicates_suppressed_within_window(self, handler):
        for _ in range(3):
            handler.handle_error(
                MiningExhaustedError(5, b"\x00"), ErrorCategory.MINING, ErrorSeverity.HIGH_DEGRADE
            )

        assert len(handler.recent_errors) == 1
        assert handler.error_counts["mining_MiningExhaustedError"] == 3
        assert handler.suppressed_errors["mining_MiningExhaustedError"] == 2

    def test_folded_repeats_reported_on_next_alert(self, handler):
        for _ in range(3):
            handler.handle_error(ValueError("x"), ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT)
        handler.handle_error(
            ValueError("x"), ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT,
            suppress_duplicate_minutes=0
        )

        assert handler.alert_queue[-1].endswith("(#4) [+2 suppressed][/yellow]")
        assert handler.suppressed_errors["query_ValueError"] == 0

    def test_suppression_window_can_be_disabled(self, handler):
        for _ in range(2):
            handler.handle_error(
                ValueError("x"), ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT,
                suppress_duplicate_minutes=0
            )
        assert len(handler.recent_errors) == 2
        assert handler.alert_queue[-1].endswith("(#2)[/yellow]")

    def test_long_messages_truncated(self, handler):
        handler.handle_error(ValueError("z" * 300), ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT)
        assert "z" * 100 + "..." in handler.alert_queue[0]
        assert "z" * 101 not in handler.alert_queue[0]


class TestMiningDetails:

    def test_exhausted_records_attempts_and_difficulty(self, handler):
        handler.handle_error(
            MiningExhaustedError(7, b"\x00\x00"), ErrorCategory.MINING, ErrorSeverity.HIGH_DEGRADE
        )
        error = handler.recent_errors[0]
        assert error['attempts'] == 7
        assert error['difficulty'] == "0000"

    def test_aborted_replication_reports_its_cause(self, handler):
        try:
            try:
                raise MiningCancelledError(3)
            except MiningCancelledError as e:
                raise ReplicationAbortedError("record 9 not replicated") from e
        except ReplicationAbortedError as aborted:
            handler.handle_error(aborted, ErrorCategory.REPLICATION, ErrorSeverity.HIGH_DEGRADE)

        error = handler.recent_errors[0]
        assert error['error_type'] == "ReplicationAbortedError"
        assert error['attempts'] == 3
        assert error['cancelled'] is True

    def test_other_errors_carry_no_mining_fields(self, handler):
        handler.handle_error(ValueError("x"), ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT)
        assert 'attempts' not in handler.recent_errors[0]


class TestAlerts:

    def test_get_alerts_clears_queues(self, handler):
        handler.handle_error(ValueError("a"), ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT)
        handler.handle_error(RuntimeError("b"), ErrorCategory.REPLICATION, ErrorSeverity.CRITICAL_STOP)

        alerts = handler.get_alerts_for_ui()
        assert len(alerts) == 2
        assert "b" in alerts[0]
        assert handler.get_alerts_for_ui() == []

    def test_alerts_keep_newest(self, handler):
        for i in range(5):
            handler.handle_error(
                ValueError(str(i)), ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT,
                suppress_duplicate_minutes=0
            )
        alerts = handler.get_alerts_for_ui(max_alerts=2)
        assert len(alerts) == 2
        assert alerts[-1] == "[yellow]4 (#5)[/yellow]"

    def test_recent_errors_capped(self, handler):
        for i in range(105):
            handler.handle_error(
                ValueError(str(i)), ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT,
                suppress_duplicate_minutes=0
            )
        assert len(handler.recent_errors) == 100
        assert handler.recent_errors[0]['message'] == "5"


class TestErrorContext:

    def test_non_critical_error_swallowed(self, handler):
        with handler.create_context_manager(ErrorCategory.REPLICATION, ErrorSeverity.HIGH_DEGRADE,
                                            operation="add_record"):
            raise ReplicationAbortedError("mining failed")

        assert handler.recent_errors[0]['error_type'] == "ReplicationAbortedError"
        assert handler.recent_errors[0]['operation'] == "add_record"

    def test_critical_error_reraised(self, handler):
        with pytest.raises(RuntimeError):
            with ErrorContext(handler, ErrorCategory.CONFIGURATION, ErrorSeverity.CRITICAL_STOP):
                raise RuntimeError("stop")

    def test_no_error_passes_through(self, handler):
        with handler.create_context_manager(ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT):
            value = 1
        assert value == 1
        assert len(handler.recent_errors) == 0
