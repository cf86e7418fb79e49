"""
Tests for violation recording
"""

from datetime import datetime, timedelta, timezone
import itertools

import pytest

from quizguard.models.proctoring import ViolationType
from quizguard.services.violation_recorder import ViolationRecorder


class TestRecordTabChange:

    def test_increments_counter_and_logs(self, make_session):
        session = make_session()
        at = session.started_at + timedelta(seconds=30)
        updated = ViolationRecorder.record_tab_change(session, at, received_at=at)

        assert updated.tab_change_count == 1
        assert len(updated.violations) == 1
        assert updated.violations[0].type == ViolationType.TAB_CHANGE
        assert updated.violations[0].details == "Tab switched away (1/3)"
        assert updated.last_activity_at == at

    def test_input_session_is_untouched(self, make_session):
        session = make_session()
        ViolationRecorder.record_tab_change(session)

        assert session.tab_change_count == 0
        assert session.violations == ()


class TestRecordTimeAway:

    def test_adds_seconds(self, make_session):
        session = ViolationRecorder.record_time_away(make_session(), 3)
        session = ViolationRecorder.record_time_away(session, 4)

        assert session.time_away_seconds == 7
        assert len(session.violations) == 2

    def test_fractional_seconds_are_floored(self, make_session):
        assert ViolationRecorder.record_time_away(make_session(), 2.9).time_away_seconds == 2

    def test_negative_or_missing_seconds_count_as_zero(self, make_session):
        session = ViolationRecorder.record_time_away(make_session(), -4)
        session = ViolationRecorder.record_time_away(session, None)

        assert session.time_away_seconds == 0
        # The event itself is still logged
        assert len(session.violations) == 2


class TestRecordRefresh:

    def test_sets_refresh_flag(self, make_session):
        session = ViolationRecorder.record_refresh(make_session())

        assert session.refresh_detected is True
        assert session.violations[-1].type == ViolationType.REFRESH


class TestRecordDispatch:

    def test_dispatches_by_type_string(self, make_session):
        session = ViolationRecorder.record(make_session(), "tab_change")
        session = ViolationRecorder.record(session, "time_away", seconds=2)
        session = ViolationRecorder.record(session, ViolationType.REFRESH)

        assert session.tab_change_count == 1
        assert session.time_away_seconds == 2
        assert session.refresh_detected is True

    def test_unknown_type_leaves_session_unchanged(self, make_session):
        session = make_session()
        assert ViolationRecorder.record(session, "screenshot") is session

    def test_counters_do_not_depend_on_order(self, make_session):
        """Applying the same events in any order yields the same totals"""
        events = [
            ("tab_change", None),
            ("time_away", 3),
            ("refresh", None),
            ("tab_change", None),
            ("time_away", 2),
        ]
        outcomes = set()
        for ordering in itertools.permutations(events):
            session = make_session()
            for event_type, seconds in ordering:
                session = ViolationRecorder.record(session, event_type, seconds)
            outcomes.add((
                session.tab_change_count,
                session.time_away_seconds,
                session.refresh_detected,
                len(session.violations),
            ))

        assert outcomes == {(2, 5, True, 5)}


class TestEventTimes:

    def test_activity_follows_server_time_not_client_time(self, make_session):
        """A client clock far in the future only lands in the violation log"""
        session = make_session()
        received = session.started_at + timedelta(minutes=1)
        claimed = session.started_at + timedelta(days=30)

        updated = ViolationRecorder.record(session, "tab_change", timestamp=claimed, received_at=received)

        assert updated.last_activity_at == received
        assert updated.violations[0].timestamp == claimed

    def test_offset_less_timestamp_is_read_as_utc(self, make_session):
        naive = datetime(2024, 1, 20, 10, 0, 1)
        updated = ViolationRecorder.record_refresh(make_session(), timestamp=naive)

        assert updated.violations[0].timestamp == naive.replace(tzinfo=timezone.utc)
        assert updated.last_activity_at.tzinfo is not None

    def test_missing_client_timestamp_uses_received_time(self, make_session):
        session = make_session()
        received = session.started_at + timedelta(seconds=5)

        updated = ViolationRecorder.record_time_away(session, 2, received_at=received)
        assert updated.violations[0].timestamp == received


class TestNonFiniteSeconds:

    @pytest.mark.parametrize("seconds", [float("nan"), float("inf"), float("-inf")])
    def test_recorded_as_zero(self, make_session, seconds):
        updated = ViolationRecorder.record(make_session(), "time_away", seconds=seconds)

        assert updated.time_away_seconds == 0
        assert len(updated.violations) == 1
