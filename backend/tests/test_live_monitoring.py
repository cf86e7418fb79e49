"""
Tests for the live session aggregator
"""

from datetime import timedelta

from quizguard.models.proctoring import SessionStatus, Violation, ViolationType
from quizguard.services.live_monitoring import DisplayStatus, LiveSessionAggregator
from quizguard.services.session_store import InMemorySessionStore


class TestLiveSessionAggregator:

    def test_empty_quiz(self):
        snapshot = LiveSessionAggregator(InMemorySessionStore()).list_active("quiz-1")

        assert snapshot.sessions == []
        assert snapshot.rollup.total_active == 0
        assert snapshot.rollup.clean == 0

    def test_classification(self, make_session):
        aggregator = LiveSessionAggregator(InMemorySessionStore(), time_away_warning_seconds=5)

        assert aggregator.classify(make_session()) == DisplayStatus.ACTIVE
        assert aggregator.classify(make_session(tab_change_count=1)) == DisplayStatus.VIOLATIONS
        assert aggregator.classify(make_session(time_away_seconds=6)) == DisplayStatus.VIOLATIONS
        assert aggregator.classify(make_session(disqualified=True, tab_change_count=9)) == DisplayStatus.DISQUALIFIED

    def test_time_away_below_warning_with_no_log_is_clean(self, make_session):
        aggregator = LiveSessionAggregator(InMemorySessionStore(), time_away_warning_seconds=5)
        assert aggregator.classify(make_session(time_away_seconds=5)) == DisplayStatus.ACTIVE

    def test_rollup_and_ordering(self, make_session):
        store = InMemorySessionStore()
        base = make_session().started_at
        clean = store.create(make_session(id="s-clean", started_at=base + timedelta(minutes=2)))
        store.create(make_session(id="s-flagged", started_at=base + timedelta(minutes=1),
                                  tab_change_count=2, status=SessionStatus.FLAGGED))
        store.create(make_session(id="s-dq", started_at=base,
                                  disqualified=True, status=SessionStatus.DISQUALIFIED))
        store.create(make_session(id="s-done", status=SessionStatus.COMPLETED))
        store.create(make_session(id="s-other", quiz_id="quiz-2"))

        snapshot = LiveSessionAggregator(store).list_active("quiz-1")

        assert [v.session.id for v in snapshot.sessions] == ["s-dq", "s-flagged", clean.id]
        assert snapshot.rollup.total_active == 3
        assert snapshot.rollup.clean == 1
        assert snapshot.rollup.flagged == 1
        assert snapshot.rollup.disqualified == 1

    def test_only_recent_violations_are_shown(self, make_session):
        store = InMemorySessionStore()
        violations = tuple(
            Violation(type=ViolationType.TAB_CHANGE, details=f"switch {i}") for i in range(8)
        )
        store.create(make_session(violations=violations, tab_change_count=8))

        view = LiveSessionAggregator(store, violation_display_limit=5).list_active("quiz-1").sessions[0]

        assert [v.details for v in view.recent_violations] == [f"switch {i}" for i in range(3, 8)]
        assert len(view.session.violations) == 8

    def test_reads_are_idempotent(self, make_session):
        store = InMemorySessionStore()
        session = store.create(make_session(tab_change_count=1))
        aggregator = LiveSessionAggregator(store)

        first = aggregator.list_active("quiz-1")
        second = aggregator.list_active("quiz-1")

        assert first == second
        assert store.get(session.id).version == session.version
