"""
Live session monitoring for the instructor dashboard.

The dashboard polls; every call is a fresh read of the session store and
never writes to it. A session may show up one poll late in its new state.
"""

import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from quizguard.config import settings
from quizguard.models.proctoring import ProctoringSession, Violation
from quizguard.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class DisplayStatus(str, Enum):
    ACTIVE = "active"
    VIOLATIONS = "violations"
    DISQUALIFIED = "disqualified"


class LiveSessionView(BaseModel):
    session: ProctoringSession
    display_status: DisplayStatus
    recent_violations: List[Violation] = Field(default_factory=list)


class LiveRollup(BaseModel):
    total_active: int = 0
    clean: int = 0
    flagged: int = 0
    disqualified: int = 0


class LiveSnapshot(BaseModel):
    quiz_id: str
    sessions: List[LiveSessionView] = Field(default_factory=list)
    rollup: LiveRollup = Field(default_factory=LiveRollup)
    poll_interval_seconds: int = 2


class LiveSessionAggregator:
    """Classifies open sessions of one quiz for display"""

    def __init__(
        self,
        store: SessionStore,
        time_away_warning_seconds: Optional[int] = None,
        violation_display_limit: Optional[int] = None
    ):
        self.store = store
        self.time_away_warning_seconds = (
            settings.LIVE_TIME_AWAY_WARNING_SECONDS
            if time_away_warning_seconds is None else time_away_warning_seconds
        )
        self.violation_display_limit = (
            settings.VIOLATION_DISPLAY_LIMIT
            if violation_display_limit is None else violation_display_limit
        )

    def classify(self, session: ProctoringSession) -> DisplayStatus:
        """
        Display colouring only, more sensitive than the disqualification
        policy. Never used for gating.
        """
        if session.disqualified:
            return DisplayStatus.DISQUALIFIED
        if (
            len(session.violations) > 0
            or session.tab_change_count > 0
            or session.time_away_seconds > self.time_away_warning_seconds
        ):
            return DisplayStatus.VIOLATIONS
        return DisplayStatus.ACTIVE

    def list_active(self, quiz_id: str) -> LiveSnapshot:
        """Current open sessions for a quiz with display status and rollup counts"""
        sessions = sorted(self.store.list_for_quiz(quiz_id), key=lambda s: (s.started_at, s.id))

        views: List[LiveSessionView] = []
        rollup = LiveRollup(total_active=len(sessions))

        for session in sessions:
            status = self.classify(session)
            if status is DisplayStatus.DISQUALIFIED:
                rollup.disqualified += 1
            elif status is DisplayStatus.VIOLATIONS:
                rollup.flagged += 1
            else:
                rollup.clean += 1

            recent = list(session.violations[-self.violation_display_limit:]) if self.violation_display_limit else []
            views.append(LiveSessionView(session=session, display_status=status, recent_violations=recent))

        logger.debug(f"Live snapshot for quiz {quiz_id}: {rollup.total_active} open sessions")
        return LiveSnapshot(
            quiz_id=quiz_id,
            sessions=views,
            rollup=rollup,
            poll_interval_seconds=settings.LIVE_POLL_INTERVAL_SECONDS
        )
