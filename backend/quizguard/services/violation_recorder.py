"""
Violation recording - pure transforms over ProctoringSession values
"""

import math
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from quizguard.models.proctoring import (
    ProctoringSession, Violation, ViolationType, utcnow
)

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Offset-less timestamps are taken to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ViolationRecorder:
    """
    Applies integrity events to a session.

    Every method returns a new session and leaves its input untouched. The
    caller is responsible for running the transform under the session's
    update lock (see SessionStore.mutate).

    `timestamp` is the client's report of when the event happened and only
    goes into the violation log. `received_at` is the server time the event
    arrived and is what moves `last_activity_at`.
    """

    @staticmethod
    def record_tab_change(
        session: ProctoringSession,
        timestamp: Optional[datetime] = None,
        received_at: Optional[datetime] = None
    ) -> ProctoringSession:
        """Count a tab switch and log it"""
        received_at, timestamp = ViolationRecorder._times(timestamp, received_at)
        count = session.tab_change_count + 1
        violation = Violation(
            type=ViolationType.TAB_CHANGE,
            timestamp=timestamp,
            details=f"Tab switched away ({count}/{session.policy.tab_change_limit})"
        )
        return session.model_copy(update={
            "tab_change_count": count,
            "violations": session.violations + (violation,),
            "last_activity_at": received_at,
        })

    @staticmethod
    def record_time_away(
        session: ProctoringSession,
        seconds: Union[int, float, None],
        timestamp: Optional[datetime] = None,
        received_at: Optional[datetime] = None
    ) -> ProctoringSession:
        """Add time spent away from the quiz tab"""
        received_at, timestamp = ViolationRecorder._times(timestamp, received_at)
        away = ViolationRecorder._clamp_seconds(session.id, seconds)
        violation = Violation(
            type=ViolationType.TIME_AWAY,
            timestamp=timestamp,
            details=f"Away for {away} seconds (threshold: {session.policy.time_away_threshold_seconds}s)"
        )
        return session.model_copy(update={
            "time_away_seconds": session.time_away_seconds + away,
            "violations": session.violations + (violation,),
            "last_activity_at": received_at,
        })

    @staticmethod
    def record_refresh(
        session: ProctoringSession,
        timestamp: Optional[datetime] = None,
        received_at: Optional[datetime] = None
    ) -> ProctoringSession:
        """Log a page refresh. Whether it disqualifies is the state machine's call."""
        received_at, timestamp = ViolationRecorder._times(timestamp, received_at)
        violation = Violation(
            type=ViolationType.REFRESH,
            timestamp=timestamp,
            details="Page refresh detected"
        )
        return session.model_copy(update={
            "refresh_detected": True,
            "violations": session.violations + (violation,),
            "last_activity_at": received_at,
        })

    @staticmethod
    def record(
        session: ProctoringSession,
        event_type: Union[ViolationType, str],
        seconds: Union[int, float, None] = None,
        timestamp: Optional[datetime] = None,
        received_at: Optional[datetime] = None
    ) -> ProctoringSession:
        """
        Dispatch an inbound event to the matching recorder.

        Unknown event types are logged and leave the session unchanged.
        """
        try:
            kind = ViolationType(event_type)
        except ValueError:
            logger.warning(f"Ignoring unknown event type {event_type!r} for session {session.id}")
            return session

        if kind is ViolationType.TAB_CHANGE:
            return ViolationRecorder.record_tab_change(session, timestamp, received_at)
        if kind is ViolationType.TIME_AWAY:
            return ViolationRecorder.record_time_away(session, seconds, timestamp, received_at)
        return ViolationRecorder.record_refresh(session, timestamp, received_at)

    @staticmethod
    def _times(timestamp: Optional[datetime], received_at: Optional[datetime]):
        received_at = as_utc(received_at) if received_at else utcnow()
        timestamp = as_utc(timestamp) if timestamp else received_at
        return received_at, timestamp

    @staticmethod
    def _clamp_seconds(session_id: str, seconds: Union[int, float, None]) -> int:
        if seconds is None:
            logger.warning(f"time_away event without seconds for session {session_id}, recording 0")
            return 0
        if not math.isfinite(seconds):
            logger.warning(f"Non-finite time_away ({seconds}) for session {session_id}, recording 0")
            return 0
        if seconds < 0:
            logger.warning(f"Negative time_away ({seconds}s) for session {session_id}, recording 0")
            return 0
        return int(seconds)
