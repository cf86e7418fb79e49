"""
Proctoring session lifecycle

    ACTIVE -> FLAGGED -> DISQUALIFIED -> COMPLETED (auto-submit or manual submit)
    ACTIVE | FLAGGED -> COMPLETED (normal submission)
    any open status -> ABANDONED (reaper)
"""

import uuid
import logging
from datetime import datetime
from typing import Optional, Mapping, Sequence, Callable

from pydantic import BaseModel

from quizguard.models.proctoring import ProctoringSession, SessionStatus, utcnow
from quizguard.models.attempt import Question, QuizAttempt
from quizguard.services.grading import AttemptGrader
from quizguard.utils.exceptions import AttemptAlreadySubmittedError

logger = logging.getLogger(__name__)


class Transition(BaseModel):
    """Result of a state machine step"""
    session: ProctoringSession
    attempt: Optional[QuizAttempt] = None
    changed: bool = False


class ProctoringSessionStateMachine:
    """Decides status changes from a session's counters and its policy snapshot"""

    def __init__(
        self,
        grader: Optional[AttemptGrader] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.grader = grader or AttemptGrader()
        self.clock = clock

    @staticmethod
    def disqualification_reason(session: ProctoringSession) -> Optional[str]:
        """
        Return why the session must be disqualified, or None.

        Limits are inclusive: reaching the limit is allowed, exceeding it is not.
        """
        policy = session.policy
        if session.tab_change_count > policy.tab_change_limit:
            return f"Exceeded tab change limit ({session.tab_change_count}/{policy.tab_change_limit})"
        if session.time_away_seconds > policy.time_away_threshold_seconds:
            return (
                f"Exceeded time away threshold "
                f"({session.time_away_seconds}s/{policy.time_away_threshold_seconds}s)"
            )
        if session.refresh_detected and policy.auto_disqualify_on_refresh:
            return "Page refresh detected"
        return None

    def evaluate(self, session: ProctoringSession, questions: Sequence[Question]) -> Transition:
        """Apply the transition rules after a violation has been recorded"""
        if session.is_terminal or not session.policy.enabled:
            return Transition(session=session)

        reason = self.disqualification_reason(session)
        if reason:
            return self._enter_disqualified(session, questions, reason)

        if session.status is SessionStatus.ACTIVE and (
            session.tab_change_count > 0 or session.time_away_seconds > 0
        ):
            flagged = session.model_copy(update={"status": SessionStatus.FLAGGED})
            return Transition(session=flagged, changed=True)

        return Transition(session=session)

    def disqualify(
        self,
        session: ProctoringSession,
        questions: Sequence[Question],
        reason: str = "Disqualified by instructor"
    ) -> Transition:
        """
        Force a disqualification.

        Calling this on a session that is already disqualified or closed is a
        no-op, so a retried request never produces a second attempt.
        """
        if session.is_terminal:
            logger.info(f"Session {session.id} already {session.status.value}, ignoring disqualify")
            return Transition(session=session)
        return self._enter_disqualified(session, questions, reason)

    def submit(
        self,
        session: ProctoringSession,
        questions: Sequence[Question],
        answers: Optional[Mapping[int, str]] = None,
        time_spent_seconds: Optional[int] = None
    ) -> Transition:
        """
        Grade and close the session.

        Raises:
            AttemptAlreadySubmittedError: If the session is already closed
        """
        if session.is_closed:
            raise AttemptAlreadySubmittedError()

        merged = dict(session.answers)
        if answers:
            merged.update(answers)
        return self._complete(session, questions, merged, time_spent_seconds)

    def abandon(self, session: ProctoringSession) -> Transition:
        if session.is_closed:
            return Transition(session=session)
        abandoned = session.model_copy(update={
            "status": SessionStatus.ABANDONED,
        })
        return Transition(session=abandoned, changed=True)

    def _enter_disqualified(
        self,
        session: ProctoringSession,
        questions: Sequence[Question],
        reason: str
    ) -> Transition:
        disqualified = session.model_copy(update={
            "status": SessionStatus.DISQUALIFIED,
            "disqualified": True,
            "disqualification_reason": reason,
        })
        logger.info(f"Session {session.id} disqualified: {reason}")

        if session.policy.auto_submit_on_disqualification:
            return self._complete(disqualified, questions, disqualified.answers, None)

        return Transition(session=disqualified, changed=True)

    def _complete(
        self,
        session: ProctoringSession,
        questions: Sequence[Question],
        answers: Mapping[int, str],
        time_spent_seconds: Optional[int]
    ) -> Transition:
        now = self.clock()
        grade = self.grader.grade(questions, answers)

        if time_spent_seconds is None:
            time_spent_seconds = max(0, int((now - session.started_at).total_seconds()))

        attempt = QuizAttempt(
            id=str(uuid.uuid4()),
            quiz_id=session.quiz_id,
            user_id=session.user_id,
            session_id=session.id,
            student_name=session.student_name,
            student_email=session.student_email,
            answers=dict(answers),
            score=grade.score,
            total_questions=grade.total_questions,
            percentage=grade.percentage,
            results=grade.results,
            completed_at=now,
            time_spent_seconds=max(0, time_spent_seconds),
            tab_change_count=session.tab_change_count,
            time_away_seconds=session.time_away_seconds,
            refresh_detected=session.refresh_detected,
            violations=session.violations,
            disqualified=session.disqualified,
        )

        completed = session.model_copy(update={
            "status": SessionStatus.COMPLETED,
            "answers": dict(answers),
            "attempt_id": attempt.id,
            "last_activity_at": now,
        })
        logger.info(
            f"Session {session.id} completed: {grade.score}/{grade.total_questions} "
            f"({grade.percentage}%), disqualified={session.disqualified}"
        )
        return Transition(session=completed, attempt=attempt, changed=True)
