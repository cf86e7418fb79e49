"""
Proctoring Service - session lifecycle, violation events, submission and reporting
"""

import uuid
import asyncio
import logging
from typing import Optional, List, Dict, Any, Mapping, Tuple, Union, Callable
from datetime import datetime, timedelta
from functools import lru_cache

from quizguard.config import settings
from quizguard.models.attempt import Question, QuizAttempt, HistorySummary
from quizguard.models.proctoring import (
    AntiCheatPolicy, ProctoringSession, ViolationType, utcnow
)
from quizguard.services.grading import AttemptGrader
from quizguard.services.history import HistoryAggregator
from quizguard.services.live_monitoring import LiveSessionAggregator, LiveSnapshot
from quizguard.services.repositories import AttemptRepository, QuizCatalog, build_repositories
from quizguard.services.session_state_machine import ProctoringSessionStateMachine, Transition
from quizguard.services.session_store import SessionStore
from quizguard.services.violation_recorder import ViolationRecorder
from quizguard.utils.exceptions import (
    AppError, AttemptAlreadySubmittedError, ConfigError, SessionNotFoundError,
    UnknownSessionError
)

logger = logging.getLogger(__name__)


class ProctoringService:
    """Entry point used by the API layer and background jobs"""

    def __init__(
        self,
        store: SessionStore,
        attempts: AttemptRepository,
        catalog: QuizCatalog,
        grader: Optional[AttemptGrader] = None,
        clock=utcnow
    ):
        self.store = store
        self.attempts = attempts
        self.catalog = catalog
        self.clock = clock
        self.machine = ProctoringSessionStateMachine(grader=grader, clock=clock)
        self.live = LiveSessionAggregator(store)
        self.history = HistoryAggregator()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(self, quiz_id: str, user: Dict[str, Any]) -> Tuple[ProctoringSession, bool]:
        """
        Open a proctoring session for a student, or return the one already open.

        Args:
            quiz_id: Quiz being taken
            user: Authenticated user dict with "id" and optionally "email", "name"

        Returns:
            (session, created)

        Raises:
            QuizNotFoundError: If the quiz does not exist
            AttemptAlreadySubmittedError: If the student already has an attempt for this quiz
                or an earlier session that was graded or disqualified
        """
        quiz = self.catalog.require_quiz(quiz_id)
        user_id = user["id"]

        if self.attempts.exists(quiz_id, user_id) or self._has_prior_result(quiz_id, user_id):
            raise AttemptAlreadySubmittedError()

        existing = self.store.find_open(quiz_id, user_id)
        if existing:
            return existing, False

        now = self.clock()
        session = ProctoringSession(
            id=str(uuid.uuid4()),
            quiz_id=quiz_id,
            user_id=user_id,
            student_name=user.get("name") or "",
            student_email=user.get("email") or "",
            started_at=now,
            last_activity_at=now,
            policy=self._policy_for(quiz_id, quiz.anti_cheat),
        )
        created = self.store.create(session)
        logger.info(f"Proctoring session {created.id} started for user {user_id} on quiz {quiz_id}")
        return created, True

    def get_session(self, session_id: str) -> ProctoringSession:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def find_session(self, session_id: str) -> Optional[ProctoringSession]:
        return self.store.get(session_id)

    def record_event(
        self,
        session_id: str,
        event_type: Union[ViolationType, str],
        seconds: Optional[float] = None,
        timestamp: Optional[datetime] = None
    ) -> Optional[ProctoringSession]:
        """
        Apply an inbound integrity event.

        Late or duplicate events for unknown or closed sessions are expected
        under client retries: they are logged and dropped.

        Returns:
            The updated session, or None if the event was dropped
        """
        try:
            return self._record_event(session_id, event_type, seconds, timestamp)
        except UnknownSessionError as e:
            logger.warning(f"Dropping integrity event {event_type!r}: {e}")
            return None

    def _record_event(
        self,
        session_id: str,
        event_type: Union[ViolationType, str],
        seconds: Optional[float],
        timestamp: Optional[datetime]
    ) -> ProctoringSession:
        session = self.store.get(session_id)
        if session is None or session.is_closed:
            raise UnknownSessionError(session_id)

        questions = self._questions_for(session.quiz_id)
        received_at = self.clock()

        def apply(current: ProctoringSession) -> Tuple[ProctoringSession, Optional[Transition]]:
            if current.is_closed:
                return current, None
            recorded = ViolationRecorder.record(current, event_type, seconds, timestamp, received_at)
            transition = self.machine.evaluate(recorded, questions)
            return transition.session, transition

        try:
            transition = self.store.mutate(session_id, apply)
        except SessionNotFoundError:
            raise UnknownSessionError(session_id)

        if transition is None:
            raise UnknownSessionError(session_id)

        if transition.attempt:
            self._persist_attempt(transition.attempt)
        return transition.session

    def save_answers(self, session_id: str, answers: Mapping[int, str]) -> ProctoringSession:
        """Store in-progress answers so an auto-submit grades what the student has so far"""

        def apply(current: ProctoringSession) -> Tuple[ProctoringSession, ProctoringSession]:
            if current.is_closed:
                raise AttemptAlreadySubmittedError("This quiz has already been submitted")
            merged = {**current.answers, **answers}
            updated = current.model_copy(update={"answers": merged, "last_activity_at": self.clock()})
            return updated, updated

        return self.store.mutate(session_id, apply)

    def submit(
        self,
        session_id: str,
        answers: Optional[Mapping[int, str]] = None,
        time_spent_seconds: Optional[int] = None
    ) -> QuizAttempt:
        """
        Grade and close a session. Disqualified sessions submit with disqualified=True.

        Raises:
            SessionNotFoundError: If the session does not exist
            AttemptAlreadySubmittedError: If the session was already graded
        """
        session = self.get_session(session_id)
        questions = self._questions_for(session.quiz_id)

        def apply(current: ProctoringSession) -> Tuple[ProctoringSession, Transition]:
            transition = self.machine.submit(current, questions, answers, time_spent_seconds)
            return transition.session, transition

        transition = self.store.mutate(session_id, apply)
        return self._persist_attempt(transition.attempt)

    def disqualify(
        self,
        session_id: str,
        reason: str = "Disqualified by instructor"
    ) -> Tuple[ProctoringSession, Optional[QuizAttempt]]:
        """
        Force-disqualify a session. Idempotent: repeated calls never create a second attempt.

        Returns:
            (session, attempt) where attempt is set only if this call auto-submitted
        """
        session = self.get_session(session_id)
        questions = self._questions_for(session.quiz_id)

        def apply(current: ProctoringSession) -> Tuple[ProctoringSession, Transition]:
            transition = self.machine.disqualify(current, questions, reason)
            return transition.session, transition

        transition = self.store.mutate(session_id, apply)
        attempt = self._persist_attempt(transition.attempt) if transition.attempt else None
        return transition.session, attempt

    def reap_stale_sessions(self, now: Optional[datetime] = None) -> List[str]:
        """
        Mark open sessions with no activity for SESSION_STALE_AFTER_MINUTES as abandoned.

        Abandoned sessions are not graded.
        The app runs this every SESSION_REAP_INTERVAL_SECONDS from its lifespan
        task (see reap_periodically).

        Returns:
            Ids of the sessions that were abandoned by this call
        """
        if not settings.SESSION_STALE_AFTER_MINUTES:
            return []

        now = now or self.clock()
        cutoff = now - timedelta(minutes=settings.SESSION_STALE_AFTER_MINUTES)
        reaped = []

        def apply(current: ProctoringSession) -> Tuple[ProctoringSession, bool]:
            if current.last_activity_at >= cutoff:
                return current, False
            transition = self.machine.abandon(current)
            return transition.session, transition.changed

        for session in self.store.list_open():
            if session.last_activity_at >= cutoff:
                continue
            try:
                if self.store.mutate(session.id, apply):
                    reaped.append(session.id)
            except SessionNotFoundError:
                continue

        if reaped:
            logger.info(f"Abandoned {len(reaped)} stale proctoring sessions")
        return reaped

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def update_policy(self, quiz_id: str, raw: Dict[str, Any]) -> AntiCheatPolicy:
        """
        Validate and save a quiz's anti-cheat settings. Sessions already
        running keep the policy they started with.

        Raises:
            ConfigError: If the settings are invalid
            QuizNotFoundError: If the quiz does not exist
        """
        policy = AntiCheatPolicy.from_settings(raw)
        self.catalog.save_anti_cheat(quiz_id, policy)
        logger.info(f"Anti-cheat policy updated for quiz {quiz_id}")
        return policy

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def list_live(self, quiz_id: str) -> LiveSnapshot:
        return self.live.list_active(quiz_id)

    def history_for_user(
        self,
        user_id: str,
        limit: Optional[int] = None
    ) -> Tuple[List[QuizAttempt], HistorySummary]:
        attempts = self.attempts.list_for_user(user_id, limit or settings.HISTORY_PAGE_LIMIT)
        return attempts, self.history.summarize(attempts)

    def results_for_quiz(
        self,
        quiz_id: str,
        limit: Optional[int] = None
    ) -> Tuple[List[QuizAttempt], HistorySummary]:
        attempts = self.attempts.list_for_quiz(quiz_id, limit or settings.HISTORY_PAGE_LIMIT)
        return attempts, self.history.summarize(attempts)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _questions_for(self, quiz_id: str) -> List[Question]:
        quiz = self.catalog.get_quiz(quiz_id)
        if quiz is None:
            logger.warning(f"Quiz {quiz_id} not found while grading, using an empty answer key")
            return []
        return quiz.questions

    def _has_prior_result(self, quiz_id: str, user_id: str) -> bool:
        """
        A closed session that was graded or disqualified still blocks a retake
        when its attempt row never made it to storage.
        """
        for session in self.store.list_for_quiz(quiz_id, include_closed=True):
            if session.user_id != user_id or not session.is_closed:
                continue
            if session.attempt_id or session.disqualified:
                if session.attempt_id and not self.attempts.get(session.attempt_id):
                    logger.error(
                        f"Session {session.id} is {session.status.value} but attempt "
                        f"{session.attempt_id} is missing"
                    )
                return True
        return False

    @staticmethod
    def _policy_for(quiz_id: str, raw: Dict[str, Any]) -> AntiCheatPolicy:
        try:
            return AntiCheatPolicy.from_settings(raw)
        except ConfigError as e:
            # Invalid settings must never block a student from starting
            logger.error(f"Invalid anti-cheat settings on quiz {quiz_id}, using defaults: {e}")
            return AntiCheatPolicy()

    def _persist_attempt(self, attempt: QuizAttempt) -> QuizAttempt:
        try:
            return self.attempts.save(attempt)
        except AppError:
            logger.error(
                f"Failed to persist attempt {attempt.id} for session {attempt.session_id}: "
                f"{attempt.model_dump_json()}"
            )
            raise


@lru_cache()
def get_proctoring_service() -> ProctoringService:
    store, attempts, catalog = build_repositories()
    return ProctoringService(store, attempts, catalog)


def reap_once(get_service: Callable[[], ProctoringService]) -> List[str]:
    """One reaper pass. Failures are logged so the periodic task keeps running."""
    try:
        return get_service().reap_stale_sessions()
    except Exception as e:
        logger.error(f"Stale session reaper failed: {e}", exc_info=True)
        return []


async def reap_periodically(get_service: Callable[[], ProctoringService], interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        await asyncio.to_thread(reap_once, get_service)
