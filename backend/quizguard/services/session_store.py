"""
Session stores - keyed by session id with per-key atomic mutation
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple, TypeVar, Any

from quizguard.config import settings
from quizguard.core.supabase_client import get_supabase_client
from quizguard.models.proctoring import ProctoringSession, CLOSED_STATUSES
from quizguard.utils.exceptions import AppError, SessionNotFoundError, SessionConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A mutator receives the current session and returns (new session, result).
# Returning the same object means "no change".
Mutator = Callable[[ProctoringSession], Tuple[ProctoringSession, T]]


class SessionStore(ABC):
    """
    Storage for live proctoring sessions.

    Reads return snapshots. Writes go through `mutate`, which serialises
    updates per session id and owns the `version` counter.
    """

    @abstractmethod
    def create(self, session: ProctoringSession) -> ProctoringSession:
        ...

    @abstractmethod
    def get(self, session_id: str) -> Optional[ProctoringSession]:
        ...

    @abstractmethod
    def list_for_quiz(self, quiz_id: str, include_closed: bool = False) -> List[ProctoringSession]:
        ...

    @abstractmethod
    def list_open(self) -> List[ProctoringSession]:
        ...

    @abstractmethod
    def mutate(self, session_id: str, mutator: Mutator) -> T:
        """
        Atomically apply `mutator` to one session.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        ...

    def find_open(self, quiz_id: str, user_id: str) -> Optional[ProctoringSession]:
        for session in self.list_for_quiz(quiz_id):
            if session.user_id == user_id:
                return session
        return None


class InMemorySessionStore(SessionStore):
    """Process-local store guarded by one lock per session"""

    def __init__(self):
        self._sessions: Dict[str, ProctoringSession] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    def create(self, session: ProctoringSession) -> ProctoringSession:
        with self._lock_for(session.id):
            with self._registry_lock:
                self._sessions[session.id] = session
        return session.model_copy(deep=True)

    def get(self, session_id: str) -> Optional[ProctoringSession]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    def list_for_quiz(self, quiz_id: str, include_closed: bool = False) -> List[ProctoringSession]:
        with self._registry_lock:
            sessions = list(self._sessions.values())
        return [
            s.model_copy(deep=True) for s in sessions
            if s.quiz_id == quiz_id and (include_closed or s.status not in CLOSED_STATUSES)
        ]

    def list_open(self) -> List[ProctoringSession]:
        with self._registry_lock:
            sessions = list(self._sessions.values())
        return [s.model_copy(deep=True) for s in sessions if s.status not in CLOSED_STATUSES]

    def mutate(self, session_id: str, mutator: Mutator) -> T:
        with self._lock_for(session_id):
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)

            updated, result = mutator(current)
            if updated is not current:
                with self._registry_lock:
                    self._sessions[session_id] = updated.model_copy(update={"version": current.version + 1})
            return result


class SupabaseSessionStore(SessionStore):
    """
    Supabase-backed store.

    Concurrent writers are reconciled with an optimistic compare-and-swap on
    the `version` column: an update only lands if the row still carries the
    version it was read at, otherwise the mutator is re-run on fresh data.
    """

    TABLE = "proctoring_sessions"

    def __init__(self, client=None, max_retries: Optional[int] = None):
        self._client = client
        self.max_retries = max_retries or settings.SESSION_UPDATE_MAX_RETRIES

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    @staticmethod
    def _to_row(session: ProctoringSession) -> Dict[str, Any]:
        return session.model_dump(mode="json")

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> ProctoringSession:
        return ProctoringSession.model_validate(row)

    def create(self, session: ProctoringSession) -> ProctoringSession:
        response = self.client.table(self.TABLE).insert(self._to_row(session)).execute()
        if not response.data:
            logger.error(f"Failed to create proctoring session {session.id}")
            raise AppError("Failed to create proctoring session", 500)
        return self._from_row(response.data[0])

    def get(self, session_id: str) -> Optional[ProctoringSession]:
        response = self.client.table(self.TABLE)\
            .select("*").eq("id", session_id).limit(1).execute()
        if not response.data:
            return None
        return self._from_row(response.data[0])

    def list_for_quiz(self, quiz_id: str, include_closed: bool = False) -> List[ProctoringSession]:
        response = self.client.table(self.TABLE)\
            .select("*")\
            .eq("quiz_id", quiz_id)\
            .order("started_at", desc=False)\
            .execute()
        sessions = [self._from_row(row) for row in (response.data or [])]
        if include_closed:
            return sessions
        return [s for s in sessions if s.status not in CLOSED_STATUSES]

    def list_open(self) -> List[ProctoringSession]:
        response = self.client.table(self.TABLE)\
            .select("*")\
            .not_.in_("status", [status.value for status in CLOSED_STATUSES])\
            .execute()
        return [self._from_row(row) for row in (response.data or [])]

    def mutate(self, session_id: str, mutator: Mutator) -> T:
        for attempt in range(1, self.max_retries + 1):
            current = self.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)

            updated, result = mutator(current)
            if updated is current:
                return result

            row = self._to_row(updated.model_copy(update={"version": current.version + 1}))
            response = self.client.table(self.TABLE)\
                .update(row)\
                .eq("id", session_id)\
                .eq("version", current.version)\
                .execute()

            if response.data:
                return result

            logger.info(f"Version conflict on session {session_id}, retrying ({attempt}/{self.max_retries})")

        logger.error(f"Giving up on session {session_id} after {self.max_retries} conflicting updates")
        raise SessionConflictError(session_id, self.max_retries)
