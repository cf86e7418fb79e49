"""
Attempt and quiz persistence.

The engine only needs a handful of narrow, synchronous calls; anything
richer belongs to the surrounding application.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any

from quizguard.config import settings
from quizguard.core.supabase_client import get_supabase_client
from quizguard.models.attempt import Quiz, QuizAttempt
from quizguard.models.proctoring import AntiCheatPolicy
from quizguard.services.session_store import InMemorySessionStore, SupabaseSessionStore
from quizguard.utils.exceptions import AppError, QuizNotFoundError

logger = logging.getLogger(__name__)


class AttemptRepository(ABC):

    @abstractmethod
    def save(self, attempt: QuizAttempt) -> QuizAttempt:
        ...

    @abstractmethod
    def get(self, attempt_id: str) -> Optional[QuizAttempt]:
        ...

    @abstractmethod
    def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[QuizAttempt]:
        """Newest first"""
        ...

    @abstractmethod
    def list_for_quiz(self, quiz_id: str, limit: Optional[int] = None) -> List[QuizAttempt]:
        """Newest first"""
        ...

    @abstractmethod
    def exists(self, quiz_id: str, user_id: str) -> bool:
        ...


class QuizCatalog(ABC):

    @abstractmethod
    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        ...

    @abstractmethod
    def save_anti_cheat(self, quiz_id: str, policy: AntiCheatPolicy) -> None:
        ...

    def require_quiz(self, quiz_id: str) -> Quiz:
        quiz = self.get_quiz(quiz_id)
        if quiz is None:
            raise QuizNotFoundError(quiz_id)
        return quiz


def _newest_first(attempts: List[QuizAttempt], limit: Optional[int]) -> List[QuizAttempt]:
    ordered = sorted(attempts, key=lambda a: a.completed_at, reverse=True)
    return ordered[:limit] if limit else ordered


class InMemoryAttemptRepository(AttemptRepository):

    def __init__(self):
        self._attempts: Dict[str, QuizAttempt] = {}
        self._lock = threading.Lock()

    def save(self, attempt: QuizAttempt) -> QuizAttempt:
        with self._lock:
            if attempt.id in self._attempts:
                raise AppError(f"Attempt {attempt.id} already exists", 409)
            self._attempts[attempt.id] = attempt
        return attempt

    def get(self, attempt_id: str) -> Optional[QuizAttempt]:
        return self._attempts.get(attempt_id)

    def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[QuizAttempt]:
        with self._lock:
            attempts = [a for a in self._attempts.values() if a.user_id == user_id]
        return _newest_first(attempts, limit)

    def list_for_quiz(self, quiz_id: str, limit: Optional[int] = None) -> List[QuizAttempt]:
        with self._lock:
            attempts = [a for a in self._attempts.values() if a.quiz_id == quiz_id]
        return _newest_first(attempts, limit)

    def exists(self, quiz_id: str, user_id: str) -> bool:
        with self._lock:
            return any(a.quiz_id == quiz_id and a.user_id == user_id for a in self._attempts.values())


class InMemoryQuizCatalog(QuizCatalog):

    def __init__(self, quizzes: Optional[List[Quiz]] = None):
        self._quizzes: Dict[str, Quiz] = {q.id: q for q in (quizzes or [])}

    def add(self, quiz: Quiz) -> None:
        self._quizzes[quiz.id] = quiz

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        return self._quizzes.get(quiz_id)

    def save_anti_cheat(self, quiz_id: str, policy: AntiCheatPolicy) -> None:
        quiz = self.require_quiz(quiz_id)
        self._quizzes[quiz_id] = quiz.model_copy(update={"anti_cheat": policy.to_settings()})


class SupabaseAttemptRepository(AttemptRepository):
    TABLE = "quiz_attempts"

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def save(self, attempt: QuizAttempt) -> QuizAttempt:
        response = self.client.table(self.TABLE).insert(attempt.model_dump(mode="json")).execute()
        if not response.data:
            logger.error(f"Failed to save attempt {attempt.id} for session {attempt.session_id}")
            raise AppError("Failed to save quiz attempt", 500)
        return QuizAttempt.model_validate(response.data[0])

    def get(self, attempt_id: str) -> Optional[QuizAttempt]:
        response = self.client.table(self.TABLE)\
            .select("*").eq("id", attempt_id).limit(1).execute()
        if not response.data:
            return None
        return QuizAttempt.model_validate(response.data[0])

    def _list(self, column: str, value: str, limit: Optional[int]) -> List[QuizAttempt]:
        query = self.client.table(self.TABLE)\
            .select("*")\
            .eq(column, value)\
            .order("completed_at", desc=True)
        if limit:
            query = query.limit(limit)
        response = query.execute()
        return [QuizAttempt.model_validate(row) for row in (response.data or [])]

    def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[QuizAttempt]:
        return self._list("user_id", user_id, limit)

    def list_for_quiz(self, quiz_id: str, limit: Optional[int] = None) -> List[QuizAttempt]:
        return self._list("quiz_id", quiz_id, limit)

    def exists(self, quiz_id: str, user_id: str) -> bool:
        response = self.client.table(self.TABLE)\
            .select("id")\
            .eq("quiz_id", quiz_id)\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        return bool(response.data)


class SupabaseQuizCatalog(QuizCatalog):
    TABLE = "quizzes"

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> Quiz:
        return Quiz(
            id=row["id"],
            teacher_id=row.get("teacher_id") or "",
            title=row.get("title") or "",
            questions=row.get("questions") or [],
            anti_cheat=row.get("anti_cheat") or {},
        )

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        response = self.client.table(self.TABLE)\
            .select("id, teacher_id, title, questions, anti_cheat")\
            .eq("id", quiz_id)\
            .limit(1)\
            .execute()
        if not response.data:
            return None
        return self._from_row(response.data[0])

    def save_anti_cheat(self, quiz_id: str, policy: AntiCheatPolicy) -> None:
        response = self.client.table(self.TABLE)\
            .update({"anti_cheat": policy.to_settings()})\
            .eq("id", quiz_id)\
            .execute()
        if not response.data:
            raise QuizNotFoundError(quiz_id)


def build_repositories(backend: Optional[str] = None):
    """Return (session store, attempt repository, quiz catalog) for the configured backend"""
    backend = backend or settings.STORAGE_BACKEND
    if backend == "memory":
        return InMemorySessionStore(), InMemoryAttemptRepository(), InMemoryQuizCatalog()
    if backend == "supabase":
        return SupabaseSessionStore(), SupabaseAttemptRepository(), SupabaseQuizCatalog()
    raise AppError(f"Unknown storage backend: {backend}", 500)
