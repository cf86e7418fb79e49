from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

from quizguard.models.proctoring import Violation, utcnow


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    IDENTIFICATION = "identification"
    TRUE_OR_FALSE = "true_or_false"
    ESSAY = "essay"
    ENUMERATION = "enumeration"
    REFLECTION = "reflection"


# Question types with no automatic answer key
MANUALLY_GRADED_TYPES = frozenset({QuestionType.ESSAY.value, QuestionType.REFLECTION.value})


class Question(BaseModel):
    """Answer-key entry. `type` stays a plain string so unknown types can be graded best-effort."""
    type: str
    question: str = ""
    choices: Optional[List[str]] = None
    answer: str = ""

    @field_validator("answer", mode="before")
    @classmethod
    def coerce_answer(cls, value: Any) -> str:
        # Stored keys are sometimes booleans or numbers
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)


class Quiz(BaseModel):
    """Read-only quiz view supplied by the catalog"""
    id: str
    teacher_id: str
    title: str = ""
    questions: List[Question] = Field(default_factory=list)
    anti_cheat: Dict[str, Any] = Field(default_factory=dict)


class QuestionResult(BaseModel):
    """Grading outcome for a single question"""
    model_config = ConfigDict(frozen=True)

    index: int
    type: str
    submitted: Optional[str] = None
    correct: bool = False
    graded: bool = True  # False for questions excluded from the score


class GradeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int = 0
    total_questions: int = 0
    percentage: float = 0.0
    results: Tuple[QuestionResult, ...] = ()

    @property
    def ungraded_count(self) -> int:
        return sum(1 for r in self.results if not r.graded)


class QuizAttempt(BaseModel):
    """Terminal graded submission. Written once, never updated."""
    model_config = ConfigDict(frozen=True)

    id: str
    quiz_id: str
    user_id: str
    session_id: Optional[str] = None
    student_name: str = ""
    student_email: str = ""
    answers: Dict[int, str] = Field(default_factory=dict)

    score: int = Field(default=0, ge=0)
    total_questions: int = Field(default=0, ge=0)
    percentage: float = Field(default=0.0, ge=0, le=100)
    results: Tuple[QuestionResult, ...] = ()

    completed_at: datetime = Field(default_factory=utcnow)
    time_spent_seconds: int = 0

    # Integrity fields carried over from the session
    tab_change_count: int = 0
    time_away_seconds: int = 0
    refresh_detected: bool = False
    violations: Tuple[Violation, ...] = ()
    disqualified: bool = False


class HistorySummary(BaseModel):
    count: int = 0
    average_percentage: float = 0.0
    best_percentage: float = 0.0
    disqualified_count: int = 0
    flagged_count: int = 0
    average_time_spent_seconds: float = 0.0
    recent_attempts: List[QuizAttempt] = Field(default_factory=list)
