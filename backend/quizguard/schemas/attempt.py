from datetime import datetime
from typing import Optional, List, Dict
from pydantic import Field

from quizguard.models.attempt import QuizAttempt, HistorySummary
from quizguard.schemas.proctoring import CamelModel, ViolationRead
from quizguard.services.history import HistoryAggregator


class AttemptRead(CamelModel):
    id: str
    quiz_id: str
    user_id: str
    student_name: str = ""
    student_email: str = ""
    answers: Dict[int, str] = Field(default_factory=dict)
    score: int
    total_questions: int
    percentage: float
    completed_at: datetime
    time_spent: int
    tab_change_count: int = 0
    time_away: int = 0
    refresh_detected: bool = False
    violations: List[ViolationRead] = Field(default_factory=list)
    disqualified: bool = False
    integrity_issues: bool = False

    @classmethod
    def from_attempt(cls, attempt: QuizAttempt) -> "AttemptRead":
        return cls(
            id=attempt.id,
            quiz_id=attempt.quiz_id,
            user_id=attempt.user_id,
            student_name=attempt.student_name,
            student_email=attempt.student_email,
            answers=attempt.answers,
            score=attempt.score,
            total_questions=attempt.total_questions,
            percentage=attempt.percentage,
            completed_at=attempt.completed_at,
            time_spent=attempt.time_spent_seconds,
            tab_change_count=attempt.tab_change_count,
            time_away=attempt.time_away_seconds,
            refresh_detected=attempt.refresh_detected,
            violations=[ViolationRead.from_violation(v) for v in attempt.violations],
            disqualified=attempt.disqualified,
            integrity_issues=HistoryAggregator.has_integrity_issues(attempt),
        )


class SubmitResponse(CamelModel):
    success: bool = True
    attempt_id: str
    score: int
    total_questions: int
    percentage: float
    disqualified: bool = False
    message: str = "Quiz submitted successfully"


class DisqualifyResponse(CamelModel):
    session_id: str
    status: str
    attempt_id: Optional[str] = None


class HistoryStats(CamelModel):
    total_quizzes: int = 0
    average_score: float = 0.0
    best_score: float = 0.0
    disqualified_count: int = 0
    flagged_count: int = 0
    average_time_spent: float = 0.0
    recent_attempts: List[AttemptRead] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: HistorySummary) -> "HistoryStats":
        return cls(
            total_quizzes=summary.count,
            average_score=round(summary.average_percentage, 1),
            best_score=summary.best_percentage,
            disqualified_count=summary.disqualified_count,
            flagged_count=summary.flagged_count,
            average_time_spent=round(summary.average_time_spent_seconds, 1),
            recent_attempts=[AttemptRead.from_attempt(a) for a in summary.recent_attempts],
        )


class HistoryResponse(CamelModel):
    attempts: List[AttemptRead] = Field(default_factory=list)
    stats: HistoryStats = Field(default_factory=HistoryStats)

    @classmethod
    def build(cls, attempts: List[QuizAttempt], summary: HistorySummary) -> "HistoryResponse":
        return cls(
            attempts=[AttemptRead.from_attempt(a) for a in attempts],
            stats=HistoryStats.from_summary(summary),
        )
