from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from quizguard.models.proctoring import ProctoringSession, Violation, ViolationType, AntiCheatPolicy
from quizguard.services.live_monitoring import DisplayStatus, LiveSnapshot


class CamelModel(BaseModel):
    """Wire models use camelCase keys and accept snake_case too"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InboundEvent(CamelModel):
    session_id: Optional[str] = None
    type: ViolationType
    seconds: Optional[float] = None
    timestamp: Optional[datetime] = None


class ViolationRead(CamelModel):
    type: ViolationType
    timestamp: datetime
    details: Optional[str] = None

    @classmethod
    def from_violation(cls, violation: Violation) -> "ViolationRead":
        return cls(type=violation.type, timestamp=violation.timestamp, details=violation.details)


class SessionRead(CamelModel):
    id: str
    quiz_id: str
    user_id: str
    student_name: str = ""
    student_email: str = ""
    started_at: datetime
    last_activity: datetime
    tab_change_count: int = 0
    time_away: int = 0
    refresh_detected: bool = False
    violations: List[ViolationRead] = Field(default_factory=list)
    disqualified: bool = False
    status: str

    @classmethod
    def from_session(
        cls,
        session: ProctoringSession,
        violations: Optional[List[Violation]] = None
    ) -> "SessionRead":
        shown = session.violations if violations is None else violations
        return cls(
            id=session.id,
            quiz_id=session.quiz_id,
            user_id=session.user_id,
            student_name=session.student_name,
            student_email=session.student_email,
            started_at=session.started_at,
            last_activity=session.last_activity_at,
            tab_change_count=session.tab_change_count,
            time_away=session.time_away_seconds,
            refresh_detected=session.refresh_detected,
            violations=[ViolationRead.from_violation(v) for v in shown],
            disqualified=session.disqualified,
            status=session.status.value,
        )


class SessionStartResponse(CamelModel):
    session_id: str
    message: str
    session: SessionRead


class EventResponse(CamelModel):
    recorded: bool
    session: Optional[SessionRead] = None


class LiveSessionRead(SessionRead):
    display_status: DisplayStatus


class LiveStats(CamelModel):
    total_active: int = 0
    clean: int = 0
    violations: int = 0
    disqualified: int = 0


class LiveSessionsResponse(CamelModel):
    quiz_id: str
    sessions: List[LiveSessionRead] = Field(default_factory=list)
    stats: LiveStats = Field(default_factory=LiveStats)
    poll_interval_seconds: int

    @classmethod
    def from_snapshot(cls, snapshot: LiveSnapshot) -> "LiveSessionsResponse":
        sessions = [
            LiveSessionRead(
                **SessionRead.from_session(view.session, view.recent_violations).model_dump(),
                display_status=view.display_status,
            )
            for view in snapshot.sessions
        ]
        return cls(
            quiz_id=snapshot.quiz_id,
            sessions=sessions,
            stats=LiveStats(
                total_active=snapshot.rollup.total_active,
                clean=snapshot.rollup.clean,
                violations=snapshot.rollup.flagged,
                disqualified=snapshot.rollup.disqualified,
            ),
            poll_interval_seconds=snapshot.poll_interval_seconds,
        )


class AnswerEntry(CamelModel):
    question_index: int = Field(ge=0)
    answer: str


def answers_to_map(entries: List[AnswerEntry]) -> Dict[int, str]:
    return {entry.question_index: entry.answer for entry in entries}


class AnswersUpdate(CamelModel):
    answers: List[AnswerEntry]


class SubmitRequest(CamelModel):
    answers: List[AnswerEntry] = Field(default_factory=list)
    time_spent: Optional[int] = Field(default=None, ge=0)


class DisqualifyRequest(CamelModel):
    reason: Optional[str] = None


class PolicyInput(CamelModel):
    enabled: Optional[bool] = None
    tab_change_limit: Optional[int] = None
    time_away_threshold: Optional[int] = None
    auto_disqualify_on_refresh: Optional[bool] = None
    auto_submit_on_disqualification: Optional[bool] = None
    prevent_copy_paste: Optional[bool] = None
    fullscreen_mode: Optional[bool] = None
    disable_right_click: Optional[bool] = None


class PolicyRead(CamelModel):
    enabled: bool
    tab_change_limit: int
    time_away_threshold: int
    auto_disqualify_on_refresh: bool
    auto_submit_on_disqualification: bool
    prevent_copy_paste: bool
    fullscreen_mode: bool
    disable_right_click: bool

    @classmethod
    def from_policy(cls, policy: AntiCheatPolicy) -> "PolicyRead":
        return cls.model_validate(policy.to_settings())
