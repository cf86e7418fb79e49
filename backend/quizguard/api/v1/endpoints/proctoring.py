"""
Proctoring Endpoints - session lifecycle for students, live monitoring and policy for teachers
"""

from fastapi import APIRouter, HTTPException, status, Depends, Response
import logging

from quizguard.dependencies import get_current_student, get_current_teacher
from quizguard.models.attempt import Quiz
from quizguard.models.proctoring import ProctoringSession
from quizguard.schemas.attempt import SubmitResponse, DisqualifyResponse
from quizguard.schemas.proctoring import (
    InboundEvent, EventResponse, SessionRead, SessionStartResponse, AnswersUpdate,
    SubmitRequest, DisqualifyRequest, LiveSessionsResponse, PolicyInput, PolicyRead,
    answers_to_map
)
from quizguard.services.proctoring_service import ProctoringService, get_proctoring_service

logger = logging.getLogger(__name__)
router = APIRouter()


def require_quiz_owner(service: ProctoringService, quiz_id: str, current_user: dict) -> Quiz:
    quiz = service.catalog.require_quiz(quiz_id)
    if quiz.teacher_id != current_user["id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to manage this quiz"
        )
    return quiz


def require_session_owner(service: ProctoringService, session_id: str, current_user: dict) -> ProctoringSession:
    session = service.get_session(session_id)
    if session.user_id != current_user["id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this session"
        )
    return session


@router.post("/quizzes/{quiz_id}/session", response_model=SessionStartResponse)
async def start_session(
    quiz_id: str,
    response: Response,
    current_user: dict = Depends(get_current_student),
    service: ProctoringService = Depends(get_proctoring_service)
):
    """Start a proctored attempt, or resume the one already open"""
    session, created = service.start_session(quiz_id, current_user)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK

    return SessionStartResponse(
        session_id=session.id,
        message="Proctoring session started" if created else "Session already exists",
        session=SessionRead.from_session(session),
    )


@router.post("/sessions/{session_id}/events", response_model=EventResponse)
async def record_event(
    session_id: str,
    event: InboundEvent,
    current_user: dict = Depends(get_current_student),
    service: ProctoringService = Depends(get_proctoring_service)
):
    """
    Report a tab change, time away or refresh.

    Events for unknown or already submitted sessions are acknowledged with
    recorded=false so client retries stay harmless.
    """
    session = service.find_session(session_id)
    if session is not None and session.user_id != current_user["id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this session"
        )

    if event.session_id and event.session_id != session_id:
        logger.warning(f"Event body names session {event.session_id}, using path session {session_id}")

    updated = service.record_event(session_id, event.type, event.seconds, event.timestamp)
    if updated is None:
        return EventResponse(recorded=False)
    return EventResponse(recorded=True, session=SessionRead.from_session(updated))


@router.put("/sessions/{session_id}/answers", response_model=SessionRead)
async def save_answers(
    session_id: str,
    update: AnswersUpdate,
    current_user: dict = Depends(get_current_student),
    service: ProctoringService = Depends(get_proctoring_service)
):
    require_session_owner(service, session_id, current_user)
    session = service.save_answers(session_id, answers_to_map(update.answers))
    return SessionRead.from_session(session)


@router.post("/sessions/{session_id}/submit", response_model=SubmitResponse)
async def submit(
    session_id: str,
    request: SubmitRequest,
    current_user: dict = Depends(get_current_student),
    service: ProctoringService = Depends(get_proctoring_service)
):
    """Grade and close the attempt"""
    require_session_owner(service, session_id, current_user)
    attempt = service.submit(
        session_id,
        answers=answers_to_map(request.answers),
        time_spent_seconds=request.time_spent
    )

    return SubmitResponse(
        attempt_id=attempt.id,
        score=attempt.score,
        total_questions=attempt.total_questions,
        percentage=attempt.percentage,
        disqualified=attempt.disqualified,
        message="Quiz submitted (disqualified)" if attempt.disqualified else "Quiz submitted successfully",
    )


@router.post("/sessions/{session_id}/disqualify", response_model=DisqualifyResponse)
async def disqualify(
    session_id: str,
    request: DisqualifyRequest,
    current_user: dict = Depends(get_current_teacher),
    service: ProctoringService = Depends(get_proctoring_service)
):
    """Force-disqualify a student's session"""
    session = service.get_session(session_id)
    require_quiz_owner(service, session.quiz_id, current_user)

    if request.reason:
        updated, attempt = service.disqualify(session_id, request.reason)
    else:
        updated, attempt = service.disqualify(session_id)

    return DisqualifyResponse(
        session_id=updated.id,
        status=updated.status.value,
        attempt_id=attempt.id if attempt else updated.attempt_id,
    )


@router.get("/quizzes/{quiz_id}/live", response_model=LiveSessionsResponse)
async def live_sessions(
    quiz_id: str,
    current_user: dict = Depends(get_current_teacher),
    service: ProctoringService = Depends(get_proctoring_service)
):
    """Open sessions for a quiz, meant to be polled every few seconds"""
    require_quiz_owner(service, quiz_id, current_user)
    return LiveSessionsResponse.from_snapshot(service.list_live(quiz_id))


@router.put("/quizzes/{quiz_id}/anti-cheat", response_model=PolicyRead)
async def update_anti_cheat(
    quiz_id: str,
    policy_input: PolicyInput,
    current_user: dict = Depends(get_current_teacher),
    service: ProctoringService = Depends(get_proctoring_service)
):
    """Validate and save anti-cheat settings. Running sessions keep their policy."""
    require_quiz_owner(service, quiz_id, current_user)
    raw = policy_input.model_dump(by_alias=True, exclude_none=True)
    policy = service.update_policy(quiz_id, raw)
    return PolicyRead.from_policy(policy)
