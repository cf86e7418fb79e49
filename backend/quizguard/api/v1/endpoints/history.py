from fastapi import APIRouter, Depends, Query

from quizguard.api.v1.endpoints.proctoring import require_quiz_owner
from quizguard.dependencies import get_current_student, get_current_teacher
from quizguard.schemas.attempt import HistoryResponse
from quizguard.services.proctoring_service import ProctoringService, get_proctoring_service

router = APIRouter()


@router.get("", response_model=HistoryResponse)
async def my_history(
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_student),
    service: ProctoringService = Depends(get_proctoring_service)
):
    """The current student's attempts, newest first, with summary stats"""
    attempts, summary = service.history_for_user(current_user["id"], limit)
    return HistoryResponse.build(attempts, summary)


@router.get("/quizzes/{quiz_id}/attempts", response_model=HistoryResponse)
async def quiz_attempts(
    quiz_id: str,
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_teacher),
    service: ProctoringService = Depends(get_proctoring_service)
):
    """All graded attempts for a quiz the teacher owns"""
    require_quiz_owner(service, quiz_id, current_user)
    attempts, summary = service.results_for_quiz(quiz_id, limit)
    return HistoryResponse.build(attempts, summary)
