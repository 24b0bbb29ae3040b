"""
skillpath/routes/assessment.py
Assessment session endpoints
"""
from typing import Dict, Any
from fastapi import APIRouter, Depends, status

from skillpath.errors import ErrorResponse
from skillpath.routes.deps import get_current_user_id, get_session_engine
from skillpath.schemas.assessment import StartSessionRequest, SubmitAnswerRequest
from skillpath.services.session_engine import SessionEngine


router = APIRouter(
    prefix="/api/assessment",
    tags=["Assessment"],
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    }
)


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def start_session(
    body: StartSessionRequest,
    user_id: int = Depends(get_current_user_id),
    engine: SessionEngine = Depends(get_session_engine),
) -> Dict[str, Any]:
    """
    Start an assessment session.

    Selects a fixed, shuffled set of questions for the grade and skill.
    """
    session = await engine.start_session(user_id, grade_level=body.grade_level, skill_id=body.skill_id)
    return {
        "success": True,
        "session": session
    }


@router.get("/sessions/{session_id}/next")
async def get_next_question(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: SessionEngine = Depends(get_session_engine),
) -> Dict[str, Any]:
    """Next unanswered question, or completion once every question is answered."""
    result = await engine.get_next_question(user_id, session_id)
    return {
        "success": True,
        **result.model_dump(mode="json")
    }


@router.post("/answers")
async def submit_answer(
    body: SubmitAnswerRequest,
    user_id: int = Depends(get_current_user_id),
    engine: SessionEngine = Depends(get_session_engine),
) -> Dict[str, Any]:
    result = await engine.submit_answer(user_id, body.session_id, body.question_id, body.user_response)
    return {
        "success": True,
        **result.model_dump(mode="json")
    }


@router.get("/sessions/{session_id}/result")
async def get_session_result(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: SessionEngine = Depends(get_session_engine),
) -> Dict[str, Any]:
    result = await engine.get_session_result(user_id, session_id)
    return {
        "success": True,
        "result": result
    }
