"""
skillpath/services/session_store.py
Persistence for assessment sessions and responses

All functions work inside the caller's transaction; none of them commit.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from skillpath.orm.assessment_session import AssessmentSession, AssessmentResponse, SessionStatus
from skillpath.orm.question import Question


async def create_session(
    db: AsyncSession,
    user_id: int,
    skill_id: int,
    question_ids: List[int]
) -> AssessmentSession:
    session = AssessmentSession(
        user_id=user_id,
        skill_id=skill_id,
        status=SessionStatus.in_progress,
        started_at=datetime.utcnow(),
        question_ids=list(question_ids),
    )
    db.add(session)
    await db.flush()
    return session


async def get_session(
    db: AsyncSession,
    session_id: int,
    for_update: bool = False
) -> Optional[AssessmentSession]:
    """Load a session; for_update takes a row lock for the rest of the transaction."""
    query = select(AssessmentSession).where(AssessmentSession.id == session_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_answered_question_ids(db: AsyncSession, session_id: int) -> Set[int]:
    result = await db.execute(
        select(AssessmentResponse.question_id).where(AssessmentResponse.session_id == session_id)
    )
    return set(result.scalars().all())


async def response_exists(db: AsyncSession, session_id: int, question_id: int) -> bool:
    result = await db.execute(
        select(AssessmentResponse.id).where(
            AssessmentResponse.session_id == session_id,
            AssessmentResponse.question_id == question_id
        )
    )
    return result.first() is not None


async def add_response(
    db: AsyncSession,
    session_id: int,
    question_id: int,
    user_response: str,
    is_correct: bool
) -> AssessmentResponse:
    """Insert a response and flush so unique-constraint violations surface here."""
    response = AssessmentResponse(
        session_id=session_id,
        question_id=question_id,
        user_response=user_response,
        is_correct=is_correct,
        answered_at=datetime.utcnow(),
    )
    db.add(response)
    await db.flush()
    return response


async def get_response_counts(db: AsyncSession, session_id: int) -> Tuple[int, int]:
    """Return (answered, correct) for a session."""
    result = await db.execute(
        select(
            func.count(AssessmentResponse.id),
            func.coalesce(func.sum(case((AssessmentResponse.is_correct.is_(True), 1), else_=0)), 0)
        ).where(AssessmentResponse.session_id == session_id)
    )
    answered, correct = result.one()
    return int(answered or 0), int(correct or 0)


def mark_completed(session: AssessmentSession, overall_score: int, overall_level: int) -> None:
    session.status = SessionStatus.completed
    session.completed_at = datetime.utcnow()
    session.overall_score = overall_score
    session.overall_level = overall_level


async def get_recent_answers(
    db: AsyncSession,
    user_id: int,
    skill_id: int,
    limit: int
) -> List[Dict[str, Any]]:
    """Latest answers of a user on questions of one skill, newest first."""
    result = await db.execute(
        select(AssessmentResponse.is_correct, AssessmentResponse.answered_at)
        .join(AssessmentSession, AssessmentSession.id == AssessmentResponse.session_id)
        .join(Question, Question.id == AssessmentResponse.question_id)
        .where(
            AssessmentSession.user_id == user_id,
            Question.primary_skill_id == skill_id
        )
        .order_by(AssessmentResponse.answered_at.desc(), AssessmentResponse.id.desc())
        .limit(limit)
    )
    return [
        {
            "skill_id": skill_id,
            "is_correct": bool(is_correct),
            "date": answered_at.isoformat() if answered_at else None,
        }
        for is_correct, answered_at in result.all()
    ]
