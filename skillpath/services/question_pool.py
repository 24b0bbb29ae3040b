"""
skillpath/services/question_pool.py
Read-only access to assessment questions
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skillpath.orm.question import Question, QuestionStatus


async def fetch_candidate_pool(
    db: AsyncSession,
    grade_level: int,
    skill_id: int,
    limit: int
) -> List[Question]:
    """Active questions for a grade and skill, newest first, at most limit rows."""
    result = await db.execute(
        select(Question)
        .where(
            Question.grade_level == grade_level,
            Question.primary_skill_id == skill_id,
            Question.status == QuestionStatus.active
        )
        .order_by(Question.created_at.desc(), Question.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_question(db: AsyncSession, question_id: int) -> Optional[Question]:
    result = await db.execute(select(Question).where(Question.id == question_id))
    return result.scalar_one_or_none()

