"""
skillpath/services/skill_score_store.py
Per (user, skill) proficiency records

Score updates are read-modify-write. The row is read with SELECT ... FOR UPDATE
so concurrent answers touching the same (user, skill) serialize on the lock
instead of losing an update. Every new value is also appended to
skill_score_snapshots.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skillpath.config.settings import AssessmentSettings
from skillpath.orm.skill_score import AssessmentSkillScore, SkillScoreSnapshot
from skillpath.services.scoring import updated_skill_score

logger = logging.getLogger(__name__)


async def get_skill_score(
    db: AsyncSession,
    user_id: int,
    skill_id: int,
    for_update: bool = False
) -> Optional[AssessmentSkillScore]:
    query = select(AssessmentSkillScore).where(
        AssessmentSkillScore.user_id == user_id,
        AssessmentSkillScore.skill_id == skill_id
    )
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def apply_answer(
    db: AsyncSession,
    user_id: int,
    skill_id: int,
    is_correct: bool,
    default_score: float = AssessmentSettings.DEFAULT_SCORE,
    initial_k: float = AssessmentSettings.INITIAL_K,
    decay_rate: float = AssessmentSettings.DECAY_RATE
) -> AssessmentSkillScore:
    """
    Apply one accepted answer to the learner's score for a skill.

    Creates the row on first use. questions_attempted grows by exactly one.
    """
    skill_score = await get_skill_score(db, user_id, skill_id, for_update=True)
    now = datetime.utcnow()

    if skill_score is None:
        skill_score = AssessmentSkillScore(
            user_id=user_id,
            skill_id=skill_id,
            score=default_score,
            questions_attempted=0,
            last_assessed_at=now,
        )
        db.add(skill_score)

    previous = skill_score.score if skill_score.score is not None else default_score
    attempts = skill_score.questions_attempted or 0

    skill_score.score = updated_skill_score(previous, attempts, is_correct, initial_k, decay_rate)
    skill_score.questions_attempted = attempts + 1
    skill_score.last_assessed_at = now

    db.add(SkillScoreSnapshot(
        user_id=user_id,
        skill_id=skill_id,
        score=skill_score.score,
        recorded_at=now,
    ))
    await db.flush()

    logger.info(
        f"[SKILL SCORE] user={user_id} skill={skill_id} correct={is_correct} "
        f"{previous:.2f} -> {skill_score.score:.2f} attempts={skill_score.questions_attempted}"
    )
    return skill_score


async def set_skill_level(db: AsyncSession, user_id: int, skill_id: int, level: int) -> None:
    skill_score = await get_skill_score(db, user_id, skill_id, for_update=True)
    if skill_score is not None:
        skill_score.level = level


async def get_user_skill_scores(db: AsyncSession, user_id: int) -> List[AssessmentSkillScore]:
    """All score rows for a user, most recently assessed first."""
    result = await db.execute(
        select(AssessmentSkillScore)
        .where(AssessmentSkillScore.user_id == user_id)
        .order_by(AssessmentSkillScore.last_assessed_at.desc(), AssessmentSkillScore.id.desc())
    )
    return list(result.scalars().all())


async def get_snapshot_score(
    db: AsyncSession,
    user_id: int,
    skill_id: int,
    at: datetime,
    before: bool
) -> Optional[float]:
    """Nearest recorded score strictly before (or at/after) a point in time."""
    query = select(SkillScoreSnapshot.score).where(
        SkillScoreSnapshot.user_id == user_id,
        SkillScoreSnapshot.skill_id == skill_id
    )
    if before:
        query = query.where(SkillScoreSnapshot.recorded_at < at).order_by(
            SkillScoreSnapshot.recorded_at.desc(), SkillScoreSnapshot.id.desc()
        )
    else:
        query = query.where(SkillScoreSnapshot.recorded_at >= at).order_by(
            SkillScoreSnapshot.recorded_at.asc(), SkillScoreSnapshot.id.asc()
        )
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()
