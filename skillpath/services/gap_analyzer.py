"""
skillpath/services/gap_analyzer.py
Skill gap detection

A gap is a skill whose latest score is below the low threshold. Gaps are
returned worst first.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skillpath.config.settings import AssessmentSettings, RecommendationSettings
from skillpath.errors import ErrorCode, NotFoundError
from skillpath.orm.skill import Skill
from skillpath.services.skill_score_store import get_user_skill_scores

logger = logging.getLogger(__name__)


@dataclass
class SkillGap:
    skill_id: int
    skill_name: str
    subject: str
    grade_level: int
    score: float
    last_assessed_at: Optional[datetime] = None


def latest_score_per_skill(scores) -> dict:
    """Keep the most recently assessed row per skill."""
    latest = {}
    for row in sorted(scores, key=lambda s: s.last_assessed_at or datetime.min, reverse=True):
        latest.setdefault(row.skill_id, row)
    return latest


async def find_skill_gaps(
    db: AsyncSession,
    user_id: int,
    skill_id: Optional[int] = None,
    low_threshold: float = RecommendationSettings.SKILL_THRESHOLD_LOW,
    default_score: float = AssessmentSettings.DEFAULT_SCORE
) -> List[SkillGap]:
    """
    Skills the user is under-performing in.

    With skill_id, only that skill is considered. A requested skill with no
    score yet yields one gap at default_score so it can still be recommended.

    Raises:
        NotFoundError: skill_id does not exist
    """
    latest = latest_score_per_skill(await get_user_skill_scores(db, user_id))

    if skill_id is not None:
        skill = await db.get(Skill, skill_id)
        if skill is None:
            raise NotFoundError("Skill", skill_id, code=ErrorCode.SKILL_NOT_FOUND)
        row = latest.get(skill_id)
        if row is None:
            logger.info(f"[GAPS] user={user_id} skill={skill_id} unassessed, using default score")
            return [_gap(skill, default_score, None)]
        if row.score >= low_threshold:
            return []
        return [_gap(skill, row.score, row.last_assessed_at)]

    low_rows = [row for row in latest.values() if row.score < low_threshold]
    if not low_rows:
        return []

    result = await db.execute(select(Skill).where(Skill.id.in_([row.skill_id for row in low_rows])))
    skills = {skill.id: skill for skill in result.scalars().all()}

    gaps = [
        _gap(skills[row.skill_id], row.score, row.last_assessed_at)
        for row in low_rows
        if row.skill_id in skills
    ]
    gaps.sort(key=lambda gap: gap.score)
    logger.info(f"[GAPS] user={user_id} found {len(gaps)} gap(s)")
    return gaps


def _gap(skill: Skill, score: float, last_assessed_at: Optional[datetime]) -> SkillGap:
    return SkillGap(
        skill_id=skill.id,
        skill_name=skill.name,
        subject=skill.subject,
        grade_level=skill.grade_level,
        score=score,
        last_assessed_at=last_assessed_at,
    )
