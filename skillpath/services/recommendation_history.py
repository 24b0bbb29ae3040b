"""
skillpath/services/recommendation_history.py
Recommendation log queries
"""
from datetime import datetime
from typing import List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skillpath.orm.recommendation import (
    RecommendationHistory,
    RecommendationPriority,
    RecommendationResource,
    ResourceType,
)


async def get_completed_resource_ids(db: AsyncSession, user_id: int, skill_id: int) -> Set[int]:
    result = await db.execute(
        select(RecommendationHistory.resource_id).where(
            RecommendationHistory.user_id == user_id,
            RecommendationHistory.skill_id == skill_id,
            RecommendationHistory.is_completed.is_(True),
            RecommendationHistory.resource_id.isnot(None)
        )
    )
    return set(result.scalars().all())


async def get_recently_recommended_ids(
    db: AsyncSession,
    user_id: int,
    skill_id: int,
    since: datetime
) -> Set[int]:
    """Resources recommended to the user for this skill at or after since."""
    result = await db.execute(
        select(RecommendationHistory.resource_id).where(
            RecommendationHistory.user_id == user_id,
            RecommendationHistory.skill_id == skill_id,
            RecommendationHistory.created_at >= since,
            RecommendationHistory.resource_id.isnot(None)
        )
    )
    return set(result.scalars().all())


async def get_resource_history(db: AsyncSession, resource_id: int) -> List[RecommendationHistory]:
    result = await db.execute(
        select(RecommendationHistory).where(RecommendationHistory.resource_id == resource_id)
    )
    return list(result.scalars().all())


async def get_user_type_history(db: AsyncSession, user_id: int) -> List[Tuple[ResourceType, bool]]:
    """(resource type, completed) for every logged recommendation of a user."""
    result = await db.execute(
        select(RecommendationResource.resource_type, RecommendationHistory.is_completed)
        .join(RecommendationResource, RecommendationResource.id == RecommendationHistory.resource_id)
        .where(RecommendationHistory.user_id == user_id)
    )
    return [(row[0], bool(row[1])) for row in result.all()]


async def log_recommendation(
    db: AsyncSession,
    user_id: int,
    skill_id: int,
    resource_id: Optional[int],
    priority: RecommendationPriority,
    user_score: float,
    target_score: float,
    explanation: str,
    is_ai_generated: bool
) -> RecommendationHistory:
    entry = RecommendationHistory(
        user_id=user_id,
        skill_id=skill_id,
        resource_id=resource_id,
        priority=priority,
        user_score=user_score,
        target_score=target_score,
        explanation=explanation,
        is_completed=False,
        is_ai_generated=is_ai_generated,
        created_at=datetime.utcnow(),
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_history_entry(
    db: AsyncSession,
    user_id: int,
    history_id: int,
    for_update: bool = False
) -> Optional[RecommendationHistory]:
    query = select(RecommendationHistory).where(
        RecommendationHistory.id == history_id,
        RecommendationHistory.user_id == user_id
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_user_history(
    db: AsyncSession,
    user_id: int,
    skill_id: Optional[int] = None,
    limit: int = 20,
    offset: int = 0
) -> List[RecommendationHistory]:
    query = select(RecommendationHistory).where(RecommendationHistory.user_id == user_id)
    if skill_id is not None:
        query = query.where(RecommendationHistory.skill_id == skill_id)
    query = query.order_by(
        RecommendationHistory.created_at.desc(), RecommendationHistory.id.desc()
    ).offset(offset).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())
