"""
skillpath/services/resource_store.py
Learning resources: candidate lookup, AI resource creation and retention
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from skillpath.config.settings import RecommendationSettings
from skillpath.orm.recommendation import (
    RecommendationHistory,
    RecommendationResource,
    ResourceType,
    resource_skills,
)
from skillpath.orm.skill import Skill

logger = logging.getLogger(__name__)

AI_RESOURCE_MINUTES = 15


async def get_candidate_resources(
    db: AsyncSession,
    skill_id: int,
    grade_level: Optional[int],
    resource_type: Optional[ResourceType] = None,
    exclude_ids: Iterable[int] = (),
    limit: int = RecommendationSettings.MAX_CANDIDATES
) -> List[RecommendationResource]:
    """
    Curated resources linked to a skill, newest first.

    resource_type filters unless it is None or personalized.
    """
    query = (
        select(RecommendationResource)
        .join(resource_skills, resource_skills.c.resource_id == RecommendationResource.id)
        .where(
            resource_skills.c.skill_id == skill_id,
            RecommendationResource.is_ai_generated.is_(False)
        )
    )
    if grade_level is not None:
        query = query.where(RecommendationResource.grade_level == grade_level)
    if resource_type is not None and resource_type != ResourceType.personalized:
        query = query.where(RecommendationResource.resource_type == resource_type)

    excluded = list(exclude_ids)
    if excluded:
        query = query.where(RecommendationResource.id.notin_(excluded))

    query = query.order_by(RecommendationResource.created_at.desc(), RecommendationResource.id.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().unique().all())


async def get_latest_ai_resource(db: AsyncSession, skill_id: int) -> Optional[RecommendationResource]:
    result = await db.execute(
        select(RecommendationResource)
        .join(resource_skills, resource_skills.c.resource_id == RecommendationResource.id)
        .where(
            resource_skills.c.skill_id == skill_id,
            RecommendationResource.is_ai_generated.is_(True)
        )
        .order_by(RecommendationResource.created_at.desc(), RecommendationResource.id.desc())
        .limit(1)
    )
    return result.scalars().first()


async def get_resource(db: AsyncSession, resource_id: int) -> Optional[RecommendationResource]:
    return await db.get(RecommendationResource, resource_id)


async def create_ai_resource(
    db: AsyncSession,
    skill: Skill,
    title: str,
    description: str,
    url: str,
    resource_type: ResourceType,
    grade_level: Optional[int] = None
) -> RecommendationResource:
    resource = RecommendationResource(
        title=title,
        description=description,
        url=url,
        resource_type=resource_type,
        estimated_time_minutes=AI_RESOURCE_MINUTES,
        grade_level=grade_level if grade_level is not None else skill.grade_level,
        tags=["ai-generated", skill.name],
        is_ai_generated=True,
        created_at=datetime.utcnow(),
    )
    resource.related_skills = [skill]
    db.add(resource)
    await db.flush()
    logger.info(f"[AI RESOURCE] created resource={resource.id} skill={skill.id} title='{title[:60]}'")
    return resource


async def cleanup_ai_resources(
    db: AsyncSession,
    skill_id: int,
    max_per_skill: int = RecommendationSettings.MAX_AI_RESOURCES_PER_SKILL,
    older_than_days: int = RecommendationSettings.AI_RESOURCE_CLEANUP_DAYS,
    now: Optional[datetime] = None
) -> int:
    """
    Enforce the per-skill AI resource cap.

    Keeps the newest max_per_skill resources; older surplus rows past the
    age cutoff are deleted and history rows pointing at them are detached.
    Returns the number of deleted resources.
    """
    cutoff = (now or datetime.utcnow()) - timedelta(days=older_than_days)
    result = await db.execute(
        select(RecommendationResource)
        .join(resource_skills, resource_skills.c.resource_id == RecommendationResource.id)
        .where(
            resource_skills.c.skill_id == skill_id,
            RecommendationResource.is_ai_generated.is_(True)
        )
        .order_by(RecommendationResource.created_at.desc(), RecommendationResource.id.desc())
    )
    resources = list(result.scalars().unique().all())
    surplus = [r for r in resources[max_per_skill:] if r.created_at < cutoff]
    if not surplus:
        return 0

    surplus_ids = [r.id for r in surplus]
    await db.execute(
        update(RecommendationHistory)
        .where(RecommendationHistory.resource_id.in_(surplus_ids))
        .values(resource_id=None)
    )
    for resource in surplus:
        await db.delete(resource)
    await db.flush()

    logger.info(f"[AI RESOURCE] cleanup skill={skill_id} deleted={len(surplus_ids)}")
    return len(surplus_ids)
