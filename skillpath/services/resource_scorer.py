"""
skillpath/services/resource_scorer.py
Ranking of candidate resources for one skill gap

composite = 0.4 * effectiveness
          + 0.3 * difficulty match
          + 0.2 * recency
          + 0.1 * user type preference

The top three by composite score go to a final tie-break: the resource
whose grade_level * 100 is closest to the learner's score wins.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from skillpath.config.settings import AssessmentSettings, RecommendationSettings
from skillpath.orm.recommendation import RecommendationResource, ResourceType
from skillpath.services.recommendation_history import get_resource_history, get_user_type_history
from skillpath.services.skill_score_store import get_snapshot_score

logger = logging.getLogger(__name__)

EFFECTIVENESS_WEIGHT = 0.4
DIFFICULTY_WEIGHT = 0.3
RECENCY_WEIGHT = 0.2
PREFERENCE_WEIGHT = 0.1

NEUTRAL = 0.5
DIFFICULTY_SPREAD = 500.0
RECENCY_WINDOW_DAYS = 365.0


@dataclass
class ScoredResource:
    resource: RecommendationResource
    score: float
    effectiveness: float
    difficulty_match: float
    recency: float
    preference: float


def difficulty_match(grade_level: int, user_score: float) -> float:
    return max(0.0, 1.0 - abs(grade_level * 100 - user_score) / DIFFICULTY_SPREAD)


def recency_score(created_at: Optional[datetime], now: datetime) -> float:
    if created_at is None:
        return 0.0
    age_days = (now - created_at).total_seconds() / 86400.0
    return max(0.0, 1.0 - age_days / RECENCY_WINDOW_DAYS)


def type_preference(type_history: Sequence[Tuple[ResourceType, bool]], resource_type: ResourceType) -> float:
    """Completion rate of this resource type in the user's history. Neutral without data."""
    if not type_history:
        return NEUTRAL
    of_type = [completed for rtype, completed in type_history if rtype == resource_type]
    if not of_type:
        return NEUTRAL
    return sum(1 for completed in of_type if completed) / len(of_type)


def composite_score(effectiveness: float, difficulty: float, recency: float, preference: float) -> float:
    return (
        EFFECTIVENESS_WEIGHT * effectiveness
        + DIFFICULTY_WEIGHT * difficulty
        + RECENCY_WEIGHT * recency
        + PREFERENCE_WEIGHT * preference
    )


async def resource_effectiveness(
    db: AsyncSession,
    resource_id: int,
    default_score: float = AssessmentSettings.DEFAULT_SCORE
) -> float:
    """
    How well a resource has worked across all learners.

    0.6 * completion rate + 0.4 * average score improvement (clipped to
    0..100 and scaled to 0..1). Improvement per use is the difference
    between the nearest score snapshot after and before the recommendation.
    """
    history = await get_resource_history(db, resource_id)
    if not history:
        return NEUTRAL

    completion_rate = sum(1 for entry in history if entry.is_completed) / len(history)

    improvements = []
    for entry in history:
        before = await get_snapshot_score(db, entry.user_id, entry.skill_id, entry.created_at, before=True)
        after = await get_snapshot_score(db, entry.user_id, entry.skill_id, entry.created_at, before=False)
        before = before if before is not None else default_score
        after = after if after is not None else default_score
        improvements.append(after - before)

    average_improvement = sum(improvements) / len(improvements)
    normalized = min(max(average_improvement, 0.0), 100.0) / 100.0
    return 0.6 * completion_rate + 0.4 * normalized


async def score_resources(
    db: AsyncSession,
    user_id: int,
    user_score: float,
    candidates: Iterable[RecommendationResource],
    now: Optional[datetime] = None
) -> List[ScoredResource]:
    """Score every candidate, best first."""
    now = now or datetime.utcnow()
    type_history = await get_user_type_history(db, user_id)

    scored = []
    for resource in candidates:
        effectiveness = await resource_effectiveness(db, resource.id)
        difficulty = difficulty_match(resource.grade_level, user_score)
        recency = recency_score(resource.created_at, now)
        preference = type_preference(type_history, resource.resource_type)
        scored.append(ScoredResource(
            resource=resource,
            score=composite_score(effectiveness, difficulty, recency, preference),
            effectiveness=effectiveness,
            difficulty_match=difficulty,
            recency=recency,
            preference=preference,
        ))

    scored.sort(key=lambda item: item.score, reverse=True)
    return scored


def pick_best(
    scored: Sequence[ScoredResource],
    user_score: float,
    top_n: int = RecommendationSettings.TOP_CANDIDATES
) -> Optional[ScoredResource]:
    """Among the top_n, the one whose grade level best matches the score."""
    top = list(scored[:top_n])
    if not top:
        return None
    return min(top, key=lambda item: abs(item.resource.grade_level * 100 - user_score))


async def select_best_resource(
    db: AsyncSession,
    user_id: int,
    user_score: float,
    candidates: Iterable[RecommendationResource],
    now: Optional[datetime] = None
) -> Optional[ScoredResource]:
    scored = await score_resources(db, user_id, user_score, candidates, now)
    best = pick_best(scored, user_score)
    if best is not None:
        logger.debug(
            f"[SCORER] user={user_id} picked resource={best.resource.id} "
            f"score={best.score:.3f} of {len(scored)} candidate(s)"
        )
    return best
