"""
skillpath/services/recommendation_engine.py
Personalized resource recommendations for skill gaps

FLOW per gap (gaps run concurrently, one transaction each):
1. AI path when the score is critical or a personalized type is requested:
   per-(user, skill) AI cache -> newest AI resource for the skill -> generate
2. Standard path when the AI path is skipped or fails: ranked curated resources
3. Best-effort history log

An AI failure falls back to the standard path. A storage failure on the
standard path, or a gap with no usable resource, yields no recommendation
for that gap only.
"""
import asyncio
import json
import logging
import time
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import ValidationError

from skillpath.ai.recommendation_client import AiRecommendationClient
from skillpath.config.settings import AssessmentSettings, RecommendationSettings
from skillpath.database import transaction
from skillpath.errors import AiGenerationError, ErrorCode, NotFoundError
from skillpath.orm.recommendation import RecommendationPriority, RecommendationResource, ResourceType
from skillpath.orm.skill import Skill
from skillpath.orm.user import User
from skillpath.schemas.recommendation import (
    AiMetricsOut,
    RecommendationHistoryOut,
    RecommendationOut,
    RecommendationSetOut,
    ResourceOut,
)
from skillpath.services import recommendation_history, resource_store, session_store
from skillpath.services.ai_metrics import AiMetrics
from skillpath.services.gap_analyzer import SkillGap, find_skill_gaps, latest_score_per_skill
from skillpath.services.resource_scorer import select_best_resource
from skillpath.services.result_cache import CacheBackend, serialize_value
from skillpath.services.skill_score_store import get_user_skill_scores

logger = logging.getLogger(__name__)

STANDARD_TARGET_SCORE = 600.0
AI_TARGET_SCORE = 650.0

SUMMARY_DEFAULT = "Here are some recommendations based on your recent performance."
SUMMARY_EMPTY = "No specific recommendations at this time. Keep up the good work!"
SUMMARY_CRITICAL = "You have critical skill gaps that need attention. Focus on these recommendations."


def priority_for_score(
    score: float,
    critical_threshold: float = RecommendationSettings.SKILL_THRESHOLD_CRITICAL,
    low_threshold: float = RecommendationSettings.SKILL_THRESHOLD_LOW
) -> RecommendationPriority:
    if score < critical_threshold:
        return RecommendationPriority.critical
    if score < low_threshold:
        return RecommendationPriority.high
    return RecommendationPriority.medium


def explanation_for(priority: RecommendationPriority, skill_name: str) -> str:
    if priority == RecommendationPriority.critical:
        return f"You seem to be struggling with {skill_name}. Focus on this area to build a stronger foundation."
    if priority == RecommendationPriority.high:
        return f"Improving your skills in {skill_name} is recommended. This resource can help."
    return f"Practice {skill_name} to improve your understanding."


def overall_progress(scores: List[float], default_score: float = AssessmentSettings.DEFAULT_SCORE) -> int:
    """Average latest score mapped from 400..800 onto 0..100."""
    average = sum(scores) / len(scores) if scores else default_score
    return round(min(100.0, max(0.0, (average - 400.0) / 4.0)))


def summary_for(recommendations: List[RecommendationOut]) -> str:
    if not recommendations:
        return SUMMARY_EMPTY
    if any(r.priority == RecommendationPriority.critical.value for r in recommendations):
        return SUMMARY_CRITICAL
    return SUMMARY_DEFAULT


def ai_cache_key(user_id: int, skill_id: int) -> str:
    return f"ai_rec:{user_id}:{skill_id}"


class RecommendationEngine:
    """Turns skill gaps into logged, ranked resource recommendations."""

    def __init__(
        self,
        session_factory,
        ai_client: AiRecommendationClient,
        metrics: AiMetrics,
        cache_backend: Optional[CacheBackend] = None,
        low_threshold: float = RecommendationSettings.SKILL_THRESHOLD_LOW,
        critical_threshold: float = RecommendationSettings.SKILL_THRESHOLD_CRITICAL,
        max_recommendations: int = RecommendationSettings.MAX_RECOMMENDATIONS,
        cooldown_days: int = RecommendationSettings.RESOURCE_COOLDOWN_DAYS,
        max_candidates: int = RecommendationSettings.MAX_CANDIDATES,
        ai_cache_ttl: int = RecommendationSettings.AI_CACHE_TTL,
        ai_history_size: int = RecommendationSettings.AI_HISTORY_SIZE,
        default_score: float = AssessmentSettings.DEFAULT_SCORE
    ):
        self._session_factory = session_factory
        self.ai_client = ai_client
        self.metrics = metrics
        self.cache_backend = cache_backend
        self.low_threshold = low_threshold
        self.critical_threshold = critical_threshold
        self.max_recommendations = max_recommendations
        self.cooldown_days = cooldown_days
        self.max_candidates = max_candidates
        self.ai_cache_ttl = ai_cache_ttl
        self.ai_history_size = ai_history_size
        self.default_score = default_score

    # ------------------------------------------------------------------
    # recommendations
    # ------------------------------------------------------------------

    async def get_recommendations(
        self,
        user_id: int,
        skill_id: Optional[int] = None,
        resource_type: Optional[ResourceType] = None,
        limit: Optional[int] = None
    ) -> RecommendationSetOut:
        """
        Recommendations for the user's weakest skills, worst first.

        Raises:
            NotFoundError: user or requested skill missing
        """
        limit = limit or self.max_recommendations
        logger.info(
            f"[RECOMMEND] user={user_id} skill={skill_id} "
            f"type={resource_type.value if resource_type else None} limit={limit}"
        )

        async with transaction(self._session_factory, "load skill gaps") as db:
            user = await db.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id, code=ErrorCode.USER_NOT_FOUND)
            grade_level = user.grade_level

            gaps = await find_skill_gaps(
                db,
                user_id,
                skill_id=skill_id,
                low_threshold=self.low_threshold,
                default_score=self.default_score
            )
            gaps = gaps[:limit]

            latest = latest_score_per_skill(await get_user_skill_scores(db, user_id))
            scores = [row.score for row in latest.values()]

        results = await asyncio.gather(
            *(self._recommend_for_gap(user_id, grade_level, gap, resource_type) for gap in gaps)
        )
        recommendations = [r for r in results if r is not None]

        logger.info(f"[RECOMMEND] user={user_id} gaps={len(gaps)} recommendations={len(recommendations)}")
        return RecommendationSetOut(
            user_id=user_id,
            recommendations=recommendations,
            overall_progress=overall_progress(scores, self.default_score),
            summary=summary_for(recommendations),
            generated_at=datetime.utcnow(),
        )

    async def _recommend_for_gap(
        self,
        user_id: int,
        grade_level: Optional[int],
        gap: SkillGap,
        resource_type: Optional[ResourceType]
    ) -> Optional[RecommendationOut]:
        recommendation = None

        use_ai = gap.score < self.critical_threshold or resource_type == ResourceType.personalized
        if use_ai and self.ai_client.is_enabled():
            try:
                recommendation = await self._ai_recommendation(user_id, grade_level, gap)
            except AiGenerationError as e:
                logger.warning(
                    f"[RECOMMEND] AI path failed user={user_id} skill={gap.skill_id}: "
                    f"{e.code} - {e.message}. Falling back to standard"
                )
            except Exception as e:
                logger.error(
                    f"[RECOMMEND] AI path error user={user_id} skill={gap.skill_id}: "
                    f"{type(e).__name__}: {e}. Falling back to standard"
                )

        if recommendation is None:
            try:
                recommendation = await self._standard_recommendation(user_id, grade_level, gap, resource_type)
            except Exception as e:
                logger.error(
                    f"[RECOMMEND] standard path failed user={user_id} skill={gap.skill_id}: "
                    f"{type(e).__name__}: {e}"
                )
                return None

        if recommendation is None:
            logger.info(f"[RECOMMEND] no resource available user={user_id} skill={gap.skill_id}")
            return None

        recommendation.history_id = await self._log_history(user_id, recommendation)
        return recommendation

    # ------------------------------------------------------------------
    # AI path
    # ------------------------------------------------------------------

    async def _ai_recommendation(
        self,
        user_id: int,
        grade_level: Optional[int],
        gap: SkillGap
    ) -> Optional[RecommendationOut]:
        cached = await self._cached_ai_recommendation(user_id, gap.skill_id)
        if cached is not None:
            return cached

        async with transaction(self._session_factory, "load AI recommendation context") as db:
            skill = await db.get(Skill, gap.skill_id)
            existing = await resource_store.get_latest_ai_resource(db, gap.skill_id)
            if existing is not None:
                logger.info(f"[RECOMMEND] reusing AI resource={existing.id} skill={gap.skill_id}")
                return self._build(gap, existing, f"ai-reuse-{existing.id}", ai_generated=True)

        async with transaction(self._session_factory, "load answer history") as db:
            history = await session_store.get_recent_answers(db, user_id, gap.skill_id, self.ai_history_size)

        generated = await self.ai_client.generate_with_retry(user_id, skill, gap.score, history)

        async with transaction(self._session_factory, "save AI resource") as db:
            skill = await db.get(Skill, gap.skill_id)
            resource = await resource_store.create_ai_resource(
                db,
                skill,
                title=generated.resource_title,
                description=generated.resource_description,
                url=generated.resource_url,
                resource_type=generated.resource_type,
                grade_level=grade_level,
            )
            recommendation = RecommendationOut(
                id=f"ai-new-{resource.id}",
                skill_id=gap.skill_id,
                skill_name=gap.skill_name,
                priority=generated.priority.value,
                score=gap.score,
                target_score=AI_TARGET_SCORE,
                explanation=generated.explanation,
                ai_generated=True,
                resources=[ResourceOut(**resource.to_dict())],
            )

        await self._store_ai_recommendation(user_id, gap.skill_id, recommendation)
        await self._cleanup_best_effort(gap.skill_id)
        return recommendation

    async def _cached_ai_recommendation(self, user_id: int, skill_id: int) -> Optional[RecommendationOut]:
        if self.cache_backend is None:
            return None

        key = ai_cache_key(user_id, skill_id)
        try:
            raw = await self.cache_backend.get(key)
        except Exception as e:
            logger.warning(f"[CACHE] get failed for {key}: {e}")
            return None

        if raw is None:
            self.metrics.record_cache(False)
            return None

        try:
            recommendation = RecommendationOut.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning(f"[CACHE] discarding malformed AI recommendation {key}")
            self.metrics.record_cache(False)
            return None

        async with transaction(self._session_factory, "check cached AI resource") as db:
            resource = await resource_store.get_resource(db, recommendation.resources[0].id)
        if resource is None:
            logger.info(f"[CACHE] AI recommendation {key} points at a removed resource")
            self.metrics.record_cache(False)
            return None

        self.metrics.record_cache(True)
        recommendation.history_id = None
        return recommendation

    async def _store_ai_recommendation(self, user_id: int, skill_id: int, recommendation: RecommendationOut) -> None:
        if self.cache_backend is None:
            return
        key = ai_cache_key(user_id, skill_id)
        try:
            await self.cache_backend.set(
                key, serialize_value(recommendation.model_dump(mode="json")), self.ai_cache_ttl
            )
        except Exception as e:
            logger.warning(f"[CACHE] set failed for {key}: {e}")

    async def _cleanup_best_effort(self, skill_id: int) -> None:
        try:
            await self.cleanup_ai_resources(skill_id)
        except Exception as e:
            logger.error(f"[AI RESOURCE] cleanup failed skill={skill_id}: {e}")

    # ------------------------------------------------------------------
    # standard path
    # ------------------------------------------------------------------

    async def _standard_recommendation(
        self,
        user_id: int,
        grade_level: Optional[int],
        gap: SkillGap,
        resource_type: Optional[ResourceType]
    ) -> Optional[RecommendationOut]:
        async with transaction(self._session_factory, "rank standard resources") as db:
            since = datetime.utcnow() - timedelta(days=self.cooldown_days)
            excluded = await recommendation_history.get_completed_resource_ids(db, user_id, gap.skill_id)
            excluded |= await recommendation_history.get_recently_recommended_ids(
                db, user_id, gap.skill_id, since
            )

            candidates = await resource_store.get_candidate_resources(
                db,
                gap.skill_id,
                grade_level,
                resource_type=resource_type,
                exclude_ids=excluded,
                limit=self.max_candidates
            )
            if not candidates:
                return None

            best = await select_best_resource(db, user_id, gap.score, candidates)
            if best is None:
                return None

            return self._build(
                gap, best.resource, f"std-{gap.skill_id}-{int(time.time() * 1000)}", ai_generated=False
            )

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _build(
        self,
        gap: SkillGap,
        resource: RecommendationResource,
        recommendation_id: str,
        ai_generated: bool
    ) -> RecommendationOut:
        priority = priority_for_score(gap.score, self.critical_threshold, self.low_threshold)
        return RecommendationOut(
            id=recommendation_id,
            skill_id=gap.skill_id,
            skill_name=gap.skill_name,
            priority=priority.value,
            score=gap.score,
            target_score=STANDARD_TARGET_SCORE,
            explanation=explanation_for(priority, gap.skill_name),
            ai_generated=ai_generated,
            resources=[ResourceOut(**resource.to_dict())],
        )

    async def _log_history(self, user_id: int, recommendation: RecommendationOut) -> Optional[int]:
        """Append to the history log. Failures are logged, never raised."""
        try:
            async with transaction(self._session_factory, "log recommendation") as db:
                entry = await recommendation_history.log_recommendation(
                    db,
                    user_id=user_id,
                    skill_id=recommendation.skill_id,
                    resource_id=recommendation.resources[0].id,
                    priority=RecommendationPriority(recommendation.priority),
                    user_score=recommendation.score,
                    target_score=recommendation.target_score,
                    explanation=recommendation.explanation,
                    is_ai_generated=recommendation.ai_generated
                )
                return entry.id
        except Exception as e:
            logger.error(
                f"[RECOMMEND] history logging failed user={user_id} "
                f"skill={recommendation.skill_id}: {e}"
            )
            return None

    # ------------------------------------------------------------------
    # history and maintenance
    # ------------------------------------------------------------------

    async def mark_recommendation_completed(
        self,
        user_id: int,
        history_id: int,
        was_helpful: Optional[bool] = None
    ) -> RecommendationHistoryOut:
        """
        Mark a logged recommendation as completed. Idempotent.

        Raises:
            NotFoundError: no history entry with this id belongs to the user
        """
        async with transaction(self._session_factory, "complete recommendation") as db:
            entry = await recommendation_history.get_history_entry(db, user_id, history_id, for_update=True)
            if entry is None:
                raise NotFoundError(
                    "Recommendation", history_id, code=ErrorCode.RECOMMENDATION_NOT_FOUND
                )

            if entry.is_completed:
                logger.info(f"[RECOMMEND] history={history_id} already completed")
            else:
                entry.is_completed = True
                entry.completed_at = datetime.utcnow()
                entry.was_helpful = was_helpful
                await db.flush()
                logger.info(f"[RECOMMEND] user={user_id} completed history={history_id} helpful={was_helpful}")

            return RecommendationHistoryOut(**entry.to_dict())

    async def get_recommendation_history(
        self,
        user_id: int,
        skill_id: Optional[int] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[RecommendationHistoryOut]:
        async with transaction(self._session_factory, "list recommendation history") as db:
            entries = await recommendation_history.list_user_history(db, user_id, skill_id, limit, offset)
            return [RecommendationHistoryOut(**entry.to_dict()) for entry in entries]

    async def cleanup_ai_resources(self, skill_id: int) -> int:
        async with transaction(self._session_factory, "clean up AI resources") as db:
            return await resource_store.cleanup_ai_resources(db, skill_id)

    def get_ai_metrics(self) -> AiMetricsOut:
        return AiMetricsOut.model_validate(self.metrics.snapshot())
