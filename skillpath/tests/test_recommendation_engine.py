"""
RecommendationEngine integration tests.

Coverage:
- AI path: new resource, cache hit, reuse across learners
- Fallback to a standard resource on AI failure
- A storage failure confined to one gap
- Cooldown and completed-resource exclusion, type filter
- Progress and summary
- Completion marking, history paging, AI resource retention
- Best-effort history logging
"""
import json
from datetime import datetime, timedelta

import pytest
from unittest.mock import AsyncMock
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from skillpath.ai.provider import TextGenerationProvider
from skillpath.ai.recommendation_client import AiRecommendationClient
from skillpath.errors import AiGenerationError, ErrorCode, NotFoundError
from skillpath.orm import (
    RecommendationHistory,
    RecommendationPriority,
    RecommendationResource,
    ResourceType,
)
from skillpath.services import recommendation_history, resource_store
from skillpath.services.ai_metrics import AiMetrics
from skillpath.services.recommendation_engine import (
    SUMMARY_CRITICAL,
    SUMMARY_DEFAULT,
    SUMMARY_EMPTY,
    RecommendationEngine,
    ai_cache_key,
    overall_progress,
    priority_for_score,
)

AI_PAYLOAD = {
    "explanation": "Fraction strips build intuition for equivalence.",
    "resourceTitle": "Fraction Strips Workshop",
    "resourceDescription": "Hands-on fraction strip exercises.",
    "resourceType": "interactive",
    "resourceUrl": "https://www.khanacademy.org/math/fractions",
    "priority": "critical",
}


class ScriptedProvider(TextGenerationProvider):
    name = "scripted"

    def __init__(self, *responses):
        self.calls = AsyncMock(side_effect=list(responses))

    def is_configured(self) -> bool:
        return True

    async def generate_text(self, prompt):
        return await self.calls(prompt)


def make_engine(session_factory, provider=None, cache_backend=None, metrics=None, enabled=True):
    metrics = metrics or AiMetrics()
    client = AiRecommendationClient(
        provider, metrics, enabled=enabled, retry_attempts=3, retry_delay=1.0, sleep=AsyncMock()
    )
    return RecommendationEngine(session_factory, client, metrics, cache_backend=cache_backend)


async def add_history(session_factory, user, skill, resource, days_ago, completed):
    async with session_factory() as db:
        db.add(RecommendationHistory(
            user_id=user.id,
            skill_id=skill.id,
            resource_id=resource.id,
            priority=RecommendationPriority.high,
            user_score=500.0,
            target_score=600.0,
            explanation="",
            is_completed=completed,
            created_at=datetime.utcnow() - timedelta(days=days_ago),
        ))
        await db.commit()


# ============================================================================
# Pure helpers
# ============================================================================

class TestHelpers:

    def test_priority_thresholds(self):
        assert priority_for_score(449.9) == RecommendationPriority.critical
        assert priority_for_score(450.0) == RecommendationPriority.high
        assert priority_for_score(549.9) == RecommendationPriority.high
        assert priority_for_score(550.0) == RecommendationPriority.medium

    def test_overall_progress(self):
        assert overall_progress([]) == 25
        assert overall_progress([420.0, 500.0]) == 15
        assert overall_progress([350.0]) == 0
        assert overall_progress([900.0]) == 100


# ============================================================================
# AI path
# ============================================================================

class TestAiPath:

    @pytest.mark.asyncio
    async def test_transient_ai_failure_falls_back_to_standard(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        curated = await seed.resource(skill, title="Fraction basics")
        await seed.score(user, skill, 420.0)
        provider = ScriptedProvider(
            AiGenerationError(AiGenerationError.PROVIDER_ERROR, "503"),
            AiGenerationError(AiGenerationError.TIMEOUT, "timeout"),
            AiGenerationError(AiGenerationError.PROVIDER_ERROR, "503"),
        )
        engine = make_engine(session_factory, provider)

        result = await engine.get_recommendations(user.id)

        assert len(result.recommendations) == 1
        recommendation = result.recommendations[0]
        assert recommendation.ai_generated is False
        assert recommendation.priority == "critical"
        assert recommendation.target_score == 600.0
        assert recommendation.score == 420.0
        assert recommendation.resources[0].id == curated.id
        assert recommendation.id.startswith(f"std-{skill.id}-")
        assert recommendation.history_id is not None
        assert result.summary == SUMMARY_CRITICAL
        assert provider.calls.await_count == 3

        metrics = engine.get_ai_metrics()
        assert metrics.failed_requests == 1
        assert metrics.error_metrics.total_errors == 3

    @pytest.mark.asyncio
    async def test_new_ai_resource_then_cache_hit(self, session_factory, seed, cache_backend, ai_metrics):
        user = await seed.user(grade_level=5)
        skill = await seed.skill(grade_level=4)
        await seed.score(user, skill, 420.0)
        provider = ScriptedProvider(json.dumps(AI_PAYLOAD))
        engine = make_engine(session_factory, provider, cache_backend=cache_backend, metrics=ai_metrics)

        first = (await engine.get_recommendations(user.id)).recommendations[0]

        assert first.ai_generated is True
        assert first.id.startswith("ai-new-")
        assert first.target_score == 650.0
        assert first.explanation == AI_PAYLOAD["explanation"]
        resource = first.resources[0]
        assert resource.title == "Fraction Strips Workshop"
        assert resource.type == "interactive"
        assert resource.estimated_time_minutes == 15
        assert resource.tags == ["ai-generated", "Fractions"]
        assert await cache_backend.get(ai_cache_key(user.id, skill.id)) is not None
        assert ai_metrics.snapshot()["cache_hits"] == 0

        async with session_factory() as db:
            stored = await db.get(RecommendationResource, resource.id)
        assert stored.grade_level == 5

        second = (await engine.get_recommendations(user.id)).recommendations[0]

        assert second.id == first.id
        assert second.resources[0].id == resource.id
        assert second.history_id is not None
        assert second.history_id != first.history_id
        assert provider.calls.await_count == 1
        assert ai_metrics.snapshot()["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_other_learner_reuses_existing_ai_resource(self, session_factory, seed, cache_backend):
        first_user = await seed.user()
        second_user = await seed.user()
        skill = await seed.skill()
        await seed.score(first_user, skill, 420.0)
        await seed.score(second_user, skill, 410.0)
        provider = ScriptedProvider(json.dumps(AI_PAYLOAD))
        engine = make_engine(session_factory, provider, cache_backend=cache_backend)

        generated = (await engine.get_recommendations(first_user.id)).recommendations[0]
        reused = (await engine.get_recommendations(second_user.id)).recommendations[0]

        resource_id = generated.resources[0].id
        assert reused.id == f"ai-reuse-{resource_id}"
        assert reused.ai_generated is True
        assert reused.target_score == 600.0
        assert reused.resources[0].id == resource_id
        assert provider.calls.await_count == 1

    @pytest.mark.asyncio
    async def test_cache_entry_for_removed_resource_is_a_miss(
        self, session_factory, seed, cache_backend, ai_metrics
    ):
        user = await seed.user()
        skill = await seed.skill()
        await seed.score(user, skill, 420.0)
        provider = ScriptedProvider(json.dumps(AI_PAYLOAD), json.dumps(AI_PAYLOAD))
        engine = make_engine(session_factory, provider, cache_backend=cache_backend, metrics=ai_metrics)

        first = (await engine.get_recommendations(user.id)).recommendations[0]
        async with session_factory() as db:
            await db.execute(
                update(RecommendationHistory)
                .where(RecommendationHistory.resource_id == first.resources[0].id)
                .values(resource_id=None)
            )
            await db.delete(await db.get(RecommendationResource, first.resources[0].id))
            await db.commit()

        second = (await engine.get_recommendations(user.id)).recommendations[0]

        assert second.id.startswith("ai-new-")
        assert provider.calls.await_count == 2
        assert ai_metrics.snapshot()["cache_hits"] == 0

    @pytest.mark.asyncio
    async def test_personalized_type_uses_ai_for_non_critical_score(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        await seed.score(user, skill, 500.0)
        provider = ScriptedProvider(json.dumps({**AI_PAYLOAD, "priority": "high"}))
        engine = make_engine(session_factory, provider)

        result = await engine.get_recommendations(user.id, resource_type=ResourceType.personalized)

        assert result.recommendations[0].ai_generated is True
        assert result.recommendations[0].priority == "high"

    @pytest.mark.asyncio
    async def test_disabled_ai_goes_straight_to_standard(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        curated = await seed.resource(skill)
        await seed.score(user, skill, 420.0)
        provider = ScriptedProvider(json.dumps(AI_PAYLOAD))
        engine = make_engine(session_factory, provider, enabled=False)

        result = await engine.get_recommendations(user.id)

        assert result.recommendations[0].resources[0].id == curated.id
        assert provider.calls.await_count == 0


# ============================================================================
# Standard path
# ============================================================================

class TestStandardPath:

    @pytest.mark.asyncio
    async def test_cooldown_excludes_recent_recommendations(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        first = await seed.resource(skill, title="Set one")
        second = await seed.resource(skill, title="Set two")
        await seed.score(user, skill, 500.0)
        engine = make_engine(session_factory)

        a = (await engine.get_recommendations(user.id)).recommendations[0]
        b = (await engine.get_recommendations(user.id)).recommendations[0]
        third = await engine.get_recommendations(user.id)

        assert a.priority == "high"
        assert {a.resources[0].id, b.resources[0].id} == {first.id, second.id}
        assert third.recommendations == []
        assert third.summary == SUMMARY_EMPTY

    @pytest.mark.asyncio
    async def test_completed_excluded_old_uncompleted_allowed(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        done = await seed.resource(skill, title="Done")
        stale = await seed.resource(skill, title="Stale")
        await seed.score(user, skill, 500.0)
        await add_history(session_factory, user, skill, done, days_ago=60, completed=True)
        await add_history(session_factory, user, skill, stale, days_ago=60, completed=False)
        engine = make_engine(session_factory)

        result = await engine.get_recommendations(user.id)

        assert [r.resources[0].id for r in result.recommendations] == [stale.id]
        assert result.summary == SUMMARY_DEFAULT

    @pytest.mark.asyncio
    async def test_type_filter(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        await seed.resource(skill, title="Worksheet", resource_type=ResourceType.worksheet)
        video = await seed.resource(skill, title="Video", resource_type=ResourceType.video)
        await seed.score(user, skill, 500.0)
        engine = make_engine(session_factory)

        result = await engine.get_recommendations(user.id, resource_type=ResourceType.video)

        assert result.recommendations[0].resources[0].id == video.id

    @pytest.mark.asyncio
    async def test_grade_mismatch_and_ai_resources_are_not_candidates(self, session_factory, seed):
        user = await seed.user(grade_level=5)
        skill = await seed.skill()
        await seed.resource(skill, title="Upper grade", grade_level=8)
        await seed.resource(skill, title="Generated", is_ai_generated=True)
        await seed.score(user, skill, 500.0)
        engine = make_engine(session_factory)

        result = await engine.get_recommendations(user.id)

        assert result.recommendations == []

    @pytest.mark.asyncio
    async def test_gaps_ordered_and_limited(self, session_factory, seed):
        user = await seed.user()
        fractions = await seed.skill("Fractions")
        decimals = await seed.skill("Decimals")
        await seed.resource(fractions, title="Fractions set")
        await seed.resource(decimals, title="Decimals set")
        await seed.score(user, fractions, 500.0)
        await seed.score(user, decimals, 480.0)
        engine = make_engine(session_factory)

        result = await engine.get_recommendations(user.id)
        limited = await engine.get_recommendations(user.id, limit=1)

        assert [r.skill_name for r in result.recommendations] == ["Decimals", "Fractions"]
        assert result.overall_progress == round((490.0 - 400.0) / 4)
        assert len(limited.recommendations) <= 1

    @pytest.mark.asyncio
    async def test_storage_failure_in_one_gap_keeps_the_others(self, session_factory, seed, monkeypatch):
        user = await seed.user()
        fractions = await seed.skill("Fractions")
        decimals = await seed.skill("Decimals")
        kept = await seed.resource(fractions, title="Fractions set")
        await seed.resource(decimals, title="Decimals set")
        await seed.score(user, fractions, 500.0)
        await seed.score(user, decimals, 510.0)
        original = resource_store.get_candidate_resources

        async def failing_for_decimals(db, skill_id, *args, **kwargs):
            if skill_id == decimals.id:
                raise OperationalError("SELECT", {}, Exception("database is locked"))
            return await original(db, skill_id, *args, **kwargs)

        monkeypatch.setattr(resource_store, "get_candidate_resources", failing_for_decimals)
        engine = make_engine(session_factory)

        result = await engine.get_recommendations(user.id)

        assert [r.skill_id for r in result.recommendations] == [fractions.id]
        assert result.recommendations[0].resources[0].id == kept.id

    @pytest.mark.asyncio
    async def test_no_gaps(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        await seed.score(user, skill, 600.0)
        engine = make_engine(session_factory)

        result = await engine.get_recommendations(user.id)

        assert result.recommendations == []
        assert result.summary == SUMMARY_EMPTY
        assert result.overall_progress == 50

    @pytest.mark.asyncio
    async def test_unknown_user(self, session_factory):
        engine = make_engine(session_factory)

        with pytest.raises(NotFoundError) as exc_info:
            await engine.get_recommendations(9999)

        assert exc_info.value.code == ErrorCode.USER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_history_logging_failure_is_swallowed(self, session_factory, seed, monkeypatch):
        user = await seed.user()
        skill = await seed.skill()
        curated = await seed.resource(skill)
        await seed.score(user, skill, 500.0)
        monkeypatch.setattr(
            recommendation_history, "log_recommendation", AsyncMock(side_effect=RuntimeError("disk full"))
        )
        engine = make_engine(session_factory)

        result = await engine.get_recommendations(user.id)

        assert result.recommendations[0].resources[0].id == curated.id
        assert result.recommendations[0].history_id is None


# ============================================================================
# History and maintenance
# ============================================================================

class TestHistory:

    @pytest.mark.asyncio
    async def test_mark_completed_is_owned_and_idempotent(self, session_factory, seed):
        user = await seed.user()
        other = await seed.user()
        skill = await seed.skill()
        await seed.resource(skill)
        await seed.score(user, skill, 500.0)
        engine = make_engine(session_factory)
        history_id = (await engine.get_recommendations(user.id)).recommendations[0].history_id

        with pytest.raises(NotFoundError) as exc_info:
            await engine.mark_recommendation_completed(other.id, history_id)
        assert exc_info.value.code == ErrorCode.RECOMMENDATION_NOT_FOUND

        first = await engine.mark_recommendation_completed(user.id, history_id, was_helpful=True)
        again = await engine.mark_recommendation_completed(user.id, history_id, was_helpful=False)

        assert first.is_completed is True
        assert first.was_helpful is True
        assert again.completed_at == first.completed_at
        assert again.was_helpful is True

    @pytest.mark.asyncio
    async def test_history_newest_first(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        old = await seed.resource(skill, title="Old")
        new = await seed.resource(skill, title="New")
        await add_history(session_factory, user, skill, old, days_ago=10, completed=False)
        await add_history(session_factory, user, skill, new, days_ago=1, completed=False)
        engine = make_engine(session_factory)

        entries = await engine.get_recommendation_history(user.id)
        paged = await engine.get_recommendation_history(user.id, limit=1, offset=1)

        assert [e.resource_id for e in entries] == [new.id, old.id]
        assert [e.resource_id for e in paged] == [old.id]

    @pytest.mark.asyncio
    async def test_cleanup_keeps_newest_ten(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        now = datetime.utcnow()
        oldest = await seed.resource(
            skill, title="AI 0", is_ai_generated=True, created_at=now - timedelta(days=120)
        )
        await seed.resource(skill, title="AI 1", is_ai_generated=True, created_at=now - timedelta(days=100))
        for i in range(2, 12):
            await seed.resource(skill, title=f"AI {i}", is_ai_generated=True, created_at=now - timedelta(days=12 - i))
        await add_history(session_factory, user, skill, oldest, days_ago=119, completed=True)
        engine = make_engine(session_factory)

        deleted = await engine.cleanup_ai_resources(skill.id)

        assert deleted == 2
        async with session_factory() as db:
            remaining = await db.execute(
                select(func.count(RecommendationResource.id)).where(RecommendationResource.is_ai_generated.is_(True))
            )
            assert remaining.scalar_one() == 10
            history = (await db.execute(select(RecommendationHistory))).scalars().all()
            assert [h.resource_id for h in history] == [None]

    @pytest.mark.asyncio
    async def test_cleanup_spares_young_surplus(self, session_factory, seed):
        skill = await seed.skill()
        now = datetime.utcnow()
        for i in range(12):
            await seed.resource(skill, title=f"AI {i}", is_ai_generated=True, created_at=now - timedelta(days=i))
        engine = make_engine(session_factory)

        assert await engine.cleanup_ai_resources(skill.id) == 0
