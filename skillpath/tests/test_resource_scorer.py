"""
Resource ranking tests: component scores, effectiveness and final pick.
"""
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from skillpath.orm import RecommendationHistory, RecommendationPriority, ResourceType, SkillScoreSnapshot
from skillpath.services.resource_scorer import (
    ScoredResource,
    composite_score,
    difficulty_match,
    pick_best,
    recency_score,
    resource_effectiveness,
    select_best_resource,
    type_preference,
)


def scored(resource_id, grade_level, score):
    resource = SimpleNamespace(id=resource_id, grade_level=grade_level)
    return ScoredResource(
        resource=resource, score=score, effectiveness=0.5, difficulty_match=0.5, recency=0.5, preference=0.5
    )


# ============================================================================
# Component scores
# ============================================================================

class TestComponents:

    def test_difficulty_match(self):
        assert difficulty_match(5, 500.0) == pytest.approx(1.0)
        assert difficulty_match(5, 250.0) == pytest.approx(0.5)
        assert difficulty_match(1, 900.0) == 0.0

    def test_recency(self):
        now = datetime(2024, 6, 1)
        assert recency_score(now, now) == pytest.approx(1.0)
        assert recency_score(now - timedelta(days=73), now) == pytest.approx(0.8)
        assert recency_score(now - timedelta(days=400), now) == 0.0
        assert recency_score(None, now) == 0.0

    def test_type_preference(self):
        history = [
            (ResourceType.practice, True),
            (ResourceType.practice, False),
            (ResourceType.video, True),
        ]
        assert type_preference(history, ResourceType.practice) == pytest.approx(0.5)
        assert type_preference(history, ResourceType.video) == pytest.approx(1.0)
        assert type_preference(history, ResourceType.article) == pytest.approx(0.5)
        assert type_preference([], ResourceType.video) == pytest.approx(0.5)

    def test_composite_weights(self):
        assert composite_score(1.0, 1.0, 1.0, 1.0) == pytest.approx(1.0)
        assert composite_score(1.0, 0.0, 0.0, 0.0) == pytest.approx(0.4)
        assert composite_score(0.0, 1.0, 0.0, 0.0) == pytest.approx(0.3)
        assert composite_score(0.0, 0.0, 1.0, 0.0) == pytest.approx(0.2)
        assert composite_score(0.0, 0.0, 0.0, 1.0) == pytest.approx(0.1)


# ============================================================================
# Final pick
# ============================================================================

class TestPickBest:

    def test_nearest_grade_among_top_three(self):
        ranked = [scored(1, 3, 0.9), scored(2, 5, 0.8), scored(3, 7, 0.7), scored(4, 5, 0.1)]
        best = pick_best(ranked, 480.0)
        assert best.resource.id == 2

    def test_fourth_place_never_wins(self):
        ranked = [scored(1, 1, 0.9), scored(2, 2, 0.8), scored(3, 3, 0.7), scored(4, 5, 0.6)]
        best = pick_best(ranked, 500.0)
        assert best.resource.id == 3

    def test_empty(self):
        assert pick_best([], 500.0) is None


# ============================================================================
# Effectiveness (database)
# ============================================================================

class TestEffectiveness:

    @pytest.mark.asyncio
    async def test_no_history_is_neutral(self, session_factory, seed):
        skill = await seed.skill()
        resource = await seed.resource(skill)

        async with session_factory() as db:
            assert await resource_effectiveness(db, resource.id) == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_completion_and_improvement(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        resource = await seed.resource(skill)
        recommended_at = datetime.utcnow() - timedelta(days=10)

        async with session_factory() as db:
            db.add_all([
                RecommendationHistory(
                    user_id=user.id,
                    skill_id=skill.id,
                    resource_id=resource.id,
                    priority=RecommendationPriority.high,
                    user_score=480.0,
                    target_score=600.0,
                    explanation="",
                    is_completed=True,
                    created_at=recommended_at,
                ),
                SkillScoreSnapshot(
                    user_id=user.id, skill_id=skill.id, score=480.0,
                    recorded_at=recommended_at - timedelta(days=1)
                ),
                SkillScoreSnapshot(
                    user_id=user.id, skill_id=skill.id, score=530.0,
                    recorded_at=recommended_at + timedelta(days=1)
                ),
                SkillScoreSnapshot(
                    user_id=user.id, skill_id=skill.id, score=700.0,
                    recorded_at=recommended_at + timedelta(days=5)
                ),
            ])
            await db.commit()

        async with session_factory() as db:
            effectiveness = await resource_effectiveness(db, resource.id)

        # 0.6 * 1.0 completion + 0.4 * (50 / 100) improvement
        assert effectiveness == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_select_best_prefers_matching_grade(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        easy = await seed.resource(skill, title="Easy", grade_level=2)
        matched = await seed.resource(skill, title="Matched", grade_level=4)

        async with session_factory() as db:
            best = await select_best_resource(db, user.id, 420.0, [easy, matched])

        assert best.resource.id == matched.id
