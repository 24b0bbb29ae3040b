"""
Skill gap detection tests.
"""
import pytest

from skillpath.errors import ErrorCode, NotFoundError
from skillpath.services.gap_analyzer import find_skill_gaps


@pytest.mark.asyncio
async def test_gaps_below_threshold_sorted_worst_first(session_factory, seed):
    user = await seed.user()
    fractions = await seed.skill("Fractions")
    decimals = await seed.skill("Decimals")
    geometry = await seed.skill("Geometry")
    ratios = await seed.skill("Ratios")
    await seed.score(user, fractions, 500.0)
    await seed.score(user, decimals, 420.0)
    await seed.score(user, geometry, 600.0)
    await seed.score(user, ratios, 550.0)

    async with session_factory() as db:
        gaps = await find_skill_gaps(db, user.id)

    assert [gap.skill_name for gap in gaps] == ["Decimals", "Fractions"]
    assert [gap.score for gap in gaps] == [420.0, 500.0]
    assert gaps[0].subject == "Math"


@pytest.mark.asyncio
async def test_no_scores_means_no_gaps(session_factory, seed):
    user = await seed.user()

    async with session_factory() as db:
        assert await find_skill_gaps(db, user.id) == []


@pytest.mark.asyncio
async def test_scores_of_other_users_are_ignored(session_factory, seed):
    user = await seed.user()
    other = await seed.user()
    skill = await seed.skill()
    await seed.score(other, skill, 300.0)

    async with session_factory() as db:
        assert await find_skill_gaps(db, user.id) == []


class TestRequestedSkill:

    @pytest.mark.asyncio
    async def test_unknown_skill(self, session_factory, seed):
        user = await seed.user()

        async with session_factory() as db:
            with pytest.raises(NotFoundError) as exc_info:
                await find_skill_gaps(db, user.id, skill_id=9999)

        assert exc_info.value.code == ErrorCode.SKILL_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unassessed_skill_uses_default_score(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()

        async with session_factory() as db:
            gaps = await find_skill_gaps(db, user.id, skill_id=skill.id)

        assert len(gaps) == 1
        assert gaps[0].skill_id == skill.id
        assert gaps[0].score == 500.0
        assert gaps[0].last_assessed_at is None

    @pytest.mark.asyncio
    async def test_proficient_skill_has_no_gap(self, session_factory, seed):
        user = await seed.user()
        skill = await seed.skill()
        weak = await seed.skill("Decimals")
        await seed.score(user, skill, 620.0)
        await seed.score(user, weak, 410.0)

        async with session_factory() as db:
            assert await find_skill_gaps(db, user.id, skill_id=skill.id) == []
            only_weak = await find_skill_gaps(db, user.id, skill_id=weak.id)

        assert [gap.skill_id for gap in only_weak] == [weak.id]
