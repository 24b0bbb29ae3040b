"""
Shared fixtures: a throwaway SQLite database per test and seed helpers.
"""
import random
from datetime import datetime
from typing import List, Optional

import pytest
import pytest_asyncio

from skillpath.database import build_engine, build_session_factory
from skillpath.orm import (
    AssessmentSkillScore,
    Question,
    QuestionStatus,
    QuestionType,
    RecommendationResource,
    ResourceType,
    Skill,
    User,
)
from skillpath.orm.base import Base
from skillpath.services.ai_metrics import AiMetrics
from skillpath.services.result_cache import InMemoryCacheBackend, ResultCache
from skillpath.services.session_engine import SessionEngine


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'skillpath_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def cache_backend():
    return InMemoryCacheBackend()


@pytest.fixture
def result_cache(cache_backend):
    return ResultCache(cache_backend)


@pytest.fixture
def session_engine(session_factory, result_cache):
    return SessionEngine(session_factory, result_cache, rng=random.Random(7))


@pytest.fixture
def ai_metrics():
    return AiMetrics()


class Seeder:
    """Inserts fixture rows, each call in its own committed transaction."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._emails = 0

    async def _add(self, *rows):
        async with self.session_factory() as db:
            db.add_all(rows)
            await db.commit()
        return rows

    async def user(self, grade_level: Optional[int] = 5) -> User:
        self._emails += 1
        (user,) = await self._add(User(
            email=f"learner{self._emails}@example.com",
            full_name=f"Learner {self._emails}",
            grade_level=grade_level,
        ))
        return user

    async def skill(self, name: str = "Fractions", grade_level: int = 5, subject: str = "Math") -> Skill:
        (skill,) = await self._add(Skill(
            name=name,
            subject=subject,
            description=f"{name} practice",
            grade_level=grade_level,
        ))
        return skill

    async def questions(self, skill: Skill, count: int, grade_level: int = 5) -> List[Question]:
        rows = [
            Question(
                text=f"{skill.name} question {i}",
                question_type=QuestionType.mcq,
                options={"A": "one", "B": "two", "C": "three", "D": "four"},
                correct_answer="A",
                grade_level=grade_level,
                primary_skill_id=skill.id,
                status=QuestionStatus.active,
            )
            for i in range(count)
        ]
        return list(await self._add(*rows))

    async def resource(
        self,
        skill: Skill,
        title: str = "Practice set",
        grade_level: int = 5,
        resource_type: ResourceType = ResourceType.practice,
        is_ai_generated: bool = False,
        created_at: Optional[datetime] = None
    ) -> RecommendationResource:
        async with self.session_factory() as db:
            db_skill = await db.get(Skill, skill.id)
            resource = RecommendationResource(
                title=title,
                description=f"{title} for {skill.name}",
                url=f"https://learn.example.com/{title.lower().replace(' ', '-')}",
                resource_type=resource_type,
                estimated_time_minutes=20,
                grade_level=grade_level,
                tags=[skill.name],
                is_ai_generated=is_ai_generated,
                created_at=created_at or datetime.utcnow(),
                related_skills=[db_skill],
            )
            db.add(resource)
            await db.commit()
        return resource

    async def score(self, user: User, skill: Skill, score: float, attempts: int = 5) -> AssessmentSkillScore:
        (row,) = await self._add(AssessmentSkillScore(
            user_id=user.id,
            skill_id=skill.id,
            score=score,
            questions_attempted=attempts,
            last_assessed_at=datetime.utcnow(),
        ))
        return row


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)
