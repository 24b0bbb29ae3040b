"""
skillpath/services/session_engine.py
Assessment session lifecycle

FLOW:
start_session -> get_next_question / submit_answer (repeat) -> get_session_result

Every operation runs in a single transaction. Sessions and skill scores are
locked with SELECT ... FOR UPDATE before they are modified. Cache
invalidation happens only after the answer transaction has committed.
"""
import logging
import random
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from skillpath.config.settings import AssessmentSettings
from skillpath.database import transaction
from skillpath.errors import (
    BadRequestError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    InternalError,
    NotFoundError,
)
from skillpath.orm.assessment_session import AssessmentSession, SessionStatus
from skillpath.orm.skill import Skill, SkillStatus
from skillpath.orm.user import User
from skillpath.schemas.assessment import (
    AnswerResultOut,
    NextQuestionOut,
    QuestionPublic,
    SessionOut,
    SessionResultOut,
)
from skillpath.services import question_pool, session_store, skill_score_store
from skillpath.services.answer_checkers import check_answer
from skillpath.services.result_cache import ResultCache
from skillpath.services.scoring import session_summary

logger = logging.getLogger(__name__)


class SessionEngine:
    """Owns assessment sessions: selection, answers, scoring and completion."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: ResultCache,
        rng: Optional[random.Random] = None,
        selection_count: int = AssessmentSettings.SELECTION_COUNT,
        pool_multiplier: int = AssessmentSettings.POOL_MULTIPLIER,
        default_score: float = AssessmentSettings.DEFAULT_SCORE,
        initial_k: float = AssessmentSettings.INITIAL_K,
        decay_rate: float = AssessmentSettings.DECAY_RATE
    ):
        self._session_factory = session_factory
        self.cache = cache
        self.rng = rng or random.Random()
        self.selection_count = selection_count
        self.pool_multiplier = pool_multiplier
        self.default_score = default_score
        self.initial_k = initial_k
        self.decay_rate = decay_rate

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    async def start_session(
        self,
        user_id: int,
        grade_level: Optional[int] = None,
        skill_id: Optional[int] = None
    ) -> SessionOut:
        """
        Create a session with a fixed, shuffled selection of questions.

        Raises:
            NotFoundError: user or skill missing
            BadRequestError: no grade level, or too few active questions
        """
        logger.info(f"[SESSION START] user={user_id} grade={grade_level} skill={skill_id}")

        async with transaction(self._session_factory, "start assessment session") as db:
            user = await db.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id, code=ErrorCode.USER_NOT_FOUND)

            grade = grade_level if grade_level is not None else user.grade_level
            if grade is None:
                raise BadRequestError(
                    "Grade level is required: none given and none set on the user profile",
                    code=ErrorCode.GRADE_LEVEL_REQUIRED
                )

            skill = await self._resolve_skill(db, grade, skill_id)

            pool = await question_pool.fetch_candidate_pool(
                db, grade, skill.id, self.selection_count * self.pool_multiplier
            )
            if len(pool) < self.selection_count:
                logger.warning(
                    f"[SESSION START] insufficient questions grade={grade} skill={skill.id}: "
                    f"{len(pool)} < {self.selection_count}"
                )
                raise BadRequestError(
                    "Not enough questions available for this skill and grade",
                    code=ErrorCode.INSUFFICIENT_QUESTIONS,
                    details={"available": len(pool), "required": self.selection_count}
                )

            candidate_ids = [question.id for question in pool]
            self.rng.shuffle(candidate_ids)
            selected = candidate_ids[:self.selection_count]

            session = await session_store.create_session(db, user_id, skill.id, selected)
            result = SessionOut(**session.to_dict())

        logger.info(f"[SESSION START] created session={result.id} user={user_id} skill={result.skill_id}")
        return result

    async def _resolve_skill(self, db: AsyncSession, grade: int, skill_id: Optional[int]) -> Skill:
        if skill_id is not None:
            skill = await db.get(Skill, skill_id)
            if skill is None:
                raise NotFoundError("Skill", skill_id, code=ErrorCode.SKILL_NOT_FOUND)
            return skill

        result = await db.execute(
            select(Skill)
            .where(Skill.grade_level == grade, Skill.status == SkillStatus.active)
            .order_by(Skill.id)
            .limit(1)
        )
        skill = result.scalar_one_or_none()
        if skill is None:
            raise NotFoundError(f"Active skill for grade {grade}", code=ErrorCode.SKILL_NOT_FOUND)
        return skill

    # ------------------------------------------------------------------
    # next question
    # ------------------------------------------------------------------

    async def get_next_question(self, user_id: int, session_id: int) -> NextQuestionOut:
        """
        First unanswered question in session order, or completion.

        Finalizes the session when every question has a response but the
        session was never closed.
        """
        cached = await self._cached(ResultCache.NEXT_QUESTION, user_id, session_id, NextQuestionOut)
        if cached is not None:
            return cached

        generation = await self.cache.generation(ResultCache.NEXT_QUESTION, user_id, session_id)

        async with transaction(self._session_factory, "load next question") as db:
            session = await session_store.get_session(db, session_id)
            self._require_owned(session, user_id, session_id)

            if session.status == SessionStatus.cancelled:
                raise BadRequestError(
                    "Assessment session was cancelled",
                    code=ErrorCode.SESSION_NOT_IN_PROGRESS
                )

            total = len(session.question_ids)
            if session.status == SessionStatus.completed:
                result = NextQuestionOut(
                    session_id=session_id, is_complete=True, answered_count=total, total_questions=total
                )
            else:
                answered = await session_store.get_answered_question_ids(db, session_id)
                unanswered = [qid for qid in session.question_ids if qid not in answered]

                if not unanswered:
                    session = await session_store.get_session(db, session_id, for_update=True)
                    await self._finalize_session(db, session)
                    result = NextQuestionOut(
                        session_id=session_id, is_complete=True, answered_count=total, total_questions=total
                    )
                else:
                    next_id = unanswered[0]
                    question = await question_pool.get_question(db, next_id)
                    if question is None:
                        logger.error(
                            f"[NEXT QUESTION] session={session_id} references missing question={next_id}"
                        )
                        raise InternalError(
                            "Assessment session references a question that no longer exists",
                            code=ErrorCode.DATA_INTEGRITY_ERROR
                        )
                    result = NextQuestionOut(
                        session_id=session_id,
                        is_complete=False,
                        next_question=QuestionPublic(**question.to_public_dict()),
                        answered_count=len(answered),
                        total_questions=total,
                    )

        ttl = self.cache.completed_ttl if result.is_complete else self.cache.next_question_ttl
        await self.cache.put(
            ResultCache.NEXT_QUESTION, user_id, session_id, result.model_dump(mode="json"), ttl, generation
        )
        return result

    # ------------------------------------------------------------------
    # submit
    # ------------------------------------------------------------------

    async def submit_answer(
        self,
        user_id: int,
        session_id: int,
        question_id: int,
        user_response: str
    ) -> AnswerResultOut:
        """
        Record one answer, update the skill score and finalize when done.

        Raises:
            NotFoundError: session or question missing
            ForbiddenError: session belongs to another user
            BadRequestError: session not in progress, question not part of
                the session, or question already answered
            ConflictError: a concurrent answer created the skill score first
        """
        logger.info(f"[ANSWER] user={user_id} session={session_id} question={question_id}")

        async with transaction(self._session_factory, "submit answer") as db:
            session = await session_store.get_session(db, session_id, for_update=True)
            self._require_owned(session, user_id, session_id)

            if session.status != SessionStatus.in_progress:
                raise BadRequestError(
                    f"Assessment session is {session.status.value}, not in progress",
                    code=ErrorCode.SESSION_NOT_IN_PROGRESS
                )

            if question_id not in session.question_ids:
                raise BadRequestError(
                    f"Question {question_id} is not part of this session",
                    code=ErrorCode.QUESTION_NOT_IN_SESSION
                )

            question = await question_pool.get_question(db, question_id)
            if question is None:
                raise NotFoundError("Question", question_id, code=ErrorCode.QUESTION_NOT_FOUND)

            if await session_store.response_exists(db, session_id, question_id):
                raise BadRequestError(
                    "Question has already been answered in this session",
                    code=ErrorCode.ALREADY_ANSWERED
                )

            is_correct = check_answer(question, user_response)

            try:
                response = await session_store.add_response(
                    db, session_id, question_id, user_response, is_correct
                )
            except IntegrityError as e:
                raise BadRequestError(
                    "Question has already been answered in this session",
                    code=ErrorCode.ALREADY_ANSWERED
                ) from e

            try:
                skill_score = await skill_score_store.apply_answer(
                    db,
                    user_id,
                    question.primary_skill_id,
                    is_correct,
                    default_score=self.default_score,
                    initial_k=self.initial_k,
                    decay_rate=self.decay_rate
                )
            except IntegrityError as e:
                # another answer created the (user, skill) score row first
                logger.warning(f"[ANSWER] concurrent skill score insert user={user_id} skill={question.primary_skill_id}")
                raise ConflictError(
                    "Skill score was updated concurrently, please resubmit the answer",
                    code=ErrorCode.CONFLICT
                ) from e

            answered = await session_store.get_answered_question_ids(db, session_id)
            if all(qid in answered for qid in session.question_ids):
                await self._finalize_session(db, session)

            result = AnswerResultOut(
                response_id=response.id,
                session_id=session_id,
                question_id=question_id,
                user_response=user_response,
                is_correct=is_correct,
                answered_at=response.answered_at,
                skill_id=question.primary_skill_id,
                skill_score=skill_score.score,
                questions_attempted=skill_score.questions_attempted,
                session_complete=session.status == SessionStatus.completed,
                overall_score=session.overall_score,
                overall_level=session.overall_level,
            )

        await self.cache.invalidate(ResultCache.NEXT_QUESTION, user_id, session_id)
        if result.is_correct:
            await self.cache.invalidate(ResultCache.SESSION_RESULT, user_id, session_id)

        return result

    # ------------------------------------------------------------------
    # result
    # ------------------------------------------------------------------

    async def get_session_result(self, user_id: int, session_id: int) -> SessionResultOut:
        cached = await self._cached(ResultCache.SESSION_RESULT, user_id, session_id, SessionResultOut)
        if cached is not None:
            return cached

        generation = await self.cache.generation(ResultCache.SESSION_RESULT, user_id, session_id)

        async with transaction(self._session_factory, "load session result") as db:
            session = await session_store.get_session(db, session_id)
            self._require_owned(session, user_id, session_id)

            if session.status != SessionStatus.completed:
                raise BadRequestError(
                    "Assessment session is not completed yet",
                    code=ErrorCode.SESSION_NOT_COMPLETED
                )

            _, correct = await session_store.get_response_counts(db, session_id)
            skill = await db.get(Skill, session.skill_id)
            skill_score = await skill_score_store.get_skill_score(db, user_id, session.skill_id)

            result = SessionResultOut(
                session_id=session.id,
                skill_id=session.skill_id,
                skill_name=skill.name if skill else None,
                status=session.status.value,
                started_at=session.started_at,
                completed_at=session.completed_at,
                total_questions=len(session.question_ids),
                correct_answers=correct,
                overall_score=session.overall_score or 0,
                overall_level=session.overall_level or 0,
                skill_score=skill_score.score if skill_score else None,
                skill_level=skill_score.level if skill_score else None,
                questions_attempted=skill_score.questions_attempted if skill_score else None,
            )

        await self.cache.put(
            ResultCache.SESSION_RESULT,
            user_id,
            session_id,
            result.model_dump(mode="json"),
            self.cache.session_result_ttl,
            generation
        )
        return result

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _finalize_session(self, db: AsyncSession, session: AssessmentSession) -> None:
        """Close a fully answered session. No-op if it is already completed."""
        if session.status == SessionStatus.completed:
            return

        _, correct = await session_store.get_response_counts(db, session.id)
        overall_score, overall_level = session_summary(correct, len(session.question_ids))
        session_store.mark_completed(session, overall_score, overall_level)
        await skill_score_store.set_skill_level(db, session.user_id, session.skill_id, overall_level)
        await db.flush()

        logger.info(
            f"[SESSION COMPLETE] session={session.id} user={session.user_id} "
            f"correct={correct}/{len(session.question_ids)} score={overall_score} level={overall_level}"
        )

    @staticmethod
    def _require_owned(session: Optional[AssessmentSession], user_id: int, session_id: int) -> None:
        if session is None:
            raise NotFoundError("Assessment session", session_id, code=ErrorCode.SESSION_NOT_FOUND)
        if session.user_id != user_id:
            logger.warning(f"[OWNERSHIP] user={user_id} attempted access to session={session_id}")
            raise ForbiddenError(
                "This assessment session does not belong to you",
                code=ErrorCode.OWNERSHIP_VIOLATION
            )

    async def _cached(self, operation: str, user_id: int, session_id: int, schema):
        raw = await self.cache.get(operation, user_id, session_id)
        if raw is None:
            return None
        try:
            return schema.model_validate(raw)
        except ValidationError:
            logger.warning(f"[CACHE] malformed {operation} entry for session={session_id}, ignoring")
            return None
