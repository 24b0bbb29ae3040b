"""
skillpath/ai/recommendation_client.py
AI recommendation generation with retry and error classification

RETRY POLICY:
- up to AI_RETRY_ATTEMPTS attempts
- linear backoff: attempt * AI_RETRY_DELAY between attempts
- fatal codes (bad credentials, quota, malformed request, content policy)
  abort immediately and propagate
- everything else, including an unusable response, is retried

Every failed attempt is recorded in AiMetrics.
"""
import asyncio
import json
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from skillpath.ai.prompts import build_recommendation_prompt
from skillpath.ai.provider import TextGenerationProvider
from skillpath.config.settings import FeatureFlags, RecommendationSettings
from skillpath.errors import AiGenerationError
from skillpath.orm.skill import Skill
from skillpath.schemas.recommendation import AiGeneratedRecommendation
from skillpath.services.ai_metrics import AiMetrics

logger = logging.getLogger(__name__)

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object, falling back to the outermost {...} block in the text."""
    try:
        parsed = json.loads(text)
    except ValueError:
        match = JSON_OBJECT.search(text)
        if not match:
            return None
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            return None
    return parsed if isinstance(parsed, dict) else None


class AiRecommendationClient:
    def __init__(
        self,
        provider: Optional[TextGenerationProvider],
        metrics: AiMetrics,
        enabled: bool = FeatureFlags.FEATURE_AI_RECOMMENDATIONS,
        retry_attempts: int = RecommendationSettings.AI_RETRY_ATTEMPTS,
        retry_delay: float = RecommendationSettings.AI_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.provider = provider
        self.metrics = metrics
        self.enabled = enabled
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self._sleep = sleep

    @property
    def provider_name(self) -> str:
        return self.provider.name if self.provider else "none"

    def is_enabled(self) -> bool:
        return bool(self.enabled and self.provider and self.provider.is_configured())

    async def generate(
        self,
        user_id: int,
        skill: Skill,
        score: float,
        history: List[Dict[str, Any]]
    ) -> Optional[AiGeneratedRecommendation]:
        """
        One generation attempt.

        Returns None when the backend answered with nothing usable.

        Raises:
            AiGenerationError: the backend failed the request
        """
        if not self.is_enabled():
            raise AiGenerationError(AiGenerationError.INVALID_REQUEST, "AI recommendations are disabled")

        prompt = build_recommendation_prompt(user_id, skill, score, history)
        raw = await self.provider.generate_text(prompt)
        if raw is None:
            logger.warning(f"[AI] empty response user={user_id} skill={skill.id}")
            return None

        parsed = parse_json_object(raw)
        if parsed is None:
            logger.warning(f"[AI] unparseable response user={user_id} skill={skill.id}: {raw[:200]}")
            return None

        try:
            return AiGeneratedRecommendation.model_validate(parsed)
        except ValidationError as e:
            logger.warning(f"[AI] response failed validation user={user_id} skill={skill.id}: {e.error_count()} error(s)")
            return None

    async def generate_with_retry(
        self,
        user_id: int,
        skill: Skill,
        score: float,
        history: List[Dict[str, Any]]
    ) -> AiGeneratedRecommendation:
        """
        Generate with the retry policy.

        Raises:
            AiGenerationError: fatal error, or the last error once attempts run out
        """
        start = time.monotonic()
        last_error: Optional[AiGenerationError] = None

        for attempt in range(1, self.retry_attempts + 1):
            try:
                result = await self.generate(user_id, skill, score, history)
            except AiGenerationError as e:
                error = e
            except Exception as e:
                error = AiGenerationError(AiGenerationError.UNKNOWN_ERROR, f"{type(e).__name__}: {e}")
            else:
                if result is not None:
                    self.metrics.record_request(True, self._elapsed_ms(start))
                    logger.info(f"[AI] recommendation generated user={user_id} skill={skill.id} attempt={attempt}")
                    return result
                error = AiGenerationError(
                    AiGenerationError.NULL_RESPONSE, "AI backend returned no usable recommendation"
                )

            last_error = error
            self.metrics.record_error(
                error.code, error.message, attempt, self.provider_name, user_id=user_id, skill_id=skill.id
            )

            if error.is_fatal:
                logger.error(f"[AI] fatal error user={user_id} skill={skill.id}: {error.code} - {error.message}")
                break

            if attempt < self.retry_attempts:
                delay = attempt * self.retry_delay
                logger.warning(
                    f"[AI RETRY] attempt {attempt}/{self.retry_attempts} failed ({error.code}). "
                    f"Retrying in {delay}s..."
                )
                await self._sleep(delay)

        self.metrics.record_request(False, self._elapsed_ms(start))
        raise last_error

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.monotonic() - start) * 1000.0
