"""
Settings

Engine tunables and feature flags. Everything is read from environment
variables once, at import time; tests override by passing explicit values
to the engine constructors.
"""
import os
from typing import Optional


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return int(value)


def get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return float(value)


DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./skillpath.db")
REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")


class AssessmentSettings:
    """Session selection and adaptive scoring."""

    SELECTION_COUNT: int = get_int_env('ASSESSMENT_SELECTION_COUNT', 10)
    POOL_MULTIPLIER: int = get_int_env('ASSESSMENT_POOL_MULTIPLIER', 3)

    # K-factor update
    INITIAL_K: float = get_float_env('ASSESSMENT_INITIAL_K', 32.0)
    DECAY_RATE: float = get_float_env('ASSESSMENT_DECAY_RATE', 0.05)
    DEFAULT_SCORE: float = get_float_env('ASSESSMENT_DEFAULT_SCORE', 500.0)

    # Result cache TTLs (seconds)
    NEXT_QUESTION_TTL: int = get_int_env('CACHE_NEXT_QUESTION_TTL', 60)
    COMPLETED_TTL: int = get_int_env('CACHE_COMPLETED_TTL', 3600)
    SESSION_RESULT_TTL: int = get_int_env('CACHE_SESSION_RESULT_TTL', 3600)


class RecommendationSettings:
    """Gap thresholds, resource selection and AI generation."""

    SKILL_THRESHOLD_LOW: float = get_float_env('RECOMMENDATION_THRESHOLD_LOW', 550.0)
    SKILL_THRESHOLD_CRITICAL: float = get_float_env('RECOMMENDATION_THRESHOLD_CRITICAL', 450.0)
    MAX_RECOMMENDATIONS: int = get_int_env('RECOMMENDATION_MAX', 5)
    RESOURCE_COOLDOWN_DAYS: int = get_int_env('RECOMMENDATION_COOLDOWN_DAYS', 30)
    MAX_CANDIDATES: int = get_int_env('RECOMMENDATION_MAX_CANDIDATES', 10)
    TOP_CANDIDATES: int = get_int_env('RECOMMENDATION_TOP_CANDIDATES', 3)

    AI_CACHE_TTL: int = get_int_env('AI_CACHE_TTL', 24 * 60 * 60)
    AI_RETRY_ATTEMPTS: int = get_int_env('AI_RETRY_ATTEMPTS', 3)
    AI_RETRY_DELAY: float = get_float_env('AI_RETRY_DELAY_SECONDS', 1.0)
    AI_HISTORY_SIZE: int = get_int_env('AI_HISTORY_SIZE', 10)
    AI_MAX_RECENT_ERRORS: int = get_int_env('AI_MAX_RECENT_ERRORS', 100)

    MAX_AI_RESOURCES_PER_SKILL: int = get_int_env('MAX_AI_RESOURCES_PER_SKILL', 10)
    AI_RESOURCE_CLEANUP_DAYS: int = get_int_env('AI_RESOURCE_CLEANUP_DAYS', 90)


class FeatureFlags:
    """
    Feature flags for the application.

    To add a new feature flag:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Use it in your code
    """

    FEATURE_AI_RECOMMENDATIONS: bool = get_bool_env('FEATURE_AI_RECOMMENDATIONS', True)
    FEATURE_REDIS_CACHE: bool = get_bool_env('FEATURE_REDIS_CACHE', False)

    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        """Check if a feature flag is enabled by name."""
        return getattr(cls, flag_name, False)
