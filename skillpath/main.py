"""
skillpath/main.py
FastAPI application: adaptive assessment and recommendations
"""
import os
import logging
import random
from contextlib import asynccontextmanager
from typing import Optional, Tuple

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from skillpath.ai.provider import GeminiProvider, TextGenerationProvider
from skillpath.ai.recommendation_client import AiRecommendationClient
from skillpath.config.settings import FeatureFlags, GEMINI_API_KEY, REDIS_URL
from skillpath.database import AsyncSessionLocal, close_db, init_db
from skillpath.errors import register_exception_handlers
from skillpath.routes import router
from skillpath.services.ai_metrics import AiMetrics
from skillpath.services.recommendation_engine import RecommendationEngine
from skillpath.services.result_cache import (
    CacheBackend,
    InMemoryCacheBackend,
    RedisCacheBackend,
    ResultCache,
)
from skillpath.services.session_engine import SessionEngine


def build_cache_backend() -> CacheBackend:
    """Redis when enabled and configured, otherwise process-local memory."""
    if FeatureFlags.is_enabled("FEATURE_REDIS_CACHE") and REDIS_URL:
        logger.info("Using Redis cache backend")
        return RedisCacheBackend(REDIS_URL)
    logger.info("Using in-memory cache backend")
    return InMemoryCacheBackend()


def build_engines(
    session_factory,
    cache_backend: CacheBackend,
    provider: Optional[TextGenerationProvider] = None,
    rng: Optional[random.Random] = None,
    ai_enabled: bool = FeatureFlags.FEATURE_AI_RECOMMENDATIONS
) -> Tuple[SessionEngine, RecommendationEngine]:
    metrics = AiMetrics()
    ai_client = AiRecommendationClient(provider, metrics, enabled=ai_enabled)
    session_engine = SessionEngine(session_factory, ResultCache(cache_backend), rng=rng)
    recommendation_engine = RecommendationEngine(
        session_factory, ai_client, metrics, cache_backend=cache_backend
    )
    return session_engine, recommendation_engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    logger.info(f"GEMINI_API_KEY present: {bool(GEMINI_API_KEY)}")
    try:
        await init_db()
        logger.info("Database connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {str(e)}")
        raise

    cache_backend = build_cache_backend()
    session_engine, recommendation_engine = build_engines(
        AsyncSessionLocal, cache_backend, provider=GeminiProvider()
    )
    app.state.cache_backend = cache_backend
    app.state.session_engine = session_engine
    app.state.recommendation_engine = recommendation_engine

    yield

    logger.info("Shutting down application...")
    try:
        await cache_backend.close()
        await close_db()
    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}")


def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Build the application.

    Without the lifespan the caller is responsible for putting
    session_engine and recommendation_engine on app.state.
    """
    app = FastAPI(
        title="SkillPath API",
        description="Adaptive skill assessment and personalized learning recommendations",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None
    )

    allowed_origins = [o for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "environment": os.getenv("ENVIRONMENT", "development"),
            "gemini_configured": bool(GEMINI_API_KEY),
            "ai_recommendations": FeatureFlags.is_enabled("FEATURE_AI_RECOMMENDATIONS"),
            "version": "1.0.0"
        }

    return app


app = create_app()
