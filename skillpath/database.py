"""
skillpath/database.py
Async engine, session factory and schema bootstrap
"""
import logging
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from dotenv import load_dotenv

from skillpath.orm.base import Base
import skillpath.orm  # registers every model on Base.metadata

load_dotenv()

from skillpath.config.settings import DATABASE_URL
from skillpath.errors import APIError, internal_error_from

logger = logging.getLogger(__name__)


def build_engine(database_url: str = DATABASE_URL):
    """Create an async engine with pool settings suited to the backend."""
    if "sqlite" in database_url.lower():
        return create_async_engine(
            database_url,
            echo=False,
            future=True,
            connect_args={
                "timeout": 30.0,   # SQLite busy timeout in seconds
            }
        )

    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=30,
        pool_timeout=30,
        pool_recycle=3600,
    )


def build_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


async def init_db(bind=None):
    """Create tables that do not exist yet. Idempotent."""
    target = bind or engine
    logger.info("Initializing database...")
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready ({len(Base.metadata.tables)} tables)")


async def close_db():
    """Close database connection"""
    await engine.dispose()
    logger.info("Database connection closed")


@asynccontextmanager
async def transaction(session_factory: async_sessionmaker, context: str):
    """
    Run a unit of work in one transaction.

    Commits on success. APIError subclasses roll back and propagate unchanged;
    storage errors roll back and are re-raised as InternalError.
    """
    async with session_factory() as db:
        try:
            yield db
            await db.commit()
        except APIError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            raise internal_error_from(e, context) from e
