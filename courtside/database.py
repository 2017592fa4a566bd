"""Database connection and session management"""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from typing import AsyncGenerator
import logging

from courtside.config import get_settings
from courtside.models.camera import Base
from courtside.models.recording import Recording, RecordingChunk  # Import to register models
from courtside.models.settings import Setting  # Import to register model

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {"echo": settings.debug, "pool_size": 10, "max_overflow": 20}


# Async engine for FastAPI and the pipeline workers
async_engine = create_async_engine(
    settings.database_url,
    **_engine_kwargs(settings.database_url),
)

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def init_db():
    """Initialize database tables"""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")


async def close_db():
    """Close database connections"""
    await async_engine.dispose()
    logger.info("Database connections closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
