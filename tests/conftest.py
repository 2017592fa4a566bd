from __future__ import annotations

import asyncio
import os
from pathlib import Path

# The app module builds its engine at import time; keep it off PostgreSQL.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from courtside.config import Settings
from courtside.models.camera import Base
from courtside.pipeline.orchestrator import RecordingOrchestrator
from courtside.services.archive import LocalArchiveStore

from helpers import FakeGateway


@pytest.fixture
def session_factory(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'courtside.db'}", poolclass=NullPool)

    async def _create() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        work_dir=str(tmp_path / "work"),
        local_archive_dir=str(tmp_path / "archive"),
        consolidation_method="ts-concat",
        max_retries=3,
        retry_base_delay_seconds=1.0,
        poll_interval_seconds=1.0,
        poll_max_interval_seconds=1.0,
        poll_timeout_seconds=5.0,
        notify_webhook_url="",
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def archive(settings: Settings) -> LocalArchiveStore:
    return LocalArchiveStore(settings.local_archive_dir, prefix=settings.archive_prefix)


@pytest.fixture
def orchestrator(session_factory, gateway, archive, settings, sleeps) -> RecordingOrchestrator:
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return RecordingOrchestrator(
        session_factory,
        gateway,
        archive,
        settings=settings,
        sleep=_sleep,
        owner="test-worker",
    )
