"""Settings service

Cached reads from the database, no restarts needed.

Usage:
    from courtside.services.settings_service import settings_service

    val = await settings_service.get("SEGMENT_MINUTES")
    await settings_service.set("SEGMENT_MINUTES", "10")
    config = await settings_service.get_pipeline_config()
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from courtside.database import AsyncSessionLocal
from courtside.models.settings import Setting, DEFAULTS

logger = logging.getLogger(__name__)

CACHE_TTL = 30  # seconds


@dataclass(frozen=True)
class PipelineConfig:
    """Pipeline knobs that operators may change at runtime."""
    segment_minutes: int
    max_retries: int
    poll_timeout_seconds: float
    consolidation_method: str
    delete_local_after_upload: bool


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class SettingsService:
    """In-memory cached settings backed by the database."""

    def __init__(self, session_factory=None, ttl: float = CACHE_TTL):
        self._session_factory = session_factory or AsyncSessionLocal
        self._cache: dict[str, str] = {}
        self._cache_time: float = 0
        self._ttl = ttl
        self._lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_table(self):
        """Seed defaults for any missing keys."""
        if self._initialized:
            return
        async with self._session_factory() as session:
            for key, default in DEFAULTS.items():
                existing = await session.execute(
                    select(Setting).where(Setting.key == key)
                )
                if not existing.scalar_one_or_none():
                    session.add(Setting(key=key, value=default))
            await session.commit()
        self._initialized = True

    async def _refresh_cache(self, force: bool = False):
        """Reload all settings from DB if cache is stale."""
        now = time.time()
        if not force and self._cache and (now - self._cache_time) < self._ttl:
            return
        async with self._lock:
            # Double-check after acquiring lock
            if not force and self._cache and (time.time() - self._cache_time) < self._ttl:
                return
            await self._ensure_table()
            async with self._session_factory() as session:
                result = await session.execute(select(Setting))
                rows = result.scalars().all()
                self._cache = {r.key: r.value for r in rows}
                self._cache_time = time.time()

    async def get(self, key: str, default: Optional[str] = None) -> str:
        """Get a single setting value."""
        await self._refresh_cache()
        return self._cache.get(key, DEFAULTS.get(key, default or ""))

    async def get_many(self, keys: list[str]) -> dict[str, str]:
        """Get multiple settings at once."""
        await self._refresh_cache()
        return {k: self._cache.get(k, DEFAULTS.get(k, "")) for k in keys}

    async def set_many(self, updates: dict[str, str]):
        """Set multiple settings at once (upsert)."""
        async with self._session_factory() as session:
            for key, value in updates.items():
                await session.merge(Setting(key=key, value=value))
            await session.commit()
        # Update cache immediately
        self._cache.update(updates)

    async def set(self, key: str, value: str):
        """Set a single setting (upsert)."""
        await self.set_many({key: value})

    async def get_pipeline_config(self) -> PipelineConfig:
        values = await self.get_many(list(DEFAULTS))
        return PipelineConfig(
            segment_minutes=int(values["SEGMENT_MINUTES"]),
            max_retries=int(values["MAX_RETRIES"]),
            poll_timeout_seconds=float(values["POLL_TIMEOUT_SECONDS"]),
            consolidation_method=values["CONSOLIDATION_METHOD"],
            delete_local_after_upload=_as_bool(values["DELETE_LOCAL_AFTER_UPLOAD"]),
        )

    async def seed_from_environment(self, env_values: dict[str, str]):
        """Import environment values into the DB.
        Only writes keys that still hold their default value in the DB."""
        await self._refresh_cache(force=True)
        updates = {}
        for key, value in env_values.items():
            if key in DEFAULTS:
                current = self._cache.get(key, "")
                default = DEFAULTS.get(key, "")
                if current == default and value != default:
                    updates[key] = value
        if updates:
            await self.set_many(updates)
            logger.info(f"Seeded {len(updates)} settings from environment: {list(updates.keys())}")


# Singleton
settings_service = SettingsService()
