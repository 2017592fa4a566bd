"""Celery worker for distributed recording dispatch (DISPATCH_MODE=celery)"""
import asyncio
import logging

from celery import Celery
from sqlalchemy.exc import OperationalError

from courtside.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery("courtside", broker=settings.redis_url, backend=settings.redis_url)
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_max_tasks_per_child=100,
    beat_schedule={
        "resume-recordings": {
            "task": "resume_recordings",
            "schedule": settings.rescan_interval_seconds,
        },
    },
)


class CeleryDispatcher:
    """Orchestrator dispatcher that sends each recording to the Celery queue."""

    def submit(self, recording_id: int) -> bool:
        process_recording.delay(recording_id)
        logger.info(f"Queued recording {recording_id} on Celery")
        return True


async def _process(recording_id: int):
    from courtside.database import close_db
    from courtside.pipeline.orchestrator import build_orchestrator

    orchestrator = build_orchestrator(settings)
    orchestrator.dispatcher = CeleryDispatcher()
    try:
        status = await orchestrator.process(recording_id)
    finally:
        # Each task runs its own event loop; pooled connections can't outlive it
        await close_db()
    return status.value if status else None


async def _resume():
    from courtside.database import close_db
    from courtside.pipeline.orchestrator import build_orchestrator

    orchestrator = build_orchestrator(settings)
    try:
        return await orchestrator.resume_ids()
    finally:
        await close_db()


@celery_app.task(bind=True, name="process_recording", max_retries=3, default_retry_delay=60)
def process_recording(self, recording_id: int):
    """Drive one recording to COMPLETED or FAILED."""
    logger.info(f"Processing recording {recording_id}")
    try:
        return asyncio.run(_process(recording_id))
    except OperationalError as e:
        logger.error(f"Database unavailable while processing {recording_id}: {e}")
        raise self.retry(exc=e)


@celery_app.task(name="resume_recordings")
def resume_recordings():
    """Queue every non-terminal recording. Leases stop double processing."""
    recording_ids = asyncio.run(_resume())
    for recording_id in recording_ids:
        process_recording.delay(recording_id)
    if recording_ids:
        logger.info(f"Resumed {len(recording_ids)} recording(s)")
    return len(recording_ids)
