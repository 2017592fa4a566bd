"""Recording orchestrator

Drives one recording through the pipeline.

Each stage handler loads the recording in its own session, does its work
and commits the resulting transition before the next stage starts. Stage
failures are translated into retry bookkeeping or a FAILED status here and
never escape ``process()``.
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional
import asyncio
import functools
import logging
import os
import shutil
import socket
import uuid

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.config import Settings, get_settings
from courtside.models.camera import Camera
from courtside.models.recording import Recording, RecordingChunk, RecordingStatus, ChunkStatus
from courtside.pipeline.errors import (
    PipelineError, ChunkExportFailed, ChunkFetchError, ConsolidationError, ExportRejected,
    GatewayError, StageTimeout, RetryNotAllowed, RecordingNotFound, RecordingValidationError,
)
from courtside.pipeline.retry import RetryPolicy, poll_schedule
from courtside.pipeline.state import TERMINAL, transition
from courtside.services.cameras import camera_ref, check_camera_availability
from courtside.services.chunk_store import ChunkStore, chunk_store as default_chunk_store
from courtside.services.consolidation import ChunkFile, ConsolidationEngine
from courtside.services.gateway import CameraGatewayClient, ExportState
from courtside.services.notifier import CompletionNotifier
from courtside.services.settings_service import PipelineConfig, SettingsService

logger = logging.getLogger(__name__)

S = RecordingStatus
CONSOLIDATED_NAME = "consolidated"


def to_naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class RecordingOrchestrator:
    """Runs recordings from PENDING to COMPLETED one stage at a time."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        gateway: CameraGatewayClient,
        archive,
        *,
        settings: Optional[Settings] = None,
        chunk_store: Optional[ChunkStore] = None,
        notifier: Optional[CompletionNotifier] = None,
        settings_service: Optional[SettingsService] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        owner: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.archive = archive
        self.settings = settings or get_settings()
        self.chunk_store = chunk_store or default_chunk_store
        self.notifier = notifier or CompletionNotifier()
        self.settings_service = settings_service
        self.sleep = sleep
        self.owner = owner or f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"
        self.retry_policy = RetryPolicy(
            base_delay=self.settings.retry_base_delay_seconds,
            max_delay=self.settings.retry_max_delay_seconds,
        )
        self.dispatcher = None
        self._active: set[int] = set()
        self._blocking: dict[int, asyncio.Future] = {}
        self._handlers = {
            S.PENDING: self._plan,
            S.REQUESTING_CHUNKS: self._request_exports,
            S.POLLING: self._poll_exports,
            S.DOWNLOADING: self._download_chunks,
            S.CONSOLIDATING: self._consolidate,
            S.UPLOADING: self._upload,
        }

    # ------------------------------------------------------------------
    # Configuration helpers

    async def _config(self) -> PipelineConfig:
        if self.settings_service is not None:
            return await self.settings_service.get_pipeline_config()
        return PipelineConfig(
            segment_minutes=self.settings.segment_minutes,
            max_retries=self.settings.max_retries,
            poll_timeout_seconds=self.settings.poll_timeout_seconds,
            consolidation_method=self.settings.consolidation_method,
            delete_local_after_upload=self.settings.delete_local_after_upload,
        )

    def _engine(self, config: PipelineConfig) -> ConsolidationEngine:
        return ConsolidationEngine(
            method=config.consolidation_method,
            ffmpeg_path=self.settings.ffmpeg_path,
            ffprobe_path=self.settings.ffprobe_path,
            tolerance_seconds=self.settings.continuity_tolerance_seconds,
            timeout_seconds=self.settings.consolidation_timeout_seconds,
        )

    def _stage_timeout(self, stage: RecordingStatus, config: PipelineConfig, total_chunks: int) -> float:
        s = self.settings
        chunks = max(1, total_chunks)
        if stage == S.REQUESTING_CHUNKS:
            return s.export_timeout_seconds * chunks
        if stage == S.POLLING:
            return config.poll_timeout_seconds + s.export_timeout_seconds * chunks
        if stage == S.DOWNLOADING:
            return s.download_timeout_seconds * chunks
        if stage == S.CONSOLIDATING:
            return s.consolidation_timeout_seconds
        if stage == S.UPLOADING:
            return s.upload_timeout_seconds
        return s.export_timeout_seconds

    def work_dir(self, recording: Recording) -> Path:
        return Path(self.settings.work_dir) / recording.recording_id

    def _find_output(self, recording: Recording, engine: Optional[ConsolidationEngine] = None) -> Optional[Path]:
        directory = self.work_dir(recording)
        if engine is not None:
            expected = directory / f"{CONSOLIDATED_NAME}{engine.output_suffix}"
            if expected.is_file() and expected.stat().st_size > 0:
                return expected
        for candidate in sorted(directory.glob(f"{CONSOLIDATED_NAME}.*")):
            if candidate.suffix != ".part" and candidate.stat().st_size > 0:
                return candidate
        return None

    async def _load(self, session: AsyncSession, recording_id: int) -> Recording:
        recording = await session.get(Recording, recording_id)
        if recording is None:
            raise RecordingNotFound(f"Recording {recording_id} not found")
        return recording

    # ------------------------------------------------------------------
    # Dispatch and ownership

    def submit(self, recording_id: int) -> None:
        """Hand a recording to the configured dispatcher (worker pool or Celery)."""
        if self.dispatcher is None:
            logger.debug(f"No dispatcher attached, recording {recording_id} waits for the next scan")
            return
        self.dispatcher.submit(recording_id)

    async def _claim(self, recording_id: int, hold_seconds: float) -> bool:
        """Take or extend the ownership lease with a conditional UPDATE."""
        now = datetime.utcnow()
        async with self.session_factory() as session:
            result = await session.execute(
                update(Recording)
                .where(
                    Recording.id == recording_id,
                    or_(
                        Recording.lease_owner.is_(None),
                        Recording.lease_owner == self.owner,
                        Recording.lease_expires_at < now,
                    ),
                )
                .values(lease_owner=self.owner, lease_expires_at=now + timedelta(seconds=hold_seconds))
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def _release(self, recording_id: int) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(Recording)
                .where(Recording.id == recording_id, Recording.lease_owner == self.owner)
                .values(lease_owner=None, lease_expires_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def resume_ids(self) -> list[int]:
        """Non-terminal recordings, oldest first. Used on start-up and by the periodic scan."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Recording.id)
                .where(Recording.status.notin_(list(TERMINAL)))
                .order_by(Recording.created_at, Recording.id)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Main loop

    async def process(self, recording_id: int) -> Optional[RecordingStatus]:
        """Drive a recording until it is COMPLETED or FAILED.

        Returns the final status, or None when another worker owns it.
        """
        if recording_id in self._active:
            logger.info(f"recording {recording_id}: already being processed here")
            return None
        self._active.add(recording_id)
        try:
            if not await self._claim(recording_id, self.settings.lease_seconds):
                logger.info(f"recording {recording_id}: leased by another worker, skipping")
                return None
            try:
                return await self._run(recording_id)
            finally:
                await self._release(recording_id)
        finally:
            self._active.discard(recording_id)

    async def _run(self, recording_id: int) -> Optional[RecordingStatus]:
        while True:
            config = await self._config()
            async with self.session_factory() as session:
                recording = await self._load(session, recording_id)
                stage = recording.status
                total_chunks = recording.total_chunks or 0
            if stage in TERMINAL:
                return stage

            timeout = self._stage_timeout(stage, config, total_chunks)
            if not await self._claim(recording_id, self.settings.lease_seconds + timeout):
                logger.warning(f"recording {recording_id}: lease taken over by another worker, stopping")
                return None
            handler = self._handlers[stage]
            error = None
            try:
                await asyncio.wait_for(handler(recording_id, config), timeout=timeout)
            except asyncio.TimeoutError:
                error = StageTimeout(f"{stage.value} timed out after {timeout:.0f}s")
            except PipelineError as e:
                error = e
            except Exception as e:
                logger.exception(f"recording {recording_id}: unexpected error in {stage.value}")
                error = PipelineError(f"{stage.value} failed: {e}", transient=True)
            await self._settle(recording_id)
            if error is None:
                if stage == S.UPLOADING:
                    await self._finish(recording_id, config)
                continue
            await self._handle_failure(recording_id, stage, error)

    async def _in_thread(self, recording_id: int, func, *args):
        """Run blocking stage work in the default executor.

        The thread cannot be cancelled, so a stage timeout only abandons the
        wait; the future is kept for ``_settle``.
        """
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, functools.partial(func, *args))
        self._blocking[recording_id] = future
        return await asyncio.shield(future)

    async def _settle(self, recording_id: int) -> None:
        """Wait for thread work left behind by a timed-out stage before going on."""
        future = self._blocking.pop(recording_id, None)
        if future is None:
            return
        if not future.done():
            logger.warning(f"recording {recording_id}: waiting for abandoned stage work to finish")
            await asyncio.wait([future])
        # Retrieve the outcome so a failure in abandoned work is not reported as unhandled
        if not future.cancelled() and future.exception() is not None:
            logger.info(f"recording {recording_id}: stage work ended with: {future.exception()}")

    async def _handle_failure(self, recording_id: int, stage: RecordingStatus, error: PipelineError) -> None:
        async with self.session_factory() as session:
            recording = await self._load(session, recording_id)
            if recording.status != stage:
                await session.commit()
                return
            if not error.transient:
                transition(recording, S.FAILED, error=error.message)
                await session.commit()
                return
            recording.retry_count = (recording.retry_count or 0) + 1
            recording.last_retry_at = datetime.utcnow()
            attempt = recording.retry_count
            if attempt >= recording.max_retries:
                transition(
                    recording, S.FAILED,
                    error=f"{error.message} (gave up after {attempt} attempts)",
                )
                await session.commit()
                return
            await session.commit()
        delay = self.retry_policy.delay(attempt)
        logger.warning(
            f"recording {recording_id}: {stage.value} failed ({error.message}), "
            f"retry {attempt}/{recording.max_retries} in {delay:.0f}s"
        )
        await self.sleep(delay)

    # ------------------------------------------------------------------
    # Stage handlers

    async def _camera(self, session: AsyncSession, recording: Recording):
        camera = await session.get(Camera, recording.camera_id) if recording.camera_id else None
        if camera is None:
            raise ExportRejected(f"No camera provisioned for court {recording.court_id}")
        return camera_ref(camera)

    async def _plan(self, recording_id: int, config: PipelineConfig) -> None:
        async with self.session_factory() as session:
            recording = await self._load(session, recording_id)
            segments = self.gateway.plan_segments(recording.start_time, recording.end_time, config.segment_minutes)
            chunks = await self.chunk_store.create_plan(session, recording.id, segments)
            recording.total_chunks = len(chunks)
            recording.fetched_chunks = sum(1 for c in chunks if c.status == ChunkStatus.DOWNLOADED)
            transition(recording, S.REQUESTING_CHUNKS)
            await session.commit()

    async def _request_exports(self, recording_id: int, config: PipelineConfig) -> None:
        async with self.session_factory() as session:
            recording = await self._load(session, recording_id)
            camera = await self._camera(session, recording)
            pending = await self.chunk_store.list_by_recording(session, recording.id, ChunkStatus.PENDING)
            for chunk in pending:
                handles = await asyncio.wait_for(
                    self.gateway.request_export(camera, [(chunk.start_time, chunk.end_time)]),
                    timeout=self.settings.export_timeout_seconds,
                )
                await self.chunk_store.mark_requested(session, chunk.id, handles[0].task_id)
                await session.commit()
            transition(recording, S.POLLING)
            await session.commit()

    async def _poll_exports(self, recording_id: int, config: PipelineConfig) -> None:
        async with self.session_factory() as session:
            recording = await self._load(session, recording_id)
            outstanding = await self.chunk_store.list_by_recording(session, recording.id, ChunkStatus.REQUESTED)
            schedule = poll_schedule(
                self.settings.poll_interval_seconds,
                self.settings.poll_max_interval_seconds,
                config.poll_timeout_seconds,
            )
            while outstanding:
                waiting = []
                for chunk in outstanding:
                    try:
                        status = await asyncio.wait_for(
                            self.gateway.poll_export_status(chunk.task_id),
                            timeout=self.settings.export_timeout_seconds,
                        )
                    except GatewayError as e:
                        if e.transient:
                            raise
                        # The gateway no longer knows the task; a retry must request a new export
                        await self.chunk_store.mark_failed(session, chunk.id, e.message)
                        await session.commit()
                        raise ChunkExportFailed(f"chunk {chunk.chunk_number} export lost: {e.message}") from e
                    if status.state == ExportState.READY:
                        await self.chunk_store.mark_ready(session, chunk.id)
                        await session.commit()
                    elif status.state == ExportState.FAILED:
                        await self.chunk_store.mark_failed(session, chunk.id, status.error or "export failed")
                        await session.commit()
                        raise ChunkExportFailed(f"chunk {chunk.chunk_number} export failed: {status.error}")
                    else:
                        waiting.append(chunk)
                outstanding = waiting
                if not outstanding:
                    break
                delay = next(schedule, None)
                if delay is None:
                    numbers = ", ".join(str(c.chunk_number) for c in outstanding)
                    raise StageTimeout(
                        f"chunk(s) {numbers} not ready after {config.poll_timeout_seconds:.0f}s"
                    )
                await self.sleep(delay)

            chunks = await self.chunk_store.list_by_recording(session, recording.id)
            not_ready = [c for c in chunks if c.status not in (ChunkStatus.READY, ChunkStatus.DOWNLOADED)]
            if not_ready:
                numbers = ", ".join(str(c.chunk_number) for c in not_ready)
                raise ChunkExportFailed(f"chunk(s) {numbers} have no completed export")
            transition(recording, S.DOWNLOADING)
            await session.commit()

    async def _download_chunks(self, recording_id: int, config: PipelineConfig) -> None:
        """Fetch every chunk that is not yet DOWNLOADED, continuing past failures.

        Transient failures leave the chunk READY so the next attempt fetches
        only that chunk; permanent ones mark it FAILED.
        """
        engine = self._engine(config)
        timeout = self.settings.download_timeout_seconds
        async with self.session_factory() as session:
            recording = await self._load(session, recording_id)
            directory = self.work_dir(recording)
            permanent: list[str] = []
            transient: list[str] = []
            for chunk in await self.chunk_store.list_by_recording(session, recording.id):
                if chunk.status == ChunkStatus.DOWNLOADED:
                    continue
                if chunk.status != ChunkStatus.READY:
                    permanent.append(f"chunk {chunk.chunk_number}: {chunk.status.value}")
                    continue
                dest = directory / f"chunk_{chunk.chunk_number:04d}{engine.output_suffix}"
                try:
                    fetched = await asyncio.wait_for(
                        self.gateway.fetch_chunk(chunk.task_id, dest, timeout=timeout),
                        timeout=timeout,
                    )
                except asyncio.TimeoutError:
                    transient.append(f"chunk {chunk.chunk_number}: timed out after {timeout:.0f}s")
                    continue
                except PipelineError as e:
                    if e.transient:
                        logger.warning(f"recording {recording_id}: chunk {chunk.chunk_number} fetch failed: {e.message}")
                        transient.append(f"chunk {chunk.chunk_number}: {e.message}")
                    else:
                        await self.chunk_store.mark_failed(session, chunk.id, e.message)
                        await session.commit()
                        permanent.append(f"chunk {chunk.chunk_number}: {e.message}")
                    continue
                await self.chunk_store.mark_downloaded(session, chunk.id, fetched.path, fetched.size_bytes)
                recording.lease_expires_at = datetime.utcnow() + timedelta(seconds=self.settings.lease_seconds + timeout)
                await session.commit()

            if permanent:
                raise ChunkFetchError("download failed: " + "; ".join(permanent), transient=False)
            if transient:
                raise ChunkFetchError("download incomplete: " + "; ".join(transient), transient=True)
            transition(recording, S.CONSOLIDATING)
            await session.commit()

    async def _consolidate(self, recording_id: int, config: PipelineConfig) -> None:
        engine = self._engine(config)
        async with self.session_factory() as session:
            recording = await self._load(session, recording_id)
            chunks = await self.chunk_store.list_by_recording(session, recording.id)
            missing = [c.chunk_number for c in chunks if c.status != ChunkStatus.DOWNLOADED]
            if missing or not chunks:
                raise ConsolidationError(f"chunks not downloaded: {missing}")
            files = [
                ChunkFile(c.chunk_number, c.local_path, c.start_time, c.end_time, c.file_size_bytes or 0)
                for c in chunks
            ]
            output = self.work_dir(recording) / f"{CONSOLIDATED_NAME}{engine.output_suffix}"
            result = await self._in_thread(recording.id, engine.consolidate, files, str(output))

            recording.total_duration_seconds = result.total_duration_seconds
            recording.total_file_size_bytes = result.total_file_size_bytes
            recording.consolidated_chunks = recording.total_chunks
            recording.consolidation_completed_at = datetime.utcnow()
            transition(recording, S.UPLOADING)
            await session.commit()

    async def _upload(self, recording_id: int, config: PipelineConfig) -> None:
        async with self.session_factory() as session:
            recording = await self._load(session, recording_id)
            output = self._find_output(recording, self._engine(config))
            if output is None:
                raise ConsolidationError(f"consolidated output missing in {self.work_dir(recording)}")
            key = self.archive.key_for(recording.recording_id, output.suffix)
            archived = await self._in_thread(recording.id, self.archive.put, str(output), key)

            recording.consolidated_storage_key = archived.key
            recording.consolidated_storage_bucket = archived.bucket
            recording.archive_uploaded_at = datetime.utcnow()
            transition(recording, S.COMPLETED)
            await session.commit()

    async def _finish(self, recording_id: int, config: PipelineConfig) -> None:
        """Post-completion housekeeping. Nothing here changes the recording's status."""
        async with self.session_factory() as session:
            recording = await self._load(session, recording_id)
            if config.delete_local_after_upload:
                directory = self.work_dir(recording)
                try:
                    shutil.rmtree(directory)
                    logger.info(f"Deleted working directory {directory}")
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.warning(f"Could not delete working directory {directory}: {e}")
            if self.notifier.enabled:
                sent = await self.notifier.recording_completed({
                    "id": recording.id,
                    "recording_id": recording.recording_id,
                    "user_id": recording.user_id,
                    "booking_id": recording.booking_id,
                    "facility_id": recording.facility_id,
                    "court_id": recording.court_id,
                    "bucket": recording.consolidated_storage_bucket,
                    "key": recording.consolidated_storage_key,
                    "total_duration_seconds": recording.total_duration_seconds,
                    "total_file_size_bytes": recording.total_file_size_bytes,
                })
                if sent:
                    recording.notification_sent_at = datetime.utcnow()
                    await session.commit()

    # ------------------------------------------------------------------
    # Operator / booking entry points

    async def create_manual(
        self,
        facility_id: int,
        court_id: int,
        start_time: datetime,
        end_time: datetime,
        user_id: Optional[int] = None,
        booking_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Recording:
        """Validate camera availability, then create a PENDING manual recording."""
        return await self._create(
            facility_id, court_id, start_time, end_time,
            user_id=user_id, booking_id=booking_id, notes=notes, is_manual=True,
        )

    async def create_from_booking(
        self,
        facility_id: int,
        court_id: int,
        start_time: datetime,
        end_time: datetime,
        user_id: Optional[int] = None,
        booking_id: Optional[int] = None,
    ) -> Recording:
        return await self._create(
            facility_id, court_id, start_time, end_time,
            user_id=user_id, booking_id=booking_id, is_manual=False,
        )

    def validate_window(self, start_time: Optional[datetime], end_time: Optional[datetime], *,
                        require_past_end: bool = True) -> tuple[datetime, datetime]:
        if start_time is None or end_time is None:
            raise RecordingValidationError("start_time and end_time are required")
        start, end = to_naive_utc(start_time), to_naive_utc(end_time)
        now = datetime.utcnow()
        if end <= start:
            raise RecordingValidationError("end_time must be after start_time")
        if start > now:
            raise RecordingValidationError("start_time must be in the past")
        if require_past_end and end > now:
            raise RecordingValidationError("end_time must be in the past")
        limit = timedelta(minutes=self.settings.max_recording_minutes)
        if end - start > limit:
            raise RecordingValidationError(
                f"recording window cannot exceed {self.settings.max_recording_minutes} minutes"
            )
        return start, end

    async def _create(
        self,
        facility_id: Optional[int],
        court_id: Optional[int],
        start_time: Optional[datetime],
        end_time: Optional[datetime],
        *,
        user_id: Optional[int] = None,
        booking_id: Optional[int] = None,
        notes: Optional[str] = None,
        is_manual: bool,
    ) -> Recording:
        if facility_id is None or court_id is None:
            raise RecordingValidationError("facility_id and court_id are required")
        start, end = self.validate_window(start_time, end_time, require_past_end=is_manual)
        config = await self._config()

        async with self.session_factory() as session:
            availability = await check_camera_availability(session, self.gateway, facility_id, court_id)
            if not availability.available:
                raise RecordingValidationError(availability.reason or "No camera available")
            recording = Recording(
                facility_id=facility_id,
                court_id=court_id,
                camera_id=availability.camera_id,
                user_id=user_id,
                booking_id=booking_id,
                start_time=start,
                end_time=end,
                status=S.PENDING,
                max_retries=config.max_retries,
                is_manual_recording=is_manual,
                notes=notes,
            )
            session.add(recording)
            await session.commit()
        kind = "manual" if is_manual else "booking"
        logger.info(
            f"Created {kind} recording {recording.id} ({recording.recording_id}) "
            f"court {court_id} {start.isoformat()} - {end.isoformat()}"
        )
        self.submit(recording.id)
        return recording

    async def retry(self, recording_id: int) -> Recording:
        """Operator retry: resume a FAILED recording at the stage that failed.

        Raises ``RetryNotAllowed`` (without touching the row) when the
        recording is not FAILED or its retry budget is spent.
        """
        async with self.session_factory() as session:
            recording = await self._load(session, recording_id)
            if recording.status != S.FAILED:
                raise RetryNotAllowed(
                    f"Recording is {recording.status.value}; only FAILED recordings can be retried"
                )
            if recording.retry_count >= recording.max_retries:
                raise RetryNotAllowed(
                    f"Retry limit reached ({recording.retry_count}/{recording.max_retries})"
                )

            target = await self._resume_stage(session, recording)
            recording.retry_count = (recording.retry_count or 0) + 1
            recording.last_retry_at = datetime.utcnow()
            transition(recording, target)
            await session.commit()
        logger.info(f"recording {recording_id}: operator retry {recording.retry_count}/{recording.max_retries} at {target.value}")
        self.submit(recording.id)
        return recording

    async def _resume_stage(self, session: AsyncSession, recording: Recording) -> RecordingStatus:
        """Pick the stage to resume at and reset chunk rows it needs to redo."""
        stage = recording.failed_stage or S.PENDING
        if stage in (S.REQUESTING_CHUNKS, S.POLLING, S.DOWNLOADING):
            # FAILED chunks hold a task id the gateway rejected or expired; request them afresh
            if await self.chunk_store.reset_failed(session, recording.id, ChunkStatus.PENDING):
                return S.REQUESTING_CHUNKS
            return stage
        if stage in (S.CONSOLIDATING, S.UPLOADING):
            lost = await self._reset_missing_files(session, recording)
            if lost:
                return S.DOWNLOADING
            if stage == S.UPLOADING and self._find_output(recording) is None:
                return S.CONSOLIDATING
        return stage

    async def _reset_missing_files(self, session: AsyncSession, recording: Recording) -> int:
        """Downloaded chunks whose file disappeared go back to READY for a re-fetch."""
        lost = 0
        chunks = await self.chunk_store.list_by_recording(session, recording.id, ChunkStatus.DOWNLOADED)
        for chunk in chunks:
            if chunk.local_path and Path(chunk.local_path).is_file():
                continue
            chunk.status = ChunkStatus.READY
            chunk.local_path = None
            chunk.file_size_bytes = None
            lost += 1
        if lost:
            recording.fetched_chunks = max(0, (recording.fetched_chunks or 0) - lost)
            recording.consolidated_chunks = 0
            logger.warning(f"recording {recording.id}: {lost} chunk file(s) missing, re-fetching")
        return lost

    async def get_with_chunks(self, session: AsyncSession, recording_id: int) -> tuple[Recording, list[RecordingChunk]]:
        recording = await self._load(session, recording_id)
        chunks = await self.chunk_store.list_by_recording(session, recording.id)
        return recording, chunks


def build_orchestrator(settings: Optional[Settings] = None, session_factory=None) -> RecordingOrchestrator:
    """Wire an orchestrator from configuration."""
    from courtside.database import AsyncSessionLocal
    from courtside.services.archive import build_archive_store
    from courtside.services.settings_service import settings_service

    settings = settings or get_settings()
    gateway = CameraGatewayClient(
        settings.camera_gateway_url,
        token=settings.camera_gateway_token,
        timeout=settings.export_timeout_seconds,
        segment_minutes=settings.segment_minutes,
    )
    return RecordingOrchestrator(
        session_factory or AsyncSessionLocal,
        gateway,
        build_archive_store(settings),
        settings=settings,
        notifier=CompletionNotifier(settings.notify_webhook_url),
        settings_service=settings_service if session_factory is None else None,
    )
