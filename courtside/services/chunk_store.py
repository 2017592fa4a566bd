"""Chunk store

Per-segment rows for a recording.

Mutations operate on the caller's session and never commit; the
orchestrator commits them together with the recording update they
belong to, so progress readers always see a consistent snapshot.
"""
from datetime import datetime
from typing import Iterable, Optional
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.models.recording import Recording, RecordingChunk, ChunkStatus

logger = logging.getLogger(__name__)


class ChunkStore:
    """Create and advance chunk rows. Chunk numbering is fixed at plan time."""

    async def _get(self, session: AsyncSession, chunk_id: int) -> RecordingChunk:
        chunk = await session.get(RecordingChunk, chunk_id)
        if chunk is None:
            raise LookupError(f"chunk {chunk_id} not found")
        return chunk

    async def create_plan(
        self,
        session: AsyncSession,
        recording_id: int,
        segments: Iterable[tuple[datetime, datetime]],
    ) -> list[RecordingChunk]:
        """Create one PENDING row per segment, numbered from 1.

        Returns the existing plan unchanged if one was already written.
        """
        existing = await self.list_by_recording(session, recording_id)
        if existing:
            return existing
        chunks = [
            RecordingChunk(
                recording_id=recording_id,
                chunk_number=number,
                start_time=start,
                end_time=end,
                status=ChunkStatus.PENDING,
            )
            for number, (start, end) in enumerate(segments, start=1)
        ]
        session.add_all(chunks)
        await session.flush()
        logger.info(f"recording {recording_id}: planned {len(chunks)} chunks")
        return chunks

    async def mark_requested(self, session: AsyncSession, chunk_id: int, task_id: str) -> RecordingChunk:
        chunk = await self._get(session, chunk_id)
        chunk.task_id = task_id
        chunk.status = ChunkStatus.REQUESTED
        chunk.error_message = None
        return chunk

    async def mark_ready(self, session: AsyncSession, chunk_id: int, task_id: Optional[str] = None) -> RecordingChunk:
        chunk = await self._get(session, chunk_id)
        if task_id:
            chunk.task_id = task_id
        chunk.status = ChunkStatus.READY
        return chunk

    async def mark_downloaded(
        self,
        session: AsyncSession,
        chunk_id: int,
        local_path: str,
        size_bytes: int,
    ) -> RecordingChunk:
        """Mark a chunk DOWNLOADED and bump the owning recording's fetched counter."""
        chunk = await self._get(session, chunk_id)
        if chunk.status == ChunkStatus.DOWNLOADED:
            return chunk
        chunk.status = ChunkStatus.DOWNLOADED
        chunk.local_path = local_path
        chunk.file_size_bytes = size_bytes
        chunk.error_message = None
        recording = await session.get(Recording, chunk.recording_id)
        recording.fetched_chunks = (recording.fetched_chunks or 0) + 1
        return chunk

    async def mark_failed(self, session: AsyncSession, chunk_id: int, reason: str) -> RecordingChunk:
        chunk = await self._get(session, chunk_id)
        chunk.status = ChunkStatus.FAILED
        chunk.error_message = reason
        return chunk

    async def reset_failed(self, session: AsyncSession, recording_id: int, status: ChunkStatus) -> int:
        """Put FAILED chunks back to ``status`` for another attempt. Returns how many."""
        chunks = await self.list_by_recording(session, recording_id, ChunkStatus.FAILED)
        for chunk in chunks:
            chunk.status = status
            chunk.error_message = None
            if status == ChunkStatus.PENDING:
                chunk.task_id = None
        return len(chunks)

    async def list_by_recording(
        self,
        session: AsyncSession,
        recording_id: int,
        status: Optional[ChunkStatus] = None,
    ) -> list[RecordingChunk]:
        """Chunks of a recording ordered by chunk number."""
        query = select(RecordingChunk).where(RecordingChunk.recording_id == recording_id)
        if status is not None:
            query = query.where(RecordingChunk.status == status)
        result = await session.execute(query.order_by(RecordingChunk.chunk_number))
        return list(result.scalars().all())

    async def status_counts(self, session: AsyncSession, recording_id: int) -> dict[str, int]:
        result = await session.execute(
            select(RecordingChunk.status, func.count())
            .where(RecordingChunk.recording_id == recording_id)
            .group_by(RecordingChunk.status)
        )
        return {status.value: count for status, count in result.all()}


chunk_store = ChunkStore()
