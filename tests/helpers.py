"""Shared test doubles and seeding helpers."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

from courtside.models.camera import Camera
from courtside.models.recording import ChunkStatus, Recording, RecordingChunk, RecordingStatus
from courtside.services.gateway import (
    CameraRef,
    ExportHandle,
    ExportState,
    ExportStatus,
    FetchedChunk,
    split_window,
)

WINDOW_START = datetime(2026, 3, 1, 9, 0)
WINDOW_END = datetime(2026, 3, 1, 9, 45)


class FakeGateway:
    """In-memory camera gateway with scriptable outcomes per export task."""

    def __init__(self, segment_minutes: int = 15) -> None:
        self.segment_minutes = segment_minutes
        self.online: bool | Exception = True
        self.states: dict[str, list[ExportStatus]] = {}
        self.poll_errors: dict[str, Exception] = {}
        self.fetch_errors: dict[str, Exception] = {}
        self.requested: list[tuple[datetime, datetime]] = []
        self.polled: list[str] = []
        self.fetched: list[str] = []
        self._next_task = 0

    def plan_segments(self, start, end, segment_minutes=None):
        return split_window(start, end, timedelta(minutes=segment_minutes or self.segment_minutes))

    async def camera_online(self, camera: CameraRef) -> bool:
        if isinstance(self.online, Exception):
            raise self.online
        return self.online

    async def request_export(self, camera: CameraRef, segments):
        handles = []
        for start, end in segments:
            self._next_task += 1
            self.requested.append((start, end))
            handles.append(ExportHandle(f"task-{self._next_task}", start, end))
        return handles

    async def poll_export_status(self, task_id: str) -> ExportStatus:
        self.polled.append(task_id)
        if task_id in self.poll_errors:
            raise self.poll_errors[task_id]
        scripted = self.states.get(task_id)
        if scripted:
            return scripted.pop(0)
        return ExportStatus(ExportState.READY)

    async def fetch_chunk(self, task_id: str, dest: Path, timeout=None) -> FetchedChunk:
        self.fetched.append(task_id)
        if task_id in self.fetch_errors:
            raise self.fetch_errors[task_id]
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        data = payload(task_id)
        dest.write_bytes(data)
        return FetchedChunk(str(dest), len(data))


def payload(task_id: str) -> bytes:
    return f"<{task_id}>".encode() * 64


async def seed_camera(session_factory, court_id: int = 7, facility_id: int = 1, **fields) -> Camera:
    async with session_factory() as session:
        camera = Camera(
            name=fields.pop("name", f"Court {court_id}"),
            facility_id=facility_id,
            court_id=court_id,
            device_serial=fields.pop("device_serial", f"NVR-{court_id}"),
            channel_no=fields.pop("channel_no", 1),
            **fields,
        )
        session.add(camera)
        await session.commit()
        return camera


async def seed_recording(
    session_factory,
    camera: Camera | None = None,
    status: RecordingStatus = RecordingStatus.PENDING,
    start: datetime = WINDOW_START,
    end: datetime = WINDOW_END,
    chunks: list[tuple[ChunkStatus, str | None]] | None = None,
    **fields,
) -> Recording:
    """Insert a recording, optionally with 15-minute chunk rows in the given states."""
    async with session_factory() as session:
        recording = Recording(
            facility_id=camera.facility_id if camera else 1,
            court_id=camera.court_id if camera else 7,
            camera_id=camera.id if camera else None,
            start_time=start,
            end_time=end,
            status=status,
            **fields,
        )
        session.add(recording)
        await session.flush()
        if chunks is not None:
            segments = split_window(start, end, timedelta(minutes=15))
            for number, ((chunk_status, task_id), (seg_start, seg_end)) in enumerate(zip(chunks, segments), start=1):
                session.add(RecordingChunk(
                    recording_id=recording.id,
                    chunk_number=number,
                    start_time=seg_start,
                    end_time=seg_end,
                    status=chunk_status,
                    task_id=task_id,
                ))
            recording.total_chunks = len(chunks)
            recording.fetched_chunks = sum(1 for s, _ in chunks if s == ChunkStatus.DOWNLOADED)
        await session.commit()
        return recording


async def load(session_factory, recording_id: int) -> tuple[Recording, list[RecordingChunk]]:
    from sqlalchemy import select

    async with session_factory() as session:
        recording = await session.get(Recording, recording_id)
        result = await session.execute(
            select(RecordingChunk)
            .where(RecordingChunk.recording_id == recording_id)
            .order_by(RecordingChunk.chunk_number)
        )
        return recording, list(result.scalars().all())
