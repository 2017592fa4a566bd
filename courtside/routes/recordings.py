"""Recordings API routes"""
from fastapi import APIRouter, HTTPException, Depends, Request
from fastapi.responses import FileResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Optional
import logging

from courtside.auth import require_internal_key
from courtside.config import get_settings
from courtside.database import get_db
from courtside.models.recording import Recording, RecordingStatus
from courtside.models.schemas import (
    RecordingCreate, ManualRecordingCreate, RecordingAssociate, RecordingStats,
)
from courtside.pipeline.errors import (
    ArchiveError, RecordingNotFound, RecordingValidationError, RetryNotAllowed,
)
from courtside.pipeline.orchestrator import RecordingOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/recordings", tags=["recordings"])


def get_orchestrator(request: Request) -> RecordingOrchestrator:
    """The orchestrator built in the app lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Recording pipeline not started")
    return orchestrator


async def _get_recording(db: AsyncSession, recording_id: int) -> Recording:
    recording = await db.get(Recording, recording_id)
    if not recording:
        raise HTTPException(status_code=404, detail="Recording not found")
    return recording


@router.get("")
async def list_recordings(
    status: Optional[RecordingStatus] = None,
    court_id: Optional[int] = None,
    facility_id: Optional[int] = None,
    user_id: Optional[int] = None,
    is_manual: Optional[bool] = None,
    limit: int = 100,
    offset: int = 0,
    db: AsyncSession = Depends(get_db),
):
    """List recordings with optional filters, newest first"""
    query = select(Recording)
    if status:
        query = query.where(Recording.status == status)
    if court_id is not None:
        query = query.where(Recording.court_id == court_id)
    if facility_id is not None:
        query = query.where(Recording.facility_id == facility_id)
    if user_id is not None:
        query = query.where(Recording.user_id == user_id)
    if is_manual is not None:
        query = query.where(Recording.is_manual_recording == is_manual)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    query = query.order_by(Recording.created_at.desc(), Recording.id.desc())
    result = await db.execute(query.limit(min(limit, 500)).offset(offset))
    recordings = result.scalars().all()

    return {
        "recordings": [r.to_dict() for r in recordings],
        "count": len(recordings),
        "total": total,
    }


@router.get("/stats", response_model=RecordingStats)
async def recording_stats(db: AsyncSession = Depends(get_db)):
    """Counts by lifecycle bucket"""
    result = await db.execute(select(Recording.status, func.count()).group_by(Recording.status))
    counts = {status: count for status, count in result.all()}
    pending = counts.get(RecordingStatus.PENDING, 0)
    completed = counts.get(RecordingStatus.COMPLETED, 0)
    failed = counts.get(RecordingStatus.FAILED, 0)
    total = sum(counts.values())
    return RecordingStats(
        total=total,
        pending=pending,
        processing=total - pending - completed - failed,
        completed=completed,
        failed=failed,
    )


@router.get("/{recording_id}")
async def get_recording(
    recording_id: int,
    db: AsyncSession = Depends(get_db),
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
):
    """Full detail of one recording, including its chunks"""
    try:
        recording, chunks = await orchestrator.get_with_chunks(db, recording_id)
    except RecordingNotFound:
        raise HTTPException(status_code=404, detail="Recording not found")
    return recording.to_dict(chunks=chunks)


@router.post("", status_code=201, dependencies=[Depends(require_internal_key)])
async def create_recording(
    data: RecordingCreate,
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
):
    """Create a recording (called by the booking system on checkout)"""
    try:
        recording = await orchestrator.create_from_booking(
            data.facility_id, data.court_id, data.start_time, data.end_time,
            user_id=data.user_id, booking_id=data.booking_id,
        )
    except RecordingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return recording.to_dict()


@router.post("/manual", status_code=201)
async def create_manual_recording(
    data: ManualRecordingCreate,
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
):
    """Operator-created recording; camera availability is checked first"""
    try:
        recording = await orchestrator.create_manual(
            data.facility_id, data.court_id, data.start_time, data.end_time,
            user_id=data.user_id, booking_id=data.booking_id, notes=data.notes,
        )
    except RecordingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return recording.to_dict()


@router.post("/{recording_id}/retry")
async def retry_recording(
    recording_id: int,
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
):
    """Resume a FAILED recording at the stage that failed"""
    try:
        recording = await orchestrator.retry(recording_id)
    except RecordingNotFound:
        raise HTTPException(status_code=404, detail="Recording not found")
    except RetryNotAllowed as e:
        raise HTTPException(status_code=409, detail=str(e))
    return recording.to_dict()


@router.post("/{recording_id}/associate")
async def associate_recording(
    recording_id: int,
    data: RecordingAssociate,
    db: AsyncSession = Depends(get_db),
):
    """Attach a user (and optionally a booking) to a recording"""
    recording = await _get_recording(db, recording_id)
    recording.user_id = data.user_id
    if data.booking_id is not None:
        recording.booking_id = data.booking_id
    if data.notes is not None:
        recording.notes = data.notes
    await db.commit()
    logger.info(f"recording {recording_id}: associated with user {data.user_id}")
    return recording.to_dict()


@router.get("/{recording_id}/download")
async def download_recording(
    recording_id: int,
    db: AsyncSession = Depends(get_db),
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
):
    """Redirect to a presigned URL, or serve the file from the local archive"""
    recording = await _get_recording(db, recording_id)
    if recording.status != RecordingStatus.COMPLETED or not recording.consolidated_storage_key:
        raise HTTPException(status_code=409, detail=f"Recording is {recording.status.value}, not COMPLETED")

    archive = orchestrator.archive
    key = recording.consolidated_storage_key
    local_path = archive.local_file(key)
    if local_path:
        filename = key.rsplit("/", 1)[-1]
        media_type = "video/mp2t" if filename.endswith(".ts") else "video/mp4"
        return FileResponse(local_path, media_type=media_type, filename=filename)
    try:
        url = await archive.download_url(key, expires_in=get_settings().presigned_url_ttl_seconds)
    except ArchiveError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if not url:
        raise HTTPException(status_code=404, detail="Recording file not found in archive")
    return RedirectResponse(url, status_code=307)
