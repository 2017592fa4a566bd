"""Camera directory API routes"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database import get_db
from courtside.models.schemas import CameraUpsert, CameraAvailabilityResponse
from courtside.pipeline.orchestrator import RecordingOrchestrator
from courtside.routes.recordings import get_orchestrator
from courtside.services import cameras as camera_directory

router = APIRouter(prefix="/api/cameras", tags=["cameras"])


@router.get("")
async def list_cameras(
    facility_id: Optional[int] = Query(None, description="Filter by facility"),
    db: AsyncSession = Depends(get_db),
):
    """List court cameras"""
    cameras = await camera_directory.list_cameras(db, facility_id)
    return {"cameras": [c.to_dict() for c in cameras], "total": len(cameras)}


@router.post("")
async def upsert_camera(data: CameraUpsert, db: AsyncSession = Depends(get_db)):
    """Create or replace the camera mapped to a court"""
    payload = data.model_dump()
    payload["status"] = data.status.value
    camera = await camera_directory.upsert_camera(db, payload)
    await db.commit()
    return camera.to_dict()


@router.get("/{court_id}/availability", response_model=CameraAvailabilityResponse)
async def camera_availability(
    court_id: int,
    facility_id: int = Query(..., description="Facility the court belongs to"),
    db: AsyncSession = Depends(get_db),
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
):
    """Check a court has a working camera before creating a recording"""
    availability = await camera_directory.check_camera_availability(
        db, orchestrator.gateway, facility_id, court_id,
    )
    return availability.to_dict()
