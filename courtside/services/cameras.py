"""Camera directory: which gateway device channel films which court."""
from dataclasses import dataclass
from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.models.camera import Camera, CameraStatus
from courtside.pipeline.errors import GatewayError
from courtside.services.gateway import CameraGatewayClient, CameraRef

logger = logging.getLogger(__name__)


@dataclass
class CameraAvailability:
    available: bool
    camera_id: Optional[int] = None
    camera_name: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "camera_id": self.camera_id,
            "camera_name": self.camera_name,
            "reason": self.reason,
        }


def camera_ref(camera: Camera) -> CameraRef:
    return CameraRef(device_serial=camera.device_serial, channel_no=camera.channel_no or 1)


async def camera_for_court(session: AsyncSession, court_id: int) -> Optional[Camera]:
    result = await session.execute(select(Camera).where(Camera.court_id == court_id))
    return result.scalar_one_or_none()


async def list_cameras(session: AsyncSession, facility_id: Optional[int] = None) -> list[Camera]:
    query = select(Camera)
    if facility_id is not None:
        query = query.where(Camera.facility_id == facility_id)
    result = await session.execute(query.order_by(Camera.facility_id, Camera.court_id))
    return list(result.scalars().all())


async def upsert_camera(session: AsyncSession, data: dict) -> Camera:
    """Create or replace the camera mapped to ``data["court_id"]``."""
    camera = await camera_for_court(session, data["court_id"])
    if camera is None:
        camera = Camera(court_id=data["court_id"])
        session.add(camera)
    for field in ("name", "facility_id", "device_serial", "channel_no", "status"):
        if data.get(field) is not None:
            setattr(camera, field, data[field])
    if data.get("metadata") is not None:
        camera.metadata_ = data["metadata"]
    await session.flush()
    logger.info(f"Camera for court {camera.court_id} -> {camera.device_serial}/{camera.channel_no}")
    return camera


async def check_camera_availability(
    session: AsyncSession,
    gateway: CameraGatewayClient,
    facility_id: int,
    court_id: int,
) -> CameraAvailability:
    """Directory lookup plus a live gateway check.

    Gateway errors are reported as unavailable rather than raised so the
    operator sees a reason instead of a server error.
    """
    camera = await camera_for_court(session, court_id)
    if camera is None:
        return CameraAvailability(False, reason=f"No camera provisioned for court {court_id}")
    if camera.facility_id != facility_id:
        return CameraAvailability(
            False, camera.id, camera.name,
            reason=f"Court {court_id} does not belong to facility {facility_id}",
        )
    if camera.status != CameraStatus.ACTIVE.value:
        return CameraAvailability(False, camera.id, camera.name, reason=f"Camera is {camera.status}")
    try:
        online = await gateway.camera_online(camera_ref(camera))
    except GatewayError as e:
        logger.warning(f"Availability check for court {court_id} failed: {e}")
        return CameraAvailability(False, camera.id, camera.name, reason=f"Camera gateway error: {e.message}")
    if not online:
        return CameraAvailability(False, camera.id, camera.name, reason="Camera is offline")
    return CameraAvailability(True, camera.id, camera.name)
