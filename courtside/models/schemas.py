"""Pydantic schemas for API request/response validation"""
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional, Any

from courtside.models.camera import CameraStatus


class RecordingCreate(BaseModel):
    """Recording request from the booking system (on checkout)"""
    facility_id: int
    court_id: int
    start_time: datetime
    end_time: datetime
    user_id: Optional[int] = None
    booking_id: Optional[int] = None


class ManualRecordingCreate(BaseModel):
    """Operator-created recording. Fields are optional here so missing
    values surface as 400 validation errors rather than 422."""
    facility_id: Optional[int] = None
    court_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    user_id: Optional[int] = None
    booking_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=2000)

    class Config:
        json_schema_extra = {
            "example": {
                "facility_id": 3,
                "court_id": 12,
                "start_time": "2026-03-01T09:00:00Z",
                "end_time": "2026-03-01T09:45:00Z",
                "user_id": 481,
            }
        }


class RecordingAssociate(BaseModel):
    """Link a recording to a user/booking after the fact"""
    user_id: int
    booking_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=2000)


class RecordingStats(BaseModel):
    total: int
    pending: int
    processing: int
    completed: int
    failed: int


class CameraUpsert(BaseModel):
    """Map a court to a gateway device channel"""
    court_id: int
    facility_id: int
    name: str = Field(..., min_length=1, max_length=255)
    device_serial: str = Field(..., min_length=1, max_length=100)
    channel_no: int = Field(1, ge=1)
    status: CameraStatus = CameraStatus.ACTIVE
    metadata: Optional[dict[str, Any]] = None


class CameraAvailabilityResponse(BaseModel):
    available: bool
    camera_id: Optional[int] = None
    camera_name: Optional[str] = None
    reason: Optional[str] = None


class PipelineSettings(BaseModel):
    segment_minutes: int
    max_retries: int
    poll_timeout_seconds: float
    consolidation_method: str
    delete_local_after_upload: bool


class PipelineSettingsUpdate(BaseModel):
    segment_minutes: Optional[int] = Field(None, ge=1, le=60)
    max_retries: Optional[int] = Field(None, ge=1, le=50)
    poll_timeout_seconds: Optional[float] = Field(None, gt=0)
    consolidation_method: Optional[str] = Field(None, pattern="^(ffmpeg|ts-concat)$")
    delete_local_after_upload: Optional[bool] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    timestamp: datetime
    workers: int = 0
