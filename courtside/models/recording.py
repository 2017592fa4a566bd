"""Recording models for match recordings and their exported chunks"""
from sqlalchemy import (
    Column, String, DateTime, Integer, BigInteger, Float, Text, Boolean,
    ForeignKey, UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
import uuid

from courtside.models.camera import Base


class RecordingStatus(str, enum.Enum):
    """Recording lifecycle status"""
    PENDING = "PENDING"
    REQUESTING_CHUNKS = "REQUESTING_CHUNKS"
    POLLING = "POLLING"
    DOWNLOADING = "DOWNLOADING"
    CONSOLIDATING = "CONSOLIDATING"
    UPLOADING = "UPLOADING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ChunkStatus(str, enum.Enum):
    """Chunk status enum"""
    PENDING = "PENDING"
    REQUESTED = "REQUESTED"
    READY = "READY"
    DOWNLOADED = "DOWNLOADED"
    FAILED = "FAILED"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Recording(Base):
    """Recording model - one capture session for a court and time window"""
    __tablename__ = "recordings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recording_id = Column(String(36), nullable=False, unique=True, index=True,
                          default=lambda: str(uuid.uuid4()))  # External identifier
    facility_id = Column(Integer, nullable=False, index=True)
    court_id = Column(Integer, nullable=False, index=True)
    camera_id = Column(Integer, ForeignKey("cameras.id", ondelete="SET NULL"), nullable=True)
    booking_id = Column(Integer, nullable=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(SQLEnum(RecordingStatus, native_enum=False, length=32),
                    nullable=False, default=RecordingStatus.PENDING, index=True)
    failed_stage = Column(SQLEnum(RecordingStatus, native_enum=False, length=32), nullable=True)

    total_chunks = Column(Integer, nullable=False, default=0)
    fetched_chunks = Column(Integer, nullable=False, default=0)  # Chunks fetched from the camera
    consolidated_chunks = Column(Integer, nullable=False, default=0)
    total_duration_seconds = Column(Float, nullable=True)
    total_file_size_bytes = Column(BigInteger, nullable=True)

    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=5)
    error_message = Column(Text, nullable=True)

    consolidated_storage_key = Column(String(512), nullable=True)
    consolidated_storage_bucket = Column(String(255), nullable=True)
    is_manual_recording = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    lease_owner = Column(String(100), nullable=True)
    lease_expires_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    consolidation_started_at = Column(DateTime, nullable=True)
    consolidation_completed_at = Column(DateTime, nullable=True)
    archive_uploaded_at = Column(DateTime, nullable=True)
    last_retry_at = Column(DateTime, nullable=True)
    notification_sent_at = Column(DateTime, nullable=True)

    chunks = relationship(
        "RecordingChunk",
        back_populates="recording",
        cascade="all, delete-orphan",
        order_by="RecordingChunk.chunk_number",
    )

    @property
    def progress_percent(self) -> float:
        if not self.total_chunks:
            return 0.0
        return round(100.0 * (self.fetched_chunks or 0) / self.total_chunks, 1)

    def to_dict(self, chunks: list | None = None) -> dict:
        data = {
            "id": self.id,
            "recording_id": self.recording_id,
            "facility_id": self.facility_id,
            "court_id": self.court_id,
            "camera_id": self.camera_id,
            "booking_id": self.booking_id,
            "user_id": self.user_id,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "status": self.status.value if self.status else None,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "total_chunks": self.total_chunks,
            "fetched_chunks": self.fetched_chunks,
            "consolidated_chunks": self.consolidated_chunks,
            "progress_percent": self.progress_percent,
            "total_duration_seconds": self.total_duration_seconds,
            "total_file_size_bytes": self.total_file_size_bytes,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "can_retry": self.status == RecordingStatus.FAILED and self.retry_count < self.max_retries,
            "error_message": self.error_message,
            "consolidated_storage_key": self.consolidated_storage_key,
            "consolidated_storage_bucket": self.consolidated_storage_bucket,
            "is_manual_recording": self.is_manual_recording,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "consolidation_started_at": _iso(self.consolidation_started_at),
            "consolidation_completed_at": _iso(self.consolidation_completed_at),
            "archive_uploaded_at": _iso(self.archive_uploaded_at),
            "last_retry_at": _iso(self.last_retry_at),
            "notification_sent_at": _iso(self.notification_sent_at),
        }
        if chunks is not None:
            data["chunks"] = [c.to_dict() for c in chunks]
        return data


class RecordingChunk(Base):
    """One exported segment of camera footage, owned by a recording"""
    __tablename__ = "recording_chunks"
    __table_args__ = (
        UniqueConstraint("recording_id", "chunk_number", name="uq_recording_chunk_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    recording_id = Column(Integer, ForeignKey("recordings.id", ondelete="CASCADE"), nullable=False, index=True)
    chunk_number = Column(Integer, nullable=False)  # 1-based, defines ordering
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(SQLEnum(ChunkStatus, native_enum=False, length=32),
                    nullable=False, default=ChunkStatus.PENDING)
    task_id = Column(String(255), nullable=True)  # Export task id assigned by the gateway
    local_path = Column(Text, nullable=True)
    file_size_bytes = Column(BigInteger, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    recording = relationship("Recording", back_populates="chunks")

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chunk_number": self.chunk_number,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "status": self.status.value if self.status else None,
            "duration_seconds": self.duration_seconds,
            "task_id": self.task_id,
            "local_path": self.local_path,
            "file_size_bytes": self.file_size_bytes,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
