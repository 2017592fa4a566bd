"""Camera database models"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


class CameraStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    OFFLINE = "OFFLINE"
    MAINTENANCE = "MAINTENANCE"
    ERROR = "ERROR"


class Camera(Base):
    """Camera model - maps a court to a device channel on the camera gateway"""
    __tablename__ = "cameras"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    facility_id = Column(Integer, nullable=False, index=True)
    court_id = Column(Integer, nullable=False, unique=True, index=True)
    device_serial = Column(String(100), nullable=False)
    channel_no = Column(Integer, nullable=False, default=1)
    status = Column(String(50), default=CameraStatus.ACTIVE.value, index=True)
    metadata_ = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "facility_id": self.facility_id,
            "court_id": self.court_id,
            "device_serial": self.device_serial,
            "channel_no": self.channel_no,
            "status": self.status,
            "metadata": self.metadata_ or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
