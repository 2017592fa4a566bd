"""Settings database model for runtime-tunable pipeline config."""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime

from courtside.models.camera import Base


class Setting(Base):
    """Key-value settings stored in the database."""
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Setting {self.key}={self.value!r}>"


# Defaults used to seed the table on first boot
DEFAULTS = {
    "SEGMENT_MINUTES": "15",
    "MAX_RETRIES": "5",
    "POLL_TIMEOUT_SECONDS": "1800",
    "CONSOLIDATION_METHOD": "ffmpeg",
    "DELETE_LOCAL_AFTER_UPLOAD": "true",
}
