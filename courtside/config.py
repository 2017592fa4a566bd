"""Courtside Recorder Configuration"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    app_name: str = "Courtside Recorder"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # Database - prefer DATABASE_URL env var if set
    database_url_env: str | None = Field(default=None, alias="DATABASE_URL")
    db_host: str = "postgres"
    db_port: int = 5432
    db_user: str = "courtside"
    db_password: str = "courtside"
    db_name: str = "courtside"

    @property
    def database_url(self) -> str:
        """Get async database URL (asyncpg for postgres, aiosqlite passes through)"""
        if self.database_url_env:
            url = self.database_url_env
            if url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
            elif url.startswith("sqlite://"):
                url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
            return url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Intra-cluster callers (booking system)
    internal_api_key: str = ""

    # Camera gateway
    camera_gateway_url: str = "http://camera-gateway:8080"
    camera_gateway_token: str = ""

    # Pipeline
    work_dir: str = "/var/lib/courtside"
    segment_minutes: int = 15
    max_retries: int = 5
    max_recording_minutes: int = 120
    retry_base_delay_seconds: float = 5.0
    retry_max_delay_seconds: float = 300.0
    poll_interval_seconds: float = 5.0
    poll_max_interval_seconds: float = 60.0
    poll_timeout_seconds: float = 1800.0
    export_timeout_seconds: float = 30.0
    download_timeout_seconds: float = 600.0
    consolidation_timeout_seconds: float = 900.0
    upload_timeout_seconds: float = 1800.0
    continuity_tolerance_seconds: float = 2.0
    consolidation_method: str = "ffmpeg"  # "ffmpeg" | "ts-concat"
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Scheduling
    worker_concurrency: int = 4
    rescan_interval_seconds: float = 30.0
    lease_seconds: int = 900
    dispatch_mode: str = "local"  # "local" | "celery"
    redis_url: str = "redis://redis:6379/0"

    # Archive
    cloud_storage_enabled: bool = False
    cloud_storage_access_key: str = ""
    cloud_storage_secret_key: str = ""
    cloud_storage_bucket: str = ""
    cloud_storage_region: str = ""
    cloud_storage_endpoint: str = ""
    archive_prefix: str = "recordings"
    local_archive_dir: str = "/var/lib/courtside/archive"
    delete_local_after_upload: bool = True
    presigned_url_ttl_seconds: int = 3600

    # Notifications
    notify_webhook_url: str = ""


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
