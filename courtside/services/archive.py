"""Archive store

Durable home for consolidated recordings.

Uploads are idempotent upserts keyed by the recording's external id: if an
object with the same key and size already exists, the upload is skipped.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import asyncio
import logging
import os
import shutil
import uuid

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from courtside.config import Settings
from courtside.pipeline.errors import ArchiveError

logger = logging.getLogger(__name__)

LOCAL_BUCKET = "local"


@dataclass(frozen=True)
class ArchivedObject:
    bucket: str
    key: str
    size_bytes: int
    skipped: bool = False


def archive_key(prefix: str, recording_id: str, suffix: str = ".mp4") -> str:
    """Deterministic object key for a recording."""
    prefix = prefix.strip("/")
    name = f"{recording_id}{suffix}"
    return f"{prefix}/{name}" if prefix else name


class S3ArchiveStore:
    """S3 / Spaces / MinIO bucket."""

    def __init__(
        self,
        bucket: str,
        access_key: str = "",
        secret_key: str = "",
        region: str = "",
        endpoint: str = "",
        prefix: str = "recordings",
        client=None,
    ):
        self.bucket = bucket
        self.prefix = prefix
        if client is None:
            s3_kwargs = {
                "aws_access_key_id": access_key or None,
                "aws_secret_access_key": secret_key or None,
                "region_name": region or "us-east-1",
            }
            if endpoint:
                if not endpoint.startswith("http"):
                    endpoint = f"https://{endpoint}"
                s3_kwargs["endpoint_url"] = endpoint
            client = boto3.client("s3", **s3_kwargs)
        self._s3 = client

    def key_for(self, recording_id: str, suffix: str = ".mp4") -> str:
        return archive_key(self.prefix, recording_id, suffix)

    def _existing_size(self, key: str) -> Optional[int]:
        try:
            head = self._s3.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return None
            raise ArchiveError(f"head {self.bucket}/{key} failed: {e}") from e
        return int(head.get("ContentLength", -1))

    def put(self, local_path: str, key: str) -> ArchivedObject:
        size = os.path.getsize(local_path)
        try:
            existing = self._existing_size(key)
            if existing == size:
                logger.info(f"{self.bucket}/{key} already archived ({size} bytes), skipping upload")
                return ArchivedObject(self.bucket, key, size, skipped=True)
            logger.info(f"Uploading {local_path} to {self.bucket}/{key}")
            self._s3.upload_file(local_path, self.bucket, key)
        except (ClientError, BotoCoreError) as e:
            raise ArchiveError(f"upload to {self.bucket}/{key} failed: {e}") from e
        return ArchivedObject(self.bucket, key, size)

    async def upload(self, local_path: str, key: str) -> ArchivedObject:
        return await asyncio.to_thread(self.put, local_path, key)

    async def download_url(self, key: str, expires_in: int = 3600) -> Optional[str]:
        """Presigned GET URL for an archived object."""
        try:
            return await asyncio.to_thread(
                self._s3.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise ArchiveError(f"presign {self.bucket}/{key} failed: {e}") from e

    def local_file(self, key: str) -> Optional[str]:
        return None


class LocalArchiveStore:
    """Archive to a directory on disk; used when no bucket is configured."""

    bucket = LOCAL_BUCKET

    def __init__(self, root: str, prefix: str = "recordings"):
        self.root = Path(root)
        self.prefix = prefix

    def key_for(self, recording_id: str, suffix: str = ".mp4") -> str:
        return archive_key(self.prefix, recording_id, suffix)

    def _path(self, key: str) -> Path:
        path = (self.root / self.bucket / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ArchiveError(f"key escapes archive root: {key}")
        return path

    def put(self, local_path: str, key: str) -> ArchivedObject:
        """Copy ``local_path`` to ``key``. Blocking; each call writes its own temp file."""
        target = self._path(key)
        partial = target.with_name(f"{target.name}.{uuid.uuid4().hex[:8]}.part")
        try:
            size = os.path.getsize(local_path)
            if target.is_file() and target.stat().st_size == size:
                logger.info(f"{target} already archived ({size} bytes), skipping copy")
                return ArchivedObject(self.bucket, key, size, skipped=True)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(local_path, partial)
            os.replace(partial, target)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise ArchiveError(f"archive copy to {target} failed: {e}") from e
        logger.info(f"Archived {local_path} -> {target}")
        return ArchivedObject(self.bucket, key, size)

    async def upload(self, local_path: str, key: str) -> ArchivedObject:
        return await asyncio.to_thread(self.put, local_path, key)

    async def download_url(self, key: str, expires_in: int = 3600) -> Optional[str]:
        return None

    def local_file(self, key: str) -> Optional[str]:
        path = self._path(key)
        return str(path) if path.is_file() else None


def build_archive_store(settings: Settings):
    """Pick the archive backend from configuration."""
    if settings.cloud_storage_enabled and settings.cloud_storage_bucket:
        return S3ArchiveStore(
            bucket=settings.cloud_storage_bucket,
            access_key=settings.cloud_storage_access_key,
            secret_key=settings.cloud_storage_secret_key,
            region=settings.cloud_storage_region,
            endpoint=settings.cloud_storage_endpoint,
            prefix=settings.archive_prefix,
        )
    if settings.cloud_storage_enabled:
        logger.warning("Cloud storage enabled without a bucket, archiving locally")
    return LocalArchiveStore(settings.local_archive_dir, prefix=settings.archive_prefix)
