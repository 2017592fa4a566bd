"""Camera gateway client

Export, poll and fetch recorded footage.

The gateway fronts the vendor NVR/camera API. Contract used here:

    GET  /api/cameras/{serial}/channels/{channel}   -> {"online": bool}
    POST /api/exports                               -> {"task_id": str}
    GET  /api/exports/{task_id}                     -> {"status": str, "error": str?}
    GET  /api/exports/{task_id}/file                -> segment bytes
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
import enum
import logging
import os

import httpx

from courtside.pipeline.errors import (
    GatewayError, GatewayUnavailable, RateLimited, ExportRejected, ChunkFetchError,
)

logger = logging.getLogger(__name__)

# Gateway job states folded into the three the pipeline cares about
_PENDING_STATES = {"PENDING", "QUEUED", "RUNNING", "EXPORTING"}
_READY_STATES = {"READY", "COMPLETED", "DONE"}


@dataclass(frozen=True)
class CameraRef:
    """Device channel on the gateway that films a court."""
    device_serial: str
    channel_no: int = 1


@dataclass(frozen=True)
class ExportHandle:
    task_id: str
    start_time: datetime
    end_time: datetime


class ExportState(str, enum.Enum):
    PENDING = "PENDING"
    READY = "READY"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ExportStatus:
    state: ExportState
    error: Optional[str] = None


@dataclass(frozen=True)
class FetchedChunk:
    path: str
    size_bytes: int
    cached: bool = False


def split_window(start: datetime, end: datetime, max_segment: timedelta) -> list[tuple[datetime, datetime]]:
    """Split ``[start, end)`` into consecutive segments no longer than ``max_segment``."""
    if end <= start:
        raise ValueError("end must be after start")
    if max_segment <= timedelta(0):
        raise ValueError("segment length must be positive")
    segments = []
    cursor = start
    while cursor < end:
        segment_end = min(cursor + max_segment, end)
        segments.append((cursor, segment_end))
        cursor = segment_end
    return segments


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body.get("message") or body)
    return str(body)[:200]


def _raise_for_status(response: httpx.Response, context: str) -> None:
    """Translate gateway HTTP errors into the pipeline's transient/permanent taxonomy."""
    status = response.status_code
    if status < 400:
        return
    detail = f"{context}: HTTP {status} {_error_detail(response)}"
    if status == 429:
        raise RateLimited(detail)
    if status >= 500 or status == 408:
        raise GatewayUnavailable(detail)
    if status in (400, 403, 404, 409, 410, 422):
        raise ExportRejected(detail)
    raise GatewayError(detail, transient=False)


class CameraGatewayClient:
    """HTTP client for the camera/NVR gateway."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        segment_minutes: int = 15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.segment_minutes = segment_minutes
        self._transport = transport

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    def plan_segments(self, start: datetime, end: datetime, segment_minutes: Optional[int] = None) -> list[tuple[datetime, datetime]]:
        minutes = segment_minutes or self.segment_minutes
        return split_window(start, end, timedelta(minutes=minutes))

    async def camera_online(self, camera: CameraRef) -> bool:
        """Camera availability check used before creating a recording."""
        path = f"/api/cameras/{camera.device_serial}/channels/{camera.channel_no}"
        try:
            async with self._client() as client:
                response = await client.get(path)
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"camera status {camera.device_serial}: {e}") from e
        if response.status_code == 404:
            return False
        _raise_for_status(response, f"camera status {camera.device_serial}")
        return bool(response.json().get("online", False))

    async def request_export(
        self,
        camera: CameraRef,
        segments: list[tuple[datetime, datetime]],
    ) -> list[ExportHandle]:
        """Ask the gateway to start exporting each segment. One handle per segment, in order."""
        handles = []
        async with self._client() as client:
            for start, end in segments:
                payload = {
                    "device_serial": camera.device_serial,
                    "channel_no": camera.channel_no,
                    "start_time": start.isoformat(),
                    "end_time": end.isoformat(),
                }
                try:
                    response = await client.post("/api/exports", json=payload)
                except httpx.HTTPError as e:
                    raise GatewayUnavailable(f"export request {start.isoformat()}: {e}") from e
                _raise_for_status(response, f"export request {start.isoformat()}")
                task_id = response.json().get("task_id")
                if not task_id:
                    raise GatewayUnavailable("export request accepted without a task id")
                handles.append(ExportHandle(task_id=str(task_id), start_time=start, end_time=end))
        logger.info(f"Gateway accepted {len(handles)} export(s) for {camera.device_serial}/{camera.channel_no}")
        return handles

    async def poll_export_status(self, task_id: str) -> ExportStatus:
        """Non-blocking status check for one export job."""
        try:
            async with self._client() as client:
                response = await client.get(f"/api/exports/{task_id}")
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"export status {task_id}: {e}") from e
        _raise_for_status(response, f"export status {task_id}")
        body = response.json()
        state = str(body.get("status", "")).upper()
        if state in _READY_STATES:
            return ExportStatus(ExportState.READY)
        if state in _PENDING_STATES:
            return ExportStatus(ExportState.PENDING)
        return ExportStatus(ExportState.FAILED, body.get("error") or f"export status {state or 'unknown'}")

    async def fetch_chunk(self, task_id: str, dest: Path, timeout: Optional[float] = None) -> FetchedChunk:
        """Download a READY export to ``dest``.

        Idempotent: if ``dest`` already exists the cached file is reported
        without contacting the gateway. Data is written to a ``.part`` file
        and renamed into place only when complete.
        """
        dest = Path(dest)
        if dest.exists() and dest.stat().st_size > 0:
            return FetchedChunk(str(dest), dest.stat().st_size, cached=True)

        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(dest.name + ".part")
        written = 0
        try:
            async with self._client(timeout=timeout) as client:
                async with client.stream("GET", f"/api/exports/{task_id}/file") as response:
                    if response.status_code >= 400:
                        await response.aread()
                        status = response.status_code
                        detail = f"chunk fetch {task_id}: HTTP {status}"
                        transient = status >= 500 or status in (408, 429)
                        raise ChunkFetchError(detail, transient=transient)
                    expected = None
                    if "Content-Encoding" not in response.headers:
                        expected = response.headers.get("Content-Length")
                    with open(partial, "wb") as fh:
                        async for block in response.aiter_bytes(chunk_size=65536):
                            fh.write(block)
                            written += len(block)
        except httpx.HTTPError as e:
            partial.unlink(missing_ok=True)
            raise ChunkFetchError(f"chunk fetch {task_id}: {e}", transient=True) from e
        except ChunkFetchError:
            partial.unlink(missing_ok=True)
            raise

        if written == 0:
            partial.unlink(missing_ok=True)
            raise ChunkFetchError(f"chunk fetch {task_id}: empty response", transient=True)
        if expected is not None and int(expected) != written:
            partial.unlink(missing_ok=True)
            raise ChunkFetchError(
                f"chunk fetch {task_id}: got {written} of {expected} bytes", transient=True
            )
        os.replace(partial, dest)
        logger.info(f"Fetched export {task_id} -> {dest} ({written} bytes)")
        return FetchedChunk(str(dest), written)
