"""Tests for the recordings, cameras and settings HTTP API."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from pathlib import Path

import pytest

pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from courtside import main as app_module
from courtside.config import get_settings
from courtside.database import get_db
from courtside.models.recording import ChunkStatus, RecordingStatus
from courtside.services.settings_service import SettingsService

from helpers import seed_camera, seed_recording


@pytest.fixture
def client(session_factory, orchestrator, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = app_module.app
    app.dependency_overrides[get_db] = _get_db
    app.state.orchestrator = orchestrator
    monkeypatch.setattr(
        "courtside.routes.settings.settings_service",
        SettingsService(session_factory=session_factory),
    )
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.orchestrator = None


def _window(minutes: int = 45) -> tuple[str, str]:
    end = datetime.utcnow() - timedelta(minutes=10)
    return (end - timedelta(minutes=minutes)).isoformat() + "Z", end.isoformat() + "Z"


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_manual_create_then_list_and_stats(client: TestClient, session_factory) -> None:
    asyncio.run(seed_camera(session_factory, court_id=7, facility_id=1))
    start, end = _window()

    created = client.post(
        "/api/recordings/manual",
        json={"facility_id": 1, "court_id": 7, "start_time": start, "end_time": end, "user_id": 5},
    )
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["status"] == "PENDING"
    assert body["is_manual_recording"] is True
    assert body["user_id"] == 5

    listed = client.get("/api/recordings", params={"court_id": 7, "is_manual": True}).json()
    assert listed["total"] == 1
    assert listed["recordings"][0]["recording_id"] == body["recording_id"]
    assert client.get("/api/recordings", params={"court_id": 8}).json()["total"] == 0

    stats = client.get("/api/recordings/stats").json()
    assert stats == {"total": 1, "pending": 1, "processing": 0, "completed": 0, "failed": 0}


@pytest.mark.parametrize(
    "payload",
    [
        {"facility_id": 1, "start_time": "2026-01-01T09:00:00", "end_time": "2026-01-01T09:45:00"},
        {"facility_id": 1, "court_id": 7, "start_time": "2026-01-01T09:45:00", "end_time": "2026-01-01T09:00:00"},
        {"facility_id": 1, "court_id": 7, "start_time": "2026-01-01T06:00:00", "end_time": "2026-01-01T09:00:00"},
        {"facility_id": 2, "court_id": 7, "start_time": "2026-01-01T09:00:00", "end_time": "2026-01-01T09:45:00"},
    ],
)
def test_manual_create_validation_errors(client: TestClient, session_factory, payload: dict) -> None:
    asyncio.run(seed_camera(session_factory, court_id=7, facility_id=1))

    response = client.post("/api/recordings/manual", json=payload)

    assert response.status_code == 400
    assert client.get("/api/recordings/stats").json()["total"] == 0


def test_manual_create_rejected_when_camera_offline(client: TestClient, session_factory, gateway) -> None:
    asyncio.run(seed_camera(session_factory, court_id=7, facility_id=1))
    gateway.online = False
    start, end = _window()

    response = client.post(
        "/api/recordings/manual",
        json={"facility_id": 1, "court_id": 7, "start_time": start, "end_time": end},
    )

    assert response.status_code == 400
    assert "offline" in response.json()["detail"]


def test_detail_includes_chunks(client: TestClient, session_factory) -> None:
    recording = asyncio.run(seed_recording(
        session_factory,
        status=RecordingStatus.DOWNLOADING,
        chunks=[(ChunkStatus.DOWNLOADED, "t1"), (ChunkStatus.READY, "t2"), (ChunkStatus.READY, "t3")],
    ))

    detail = client.get(f"/api/recordings/{recording.id}").json()

    assert [c["chunk_number"] for c in detail["chunks"]] == [1, 2, 3]
    assert detail["fetched_chunks"] == 1
    assert detail["progress_percent"] == pytest.approx(33.3)
    assert client.get("/api/recordings/999").status_code == 404


def test_retry_endpoint(client: TestClient, session_factory) -> None:
    pending = asyncio.run(seed_recording(session_factory))
    failed = asyncio.run(seed_recording(
        session_factory, status=RecordingStatus.FAILED,
        failed_stage=RecordingStatus.CONSOLIDATING, error_message="chunk 2 file missing",
    ))
    exhausted = asyncio.run(seed_recording(session_factory, status=RecordingStatus.FAILED, retry_count=5, max_retries=5))

    assert client.post(f"/api/recordings/{pending.id}/retry").status_code == 409
    refused = client.post(f"/api/recordings/{exhausted.id}/retry")
    assert refused.status_code == 409
    assert "Retry limit" in refused.json()["detail"]
    assert client.post("/api/recordings/999/retry").status_code == 404

    retried = client.post(f"/api/recordings/{failed.id}/retry")
    assert retried.status_code == 200
    assert retried.json()["status"] == "CONSOLIDATING"
    assert retried.json()["retry_count"] == 1
    assert client.get(f"/api/recordings/{exhausted.id}").json()["retry_count"] == 5


def test_associate(client: TestClient, session_factory) -> None:
    recording = asyncio.run(seed_recording(session_factory, is_manual_recording=True))

    response = client.post(
        f"/api/recordings/{recording.id}/associate",
        json={"user_id": 77, "booking_id": 1234, "notes": "walk-in"},
    )

    assert response.status_code == 200
    assert (response.json()["user_id"], response.json()["booking_id"], response.json()["notes"]) == (77, 1234, "walk-in")


def test_download(client: TestClient, session_factory, archive, tmp_path: Path) -> None:
    source = tmp_path / "merged.ts"
    source.write_bytes(b"video" * 10)
    key = "recordings/abc.ts"
    asyncio.run(archive.upload(str(source), key))
    done = asyncio.run(seed_recording(
        session_factory, status=RecordingStatus.COMPLETED,
        consolidated_storage_key=key, consolidated_storage_bucket="local",
    ))
    busy = asyncio.run(seed_recording(session_factory, status=RecordingStatus.UPLOADING))

    assert client.get(f"/api/recordings/{busy.id}/download").status_code == 409
    response = client.get(f"/api/recordings/{done.id}/download")
    assert response.status_code == 200
    assert response.content == b"video" * 10


def test_booking_trigger_requires_internal_key(client: TestClient, session_factory, monkeypatch: pytest.MonkeyPatch) -> None:
    asyncio.run(seed_camera(session_factory, court_id=7, facility_id=1))
    monkeypatch.setattr(get_settings(), "internal_api_key", "cluster-key")
    start, end = _window()
    payload = {"facility_id": 1, "court_id": 7, "start_time": start, "end_time": end, "booking_id": 9}

    assert client.post("/api/recordings", json=payload).status_code == 401
    response = client.post("/api/recordings", json=payload, headers={"X-Internal-Key": "cluster-key"})

    assert response.status_code == 201
    assert response.json()["is_manual_recording"] is False
    assert response.json()["booking_id"] == 9


def test_cameras_upsert_and_availability(client: TestClient, gateway) -> None:
    camera = {"court_id": 3, "facility_id": 1, "name": "Court 3", "device_serial": "NVR-A", "channel_no": 3}
    assert client.post("/api/cameras", json=camera).status_code == 200
    camera["device_serial"] = "NVR-B"
    updated = client.post("/api/cameras", json=camera).json()
    assert updated["device_serial"] == "NVR-B"
    assert client.get("/api/cameras").json()["total"] == 1

    available = client.get("/api/cameras/3/availability", params={"facility_id": 1}).json()
    assert available == {"available": True, "camera_id": updated["id"], "camera_name": "Court 3", "reason": None}

    wrong_facility = client.get("/api/cameras/3/availability", params={"facility_id": 2}).json()
    assert wrong_facility["available"] is False

    missing = client.get("/api/cameras/4/availability", params={"facility_id": 1}).json()
    assert missing["available"] is False
    assert "No camera" in missing["reason"]


def test_pipeline_settings_round_trip(client: TestClient) -> None:
    defaults = client.get("/api/settings/pipeline").json()
    assert defaults["segment_minutes"] == 15
    assert defaults["consolidation_method"] == "ffmpeg"

    updated = client.put(
        "/api/settings/pipeline",
        json={"segment_minutes": 10, "consolidation_method": "ts-concat", "delete_local_after_upload": False},
    ).json()

    assert updated["segment_minutes"] == 10
    assert updated["consolidation_method"] == "ts-concat"
    assert updated["delete_local_after_upload"] is False
    assert client.put("/api/settings/pipeline", json={"consolidation_method": "avi"}).status_code == 422
