"""Unit tests for the worker HTTP routes."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient

from brandrr.api.dependencies import get_media_probe, get_scheduler, get_storage_dispatcher
from brandrr.config import get_settings
from brandrr.core.exceptions import StorageConfigError
from brandrr.main import create_app
from brandrr.schemas.job import Destination, JobPayload

AUTH = {"Authorization": "Bearer worker-secret"}


class _FakeScheduler:
    def __init__(self) -> None:
        self.submitted: list[JobPayload] = []

    def submit(self, payload: JobPayload) -> None:
        self.submitted.append(payload)


class _FakeDispatcher:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.verified: list[Destination] = []

    async def verify(self, destination: Destination) -> None:
        self.verified.append(destination)
        if self.error is not None:
            raise self.error


class _FakeProbe:
    async def probe(self, url: str | None, mime_type: str | None = None) -> dict[str, Any]:
        return {"kind": "video", "size_bytes": 10, "duration_minutes": 1.5}


@pytest.fixture
def scheduler() -> _FakeScheduler:
    return _FakeScheduler()


@pytest.fixture
def client(scheduler: _FakeScheduler) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: SimpleNamespace(worker_api_key="worker-secret")
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_media_probe] = lambda: _FakeProbe()
    return TestClient(app)


def test_health_needs_no_auth(client: TestClient) -> None:
    response = client.get("/v1/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_start_job_rejects_bad_token(client: TestClient, scheduler: _FakeScheduler) -> None:
    missing = client.post("/v1/jobs/start", json={"job_id": "J1"})
    wrong = client.post("/v1/jobs/start", json={"job_id": "J1"}, headers={"Authorization": "Bearer nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert scheduler.submitted == []


def test_unconfigured_worker_key_is_server_error() -> None:
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: SimpleNamespace(worker_api_key=None)

    response = TestClient(app).post("/v1/jobs/start", json={"job_id": "J1"}, headers=AUTH)

    assert response.status_code == 500


def test_start_job_requires_job_id(client: TestClient, scheduler: _FakeScheduler) -> None:
    response = client.post("/v1/jobs/start", json={"job_type": "image_brand"}, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing job_id"
    assert scheduler.submitted == []


def test_start_job_accepts_and_schedules(client: TestClient, scheduler: _FakeScheduler) -> None:
    response = client.post(
        "/v1/jobs/start",
        json={
            "job_id": "J1",
            "job_type": "video_brand",
            "inputs": [{"temp_path": "https://files.example/a.mp4", "filename": "a.mp4"}],
            "callback_url": "https://app.example/cb",
        },
        headers=AUTH,
    )

    assert response.status_code == 200
    assert response.json() == {"accepted": True}
    assert scheduler.submitted[0].job_id == "J1"
    assert scheduler.submitted[0].inputs[0].temp_url == "https://files.example/a.mp4"
    assert scheduler.submitted[0].callback.url == "https://app.example/cb"


def test_start_job_rejects_invalid_payload(client: TestClient) -> None:
    response = client.post("/v1/jobs/start", json={"job_id": "J1", "job_type": "gif_brand"}, headers=AUTH)

    assert response.status_code == 422


def test_storage_test_reports_success_and_failure(client: TestClient) -> None:
    ok_dispatcher = _FakeDispatcher()
    client.app.dependency_overrides[get_storage_dispatcher] = lambda: ok_dispatcher
    ok = client.post("/v1/storage/test", json={"destination": {"provider": "s3", "bucket": "b"}}, headers=AUTH)

    failing = _FakeDispatcher(error=StorageConfigError("Missing bucket name. Please check your storage configuration."))
    client.app.dependency_overrides[get_storage_dispatcher] = lambda: failing
    failed = client.post("/v1/storage/test", json={"destination": {"provider": "s3"}}, headers=AUTH)

    missing = client.post("/v1/storage/test", json={}, headers=AUTH)

    assert ok.status_code == 200
    assert ok.json() == {"ok": True}
    assert ok_dispatcher.verified[0].bucket == "b"
    assert failed.status_code == 400
    assert failed.json() == {"ok": False, "message": "Missing bucket name. Please check your storage configuration."}
    assert missing.status_code == 400


def test_media_probe_returns_meta(client: TestClient) -> None:
    response = client.post("/v1/media/probe", json={"temp_url": "https://files.example/a.mp4"}, headers=AUTH)
    missing = client.post("/v1/media/probe", json={}, headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"ok": True, "meta": {"kind": "video", "size_bytes": 10, "duration_minutes": 1.5}}
    assert missing.status_code == 400
