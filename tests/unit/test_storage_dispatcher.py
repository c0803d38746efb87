"""Unit tests for storage routing and the Drive refresh-once rule."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from brandrr.core.exceptions import DriveAuthorizationError, StorageConfigError, UnsupportedProviderError
from brandrr.integrations.google_drive import DriveFile
from brandrr.schemas.job import Destination
from brandrr.services.storage_dispatcher import StorageDispatcher


def _settings(**overrides: Any) -> SimpleNamespace:
    values: dict[str, Any] = {"google_client_id": None, "google_client_secret": None}
    values.update(overrides)
    return SimpleNamespace(**values)


def _drive_destination(**overrides: Any) -> Destination:
    data: dict[str, Any] = {
        "provider": "google_drive",
        "base_path": "Brandrr/Exports",
        "oauth_access_token": "expired-token",
        "oauth_refresh_token": "refresh-token",
        "google_client_id": "client-id",
        "google_client_secret": "client-secret",
    }
    data.update(overrides)
    return Destination.model_validate(data)


class _FakeDrive:
    def __init__(self, upload_failures: int = 0) -> None:
        self.upload_failures = upload_failures
        self.upload_calls = 0
        self.refresh_calls: list[dict[str, str]] = []
        self.folder_paths: list[tuple[list[str], str]] = []
        self.uploaded: list[dict[str, Any]] = []

    async def __aenter__(self) -> "_FakeDrive":
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    async def ensure_folder_path(self, segments: list[str], root_folder_id: str = "root") -> str:
        self.folder_paths.append((segments, root_folder_id))
        return "folder-1"

    async def upload_file(self, **kwargs: Any) -> DriveFile:
        self.upload_calls += 1
        if self.upload_calls <= self.upload_failures:
            raise DriveAuthorizationError()
        self.uploaded.append(kwargs)
        return DriveFile(file_id="file-1", web_view_link="https://drive.example/file-1")

    async def refresh_access_token(self, **kwargs: str) -> str:
        self.refresh_calls.append(kwargs)
        return "fresh-token"

    async def get_about(self) -> dict[str, Any]:
        return {"user": {"emailAddress": "owner@example.com"}}


@pytest.mark.asyncio
async def test_drive_upload_refreshes_once_after_authorization_failure(tmp_path: Path) -> None:
    drive = _FakeDrive(upload_failures=1)
    dispatcher = StorageDispatcher(app_settings=_settings(), drive_factory=lambda _dest: drive)
    local_file = tmp_path / "branded-a.png"
    local_file.write_bytes(b"png")

    stored = await dispatcher.upload(_drive_destination(), local_file, "J1/branded-a.png", "image/png")

    assert stored.storage_path == "gdrive://file-1"
    assert stored.retrievable_link == "https://drive.example/file-1"
    assert drive.refresh_calls == [
        {
            "refresh_token": "refresh-token",
            "client_id": "client-id",
            "client_secret": "client-secret",
        }
    ]
    assert drive.upload_calls == 2
    assert drive.folder_paths[0] == (["Brandrr", "Exports", "J1"], "root")
    assert drive.uploaded[0]["filename"] == "branded-a.png"
    assert drive.uploaded[0]["mime_type"] == "image/png"


@pytest.mark.asyncio
async def test_second_authorization_failure_is_fatal(tmp_path: Path) -> None:
    drive = _FakeDrive(upload_failures=2)
    dispatcher = StorageDispatcher(app_settings=_settings(), drive_factory=lambda _dest: drive)
    local_file = tmp_path / "a.png"
    local_file.write_bytes(b"png")

    with pytest.raises(DriveAuthorizationError):
        await dispatcher.upload(_drive_destination(), local_file, "J1/a.png", "image/png")

    assert len(drive.refresh_calls) == 1
    assert drive.upload_calls == 2


@pytest.mark.asyncio
async def test_no_refresh_without_client_credentials(tmp_path: Path) -> None:
    drive = _FakeDrive(upload_failures=1)
    dispatcher = StorageDispatcher(app_settings=_settings(), drive_factory=lambda _dest: drive)
    local_file = tmp_path / "a.png"
    local_file.write_bytes(b"png")
    destination = _drive_destination(google_client_id=None, google_client_secret=None)

    with pytest.raises(DriveAuthorizationError):
        await dispatcher.upload(destination, local_file, "J1/a.png", "image/png")

    assert drive.refresh_calls == []
    assert drive.upload_calls == 1


@pytest.mark.asyncio
async def test_refresh_falls_back_to_configured_client_credentials(tmp_path: Path) -> None:
    drive = _FakeDrive(upload_failures=1)
    dispatcher = StorageDispatcher(
        app_settings=_settings(google_client_id="app-id", google_client_secret="app-secret"),
        drive_factory=lambda _dest: drive,
    )
    local_file = tmp_path / "a.png"
    local_file.write_bytes(b"png")
    destination = _drive_destination(google_client_id=None, google_client_secret=None)

    await dispatcher.upload(destination, local_file, "J1/a.png", "image/png")

    assert drive.refresh_calls[0]["client_id"] == "app-id"
    assert drive.refresh_calls[0]["client_secret"] == "app-secret"


@pytest.mark.asyncio
async def test_s3_family_routes_to_bucket_storage(tmp_path: Path) -> None:
    captured: dict[str, Any] = {}

    class _FakeS3:
        def __init__(self, destination: Destination) -> None:
            captured["destination"] = destination

        async def upload_file(self, **kwargs: Any) -> tuple[str, str]:
            captured["upload"] = kwargs
            return "exports/J1/a.png", "https://signed.example/a.png"

    dispatcher = StorageDispatcher(app_settings=_settings(), s3_factory=_FakeS3)
    destination = Destination.model_validate({"provider": "MinIO", "bucket": "b"})

    stored = await dispatcher.upload(destination, tmp_path / "a.png", "J1/a.png", "image/png")

    assert stored.storage_path == "exports/J1/a.png"
    assert stored.retrievable_link == "https://signed.example/a.png"
    assert captured["destination"].provider == "minio"
    assert captured["upload"]["target_name"] == "J1/a.png"


@pytest.mark.asyncio
async def test_unknown_or_missing_provider_is_rejected(tmp_path: Path) -> None:
    dispatcher = StorageDispatcher(app_settings=_settings())

    with pytest.raises(UnsupportedProviderError):
        await dispatcher.upload(Destination(provider="ftp"), tmp_path / "a.png", "J1/a.png", "image/png")
    with pytest.raises(StorageConfigError, match="Missing output.destination provider"):
        await dispatcher.upload(Destination(), tmp_path / "a.png", "J1/a.png", "image/png")


@pytest.mark.asyncio
async def test_verify_drive_uses_about_request() -> None:
    drive = _FakeDrive()
    dispatcher = StorageDispatcher(app_settings=_settings(), drive_factory=lambda _dest: drive)

    await dispatcher.verify(_drive_destination())

    assert drive.refresh_calls == []
