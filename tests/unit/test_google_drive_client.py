"""Unit tests for the Google Drive client against a mock transport."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest

from brandrr.core.exceptions import DriveAuthorizationError, ExternalAPIError
from brandrr.integrations.google_drive import GOOGLE_TOKEN_URI, GoogleDriveClient, split_folder_path


def _settings(threshold: int = 1024) -> SimpleNamespace:
    return SimpleNamespace(
        storage_timeout_seconds=5,
        drive_resumable_threshold_bytes=threshold,
        drive_chunk_size_bytes=256 * 1024,
    )


def test_split_folder_path_drops_empty_segments() -> None:
    assert split_folder_path("/Brandrr//Exports/", "J1") == ["Brandrr", "Exports", "J1"]
    assert split_folder_path(None, "") == []


@pytest.mark.asyncio
async def test_ensure_folder_path_reuses_existing_and_creates_missing() -> None:
    requests: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "GET":
            query = request.url.params["q"]
            if "name='Brandrr'" in query:
                return httpx.Response(200, json={"files": [{"id": "existing", "name": "Brandrr"}]})
            return httpx.Response(200, json={"files": []})
        body = json.loads(request.content)
        return httpx.Response(200, json={"id": f"new-{body['name']}"})

    async with GoogleDriveClient(
        access_token="token",
        app_settings=_settings(),
        transport=httpx.MockTransport(_handler),
    ) as drive:
        folder_id = await drive.ensure_folder_path(["Brandrr", "J1"], "root")

    assert folder_id == "new-J1"
    assert [request.method for request in requests] == ["GET", "GET", "POST"]
    assert "'existing' in parents" in requests[1].url.params["q"]
    assert json.loads(requests[2].content)["parents"] == ["existing"]
    assert all(request.headers["Authorization"] == "Bearer token" for request in requests)


@pytest.mark.asyncio
async def test_small_file_uses_multipart_upload(tmp_path: Path) -> None:
    local_file = tmp_path / "branded-a.png"
    local_file.write_bytes(b"png-bytes")
    captured: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"id": "file-9"})

    async with GoogleDriveClient(
        access_token="token",
        app_settings=_settings(),
        transport=httpx.MockTransport(_handler),
    ) as drive:
        uploaded = await drive.upload_file(
            folder_id="folder-1",
            filename="branded-a.png",
            mime_type="image/png",
            local_file=local_file,
        )

    assert captured[0].url.params["uploadType"] == "multipart"
    assert b"png-bytes" in captured[0].content
    assert uploaded.storage_path == "gdrive://file-9"
    assert uploaded.web_view_link == "https://drive.google.com/file/d/file-9/view"


@pytest.mark.asyncio
async def test_large_file_uses_resumable_session(tmp_path: Path) -> None:
    local_file = tmp_path / "branded-a.mp4"
    local_file.write_bytes(b"x" * 64)
    captured: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        if request.method == "POST":
            return httpx.Response(200, headers={"Location": "https://upload.example/session-1"})
        return httpx.Response(200, json={"id": "video-1", "webViewLink": "https://drive.example/v"})

    async with GoogleDriveClient(
        access_token="token",
        app_settings=_settings(threshold=16),
        transport=httpx.MockTransport(_handler),
    ) as drive:
        uploaded = await drive.upload_file(
            folder_id="folder-1",
            filename="branded-a.mp4",
            mime_type="video/mp4",
            local_file=local_file,
        )

    assert captured[0].url.params["uploadType"] == "resumable"
    assert captured[1].method == "PUT"
    assert str(captured[1].url) == "https://upload.example/session-1"
    assert captured[1].headers["Content-Range"] == "bytes 0-63/64"
    assert uploaded.web_view_link == "https://drive.example/v"


@pytest.mark.asyncio
async def test_resumable_session_stuck_incomplete_raises(tmp_path: Path) -> None:
    local_file = tmp_path / "branded-a.mp4"
    local_file.write_bytes(b"x" * 64)
    puts: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, headers={"Location": "https://upload.example/session-1"})
        puts.append(request)
        return httpx.Response(308, headers={"Range": "bytes=0-63"})

    async with GoogleDriveClient(
        access_token="token",
        app_settings=_settings(threshold=16),
        transport=httpx.MockTransport(_handler),
    ) as drive:
        with pytest.raises(ExternalAPIError, match="still incomplete"):
            await drive.upload_file(
                folder_id="folder-1",
                filename="branded-a.mp4",
                mime_type="video/mp4",
                local_file=local_file,
            )

    assert len(puts) == 1
    assert puts[0].headers["Content-Range"] == "bytes 0-63/64"


@pytest.mark.asyncio
async def test_unauthorized_response_raises_authorization_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "invalid_token"})

    async with GoogleDriveClient(
        access_token="expired",
        app_settings=_settings(),
        transport=httpx.MockTransport(_handler),
    ) as drive:
        with pytest.raises(DriveAuthorizationError):
            await drive.get_about()


@pytest.mark.asyncio
async def test_refresh_access_token_updates_bearer() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if str(request.url) == GOOGLE_TOKEN_URI:
            return httpx.Response(200, json={"access_token": "fresh"})
        return httpx.Response(200, json={"user": {}})

    async with GoogleDriveClient(
        access_token="expired",
        app_settings=_settings(),
        transport=httpx.MockTransport(_handler),
    ) as drive:
        token = await drive.refresh_access_token(
            refresh_token="refresh",
            client_id="id",
            client_secret="secret",
        )
        await drive.get_about()

    assert token == "fresh"
    assert b"grant_type=refresh_token" in seen[0].content
    assert seen[1].headers["Authorization"] == "Bearer fresh"


@pytest.mark.asyncio
async def test_failed_refresh_asks_user_to_reconnect() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    async with GoogleDriveClient(
        access_token="expired",
        app_settings=_settings(),
        transport=httpx.MockTransport(_handler),
    ) as drive:
        with pytest.raises(ExternalAPIError, match="Please reconnect your Google Drive"):
            await drive.refresh_access_token(refresh_token="r", client_id="i", client_secret="s")
