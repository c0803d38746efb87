"""Google Drive v3 client for delivering exports."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from brandrr.config import Settings, settings
from brandrr.core.exceptions import DriveAuthorizationError, ExternalAPIError

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_ABOUT_URL = "https://www.googleapis.com/drive/v3/about"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
MULTIPART_BOUNDARY = "brandrr_worker_upload_boundary"
RESUME_INCOMPLETE = 308


@dataclass(slots=True)
class DriveFile:
    """Uploaded Drive file reference."""

    file_id: str
    web_view_link: str

    @property
    def storage_path(self) -> str:
        return f"gdrive://{self.file_id}"


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def split_folder_path(*parts: str | None) -> list[str]:
    """Split slash-separated path fragments into non-empty folder names."""
    segments: list[str] = []
    for part in parts:
        for segment in (part or "").split("/"):
            if segment.strip():
                segments.append(segment.strip())
    return segments


class GoogleDriveClient:
    """Minimal async Drive client: folders, uploads and token refresh."""

    def __init__(
        self,
        *,
        access_token: str | None,
        app_settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.access_token = access_token or ""
        self.settings = app_settings or settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GoogleDriveClient":
        self._client = httpx.AsyncClient(
            timeout=self.settings.storage_timeout_seconds,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("GoogleDriveClient must be used as async context manager")
        return self._client

    async def refresh_access_token(
        self,
        *,
        refresh_token: str,
        client_id: str,
        client_secret: str,
    ) -> str:
        """Exchange a refresh token for a new access token."""
        try:
            response = await self.client.post(
                GOOGLE_TOKEN_URI,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as exc:
            raise ExternalAPIError("Google OAuth", str(exc)) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        access_token = body.get("access_token") if isinstance(body, dict) else None
        if response.status_code >= 400 or not access_token:
            logger.error(
                "Google token refresh failed",
                extra={
                    "status_code": response.status_code,
                    "error": body.get("error") if isinstance(body, dict) else None,
                },
            )
            raise ExternalAPIError(
                "Google OAuth",
                "Failed to refresh Google Drive access token. Please reconnect your Google Drive.",
            )

        self.access_token = str(access_token)
        return self.access_token

    async def get_about(self) -> dict[str, Any]:
        """Fetch the authenticated user's Drive profile."""
        response = await self._send("GET", DRIVE_ABOUT_URL, params={"fields": "user"})
        self._raise_for_status(response, "Google Drive access check")
        return response.json()

    async def ensure_folder_path(self, segments: list[str], root_folder_id: str = "root") -> str:
        """Resolve (creating as needed) each folder segment and return the last id."""
        parent_id = root_folder_id or "root"
        for segment in segments:
            parent_id = await self.find_or_create_folder(segment, parent_id)
        return parent_id

    async def find_or_create_folder(self, name: str, parent_id: str) -> str:
        query = (
            f"name='{_escape_query_value(name)}' and '{_escape_query_value(parent_id)}' in parents "
            f"and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
        )
        response = await self._send(
            "GET",
            DRIVE_FILES_URL,
            params={"q": query, "fields": "files(id,name)", "spaces": "drive"},
        )
        self._raise_for_status(response, "Google Drive folder search")
        files = response.json().get("files") or []
        if files:
            return str(files[0]["id"])

        response = await self._send(
            "POST",
            DRIVE_FILES_URL,
            json={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
        )
        self._raise_for_status(response, f"Failed to create folder '{name}'")
        folder_id = str(response.json()["id"])
        logger.info("Created Drive folder", extra={"folder_name": name, "folder_id": folder_id})
        return folder_id

    async def upload_file(
        self,
        *,
        folder_id: str,
        filename: str,
        mime_type: str,
        local_file: Path,
    ) -> DriveFile:
        """Upload below the resumable threshold in one request, otherwise in chunks."""
        size = local_file.stat().st_size
        if size < self.settings.drive_resumable_threshold_bytes:
            return await self._multipart_upload(folder_id, filename, mime_type, local_file)
        return await self._resumable_upload(folder_id, filename, mime_type, local_file, size)

    async def _multipart_upload(
        self,
        folder_id: str,
        filename: str,
        mime_type: str,
        local_file: Path,
    ) -> DriveFile:
        metadata = json.dumps({"name": filename, "parents": [folder_id]}).encode("utf-8")
        delimiter = f"--{MULTIPART_BOUNDARY}\r\n".encode("ascii")
        body = b"".join(
            [
                delimiter,
                b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
                metadata,
                b"\r\n",
                delimiter,
                f"Content-Type: {mime_type}\r\n\r\n".encode("ascii"),
                local_file.read_bytes(),
                f"\r\n--{MULTIPART_BOUNDARY}--".encode("ascii"),
            ]
        )
        response = await self._send(
            "POST",
            DRIVE_UPLOAD_URL,
            params={"uploadType": "multipart", "fields": "id,webViewLink"},
            headers={"Content-Type": f"multipart/related; boundary={MULTIPART_BOUNDARY}"},
            content=body,
        )
        self._raise_for_status(response, "Google Drive upload")
        return self._drive_file(response.json())

    async def _resumable_upload(
        self,
        folder_id: str,
        filename: str,
        mime_type: str,
        local_file: Path,
        size: int,
    ) -> DriveFile:
        response = await self._send(
            "POST",
            DRIVE_UPLOAD_URL,
            params={"uploadType": "resumable", "fields": "id,webViewLink"},
            headers={
                "Content-Type": "application/json; charset=UTF-8",
                "X-Upload-Content-Type": mime_type,
                "X-Upload-Content-Length": str(size),
            },
            json={"name": filename, "parents": [folder_id]},
        )
        self._raise_for_status(response, "Google Drive resumable init")
        session_uri = response.headers.get("location")
        if not session_uri:
            raise ExternalAPIError("Google Drive", "no resumable upload URI returned")

        chunk_size = max(256 * 1024, int(self.settings.drive_chunk_size_bytes))
        offset = 0
        with local_file.open("rb") as handle:
            while True:
                if offset >= size:
                    raise ExternalAPIError(
                        "Google Drive",
                        f"resumable upload still incomplete after all {size} bytes were sent",
                    )
                handle.seek(offset)
                chunk = handle.read(chunk_size)
                end = offset + len(chunk) - 1
                response = await self._send(
                    "PUT",
                    session_uri,
                    headers={
                        "Content-Type": mime_type,
                        "Content-Range": f"bytes {offset}-{end}/{size}",
                    },
                    content=chunk,
                )
                if response.status_code == RESUME_INCOMPLETE:
                    offset = self._next_offset(response, fallback=end + 1)
                    continue
                self._raise_for_status(response, "Google Drive resumable upload")
                return self._drive_file(response.json())

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {self.access_token}"
        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ExternalAPIError("Google Drive", str(exc)) from exc
        if response.status_code == 401:
            raise DriveAuthorizationError()
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code < 400:
            return
        raise ExternalAPIError(
            "Google Drive",
            f"{action} failed ({response.status_code}): {response.text[:500]}",
        )

    @staticmethod
    def _next_offset(response: httpx.Response, *, fallback: int) -> int:
        # Range header looks like "bytes=0-8388607".
        range_header = response.headers.get("range")
        if not range_header or "-" not in range_header:
            return fallback
        try:
            return int(range_header.rsplit("-", 1)[1]) + 1
        except ValueError:
            return fallback

    @staticmethod
    def _drive_file(body: dict[str, Any]) -> DriveFile:
        file_id = str(body["id"])
        link = body.get("webViewLink") or f"https://drive.google.com/file/d/{file_id}/view"
        return DriveFile(file_id=file_id, web_view_link=str(link))
