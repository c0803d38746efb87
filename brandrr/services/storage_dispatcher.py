"""Route exports to the destination's storage backend."""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from brandrr.config import Settings, settings
from brandrr.core.exceptions import DriveAuthorizationError, StorageConfigError, UnsupportedProviderError
from brandrr.integrations.google_drive import GoogleDriveClient, split_folder_path
from brandrr.integrations.s3_storage import S3CompatibleStorage
from brandrr.schemas.job import Destination

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class StoredObject:
    """Normalized upload result."""

    storage_path: str
    retrievable_link: str | None


@dataclass(slots=True)
class RefreshCredentials:
    refresh_token: str
    client_id: str
    client_secret: str


class StorageDispatcher:
    """Upload files to S3-compatible buckets or Google Drive."""

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        s3_factory: Callable[[Destination], Any] | None = None,
        drive_factory: Callable[[Destination], Any] | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self._s3_factory = s3_factory or (
            lambda destination: S3CompatibleStorage(destination, app_settings=self.settings)
        )
        self._drive_factory = drive_factory or (
            lambda destination: GoogleDriveClient(
                access_token=destination.oauth_access_token,
                app_settings=self.settings,
            )
        )

    async def upload(
        self,
        destination: Destination,
        local_file: Path,
        target_name: str,
        content_type: str,
    ) -> StoredObject:
        """Upload ``local_file`` as ``target_name`` under the destination base path."""
        if destination.is_google_drive:
            return await self._upload_to_drive(destination, local_file, target_name, content_type)
        if destination.is_s3_compatible:
            storage = self._s3_factory(destination)
            object_key, signed_url = await storage.upload_file(
                local_file=local_file,
                target_name=target_name,
                content_type=content_type,
            )
            return StoredObject(storage_path=object_key, retrievable_link=signed_url)
        raise self._unsupported(destination)

    async def verify(self, destination: Destination) -> None:
        """Check that the destination accepts our credentials."""
        if destination.is_google_drive:
            async with self._drive_factory(destination) as drive:
                await self._with_token_refresh(destination, drive, drive.get_about)
            return
        if destination.is_s3_compatible:
            await self._s3_factory(destination).verify_access()
            return
        raise self._unsupported(destination)

    async def _upload_to_drive(
        self,
        destination: Destination,
        local_file: Path,
        target_name: str,
        content_type: str,
    ) -> StoredObject:
        if not destination.oauth_access_token and not self._refresh_credentials(destination):
            raise StorageConfigError(
                "Missing Google Drive credentials. Please reconnect your Google Drive."
            )

        folder_part, filename = posixpath.split(target_name.strip("/"))
        segments = split_folder_path(destination.base_path, folder_part)

        async with self._drive_factory(destination) as drive:

            async def attempt() -> Any:
                folder_id = await drive.ensure_folder_path(
                    segments,
                    destination.drive_root_folder_id or "root",
                )
                return await drive.upload_file(
                    folder_id=folder_id,
                    filename=filename,
                    mime_type=content_type,
                    local_file=local_file,
                )

            drive_file = await self._with_token_refresh(destination, drive, attempt)

        logger.info(
            "Uploaded export to Google Drive",
            extra={"drive_file_id": drive_file.file_id, "target_name": target_name},
        )
        return StoredObject(
            storage_path=drive_file.storage_path,
            retrievable_link=drive_file.web_view_link,
        )

    async def _with_token_refresh(
        self,
        destination: Destination,
        drive: Any,
        attempt: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``attempt``; on a 401 refresh the token once and run it once more."""
        try:
            return await attempt()
        except DriveAuthorizationError:
            credentials = self._refresh_credentials(destination)
            if credentials is None:
                raise
            logger.info("Drive access token rejected, refreshing and retrying once")
            await drive.refresh_access_token(
                refresh_token=credentials.refresh_token,
                client_id=credentials.client_id,
                client_secret=credentials.client_secret,
            )
        return await attempt()

    def _refresh_credentials(self, destination: Destination) -> RefreshCredentials | None:
        client_id = destination.google_client_id or self.settings.google_client_id
        client_secret = destination.google_client_secret or self.settings.google_client_secret
        if not destination.oauth_refresh_token or not client_id or not client_secret:
            return None
        return RefreshCredentials(
            refresh_token=destination.oauth_refresh_token,
            client_id=client_id,
            client_secret=client_secret,
        )

    @staticmethod
    def _unsupported(destination: Destination) -> Exception:
        if not destination.provider:
            return StorageConfigError("Missing output.destination provider")
        return UnsupportedProviderError(destination.provider)
