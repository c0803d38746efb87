"""Uploads to user-owned S3-compatible buckets."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from brandrr.config import Settings, settings
from brandrr.core.exceptions import StorageConfigError, StorageError
from brandrr.schemas.job import Destination

logger = logging.getLogger(__name__)


def build_object_key(base_path: str | None, target_name: str) -> str:
    """Join a destination base path and a target name into an object key."""
    prefix = (base_path or "").strip().strip("/")
    name = target_name.strip().lstrip("/")
    return f"{prefix}/{name}" if prefix else name


class S3CompatibleStorage:
    """Upload files to S3, R2, MinIO, Wasabi, Backblaze or DO Spaces."""

    def __init__(
        self,
        destination: Destination,
        app_settings: Settings | None = None,
    ) -> None:
        self.destination = destination
        self.settings = app_settings or settings
        self._client: Any | None = None

    async def upload_file(
        self,
        *,
        local_file: Path,
        target_name: str,
        content_type: str,
    ) -> tuple[str, str]:
        """Upload ``local_file`` and return ``(object_key, presigned_get_url)``."""
        self._validate_config()
        object_key = build_object_key(self.destination.base_path, target_name)

        await asyncio.to_thread(self._upload_object, local_file, object_key, content_type)
        signed_url = await asyncio.to_thread(self.create_signed_read_url, object_key=object_key)

        logger.info(
            "Uploaded export to S3-compatible storage",
            extra={
                "provider": self.destination.provider,
                "bucket": self.destination.bucket,
                "object_key": object_key,
            },
        )
        return object_key, signed_url

    def create_signed_read_url(self, *, object_key: str, ttl_seconds: int | None = None) -> str:
        """Mint a time-limited signed GET URL."""
        self._validate_config()
        expires_in = int(ttl_seconds or self.settings.signed_url_ttl_seconds)
        client = self._get_client()
        return client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.destination.bucket, "Key": object_key},
            ExpiresIn=expires_in,
        )

    async def verify_access(self) -> None:
        """HEAD the bucket with the destination credentials."""
        self._validate_config()
        await asyncio.to_thread(self._head_bucket)

    def _head_bucket(self) -> None:
        client = self._get_client()
        try:
            client.head_bucket(Bucket=self.destination.bucket)
        except Exception as exc:
            raise StorageError(f"Bucket check failed: {exc}") from exc

    def _upload_object(self, local_file: Path, object_key: str, content_type: str) -> None:
        client = self._get_client()
        try:
            client.upload_file(
                str(local_file),
                self.destination.bucket,
                object_key,
                ExtraArgs={"ContentType": content_type or "application/octet-stream"},
            )
        except Exception as exc:
            raise StorageError(f"S3 upload failed for {object_key}: {exc}") from exc

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> Any:
        import boto3
        from botocore.config import Config

        return boto3.client(
            "s3",
            endpoint_url=self.destination.endpoint_url or None,
            region_name=self.destination.region or "auto",
            aws_access_key_id=self.destination.access_key_id,
            aws_secret_access_key=self.destination.secret_access_key,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    def _validate_config(self) -> None:
        if not self.destination.access_key_id or not self.destination.secret_access_key:
            raise StorageConfigError(
                "Missing S3 credentials (access_key_id / secret_access_key). "
                "Please reconnect your storage."
            )
        if not self.destination.bucket:
            raise StorageConfigError(
                "Missing bucket name. Please check your storage configuration."
            )
