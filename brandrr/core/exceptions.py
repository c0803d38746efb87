"""Custom exception classes for the worker."""

from typing import Any


class BrandrrError(Exception):
    """Base exception for all worker errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Job intake
class JobInputError(BrandrrError):
    """Job payload is missing a field required to run the job."""

    def __init__(self, field_name: str, message: str | None = None) -> None:
        self.field_name = field_name
        super().__init__(message or f"Missing {field_name}")


class DownloadError(BrandrrError):
    """A remote input or logo could not be fetched."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        super().__init__(f"Download failed for {url}: {reason}")


# External commands
class CommandError(BrandrrError):
    """Base class for external command failures."""

    pass


class CommandUnavailableError(CommandError):
    """The external binary is not installed or not executable."""

    def __init__(self, binary: str) -> None:
        self.binary = binary
        super().__init__(f"Command not available: {binary}")


class CommandTimeoutError(CommandError):
    """The external command exceeded its time limit."""

    def __init__(self, binary: str, timeout_seconds: float) -> None:
        self.binary = binary
        super().__init__(f"{binary} timed out after {timeout_seconds:.0f}s")


# Branding
class CompositionPlanError(BrandrrError):
    """A composition stage references a label that was never produced."""

    pass


class MediaEngineError(BrandrrError):
    """The media engine exited with a non-zero status."""

    def __init__(self, returncode: int, diagnostics: str) -> None:
        self.returncode = returncode
        self.diagnostics = diagnostics
        detail = diagnostics.strip() or "no diagnostic output"
        super().__init__(f"ffmpeg failed ({returncode}): {detail}")


class DocumentBrandingError(BrandrrError):
    """The document could not be loaded, branded or saved."""

    pass


class MediaProbeError(BrandrrError):
    """A file could not be inspected."""

    pass


# Storage
class StorageError(BrandrrError):
    """Base class for storage failures."""

    pass


class StorageConfigError(StorageError):
    """Destination is missing credentials or required settings."""

    pass


class UnsupportedProviderError(StorageError):
    """Destination provider tag is not recognised."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unsupported destination provider: {provider}")


class DriveAuthorizationError(StorageError):
    """Drive rejected the access token."""

    def __init__(self, message: str = "Google Drive authorization failed (401)") -> None:
        super().__init__(message)


# External API Errors
class ExternalAPIError(BrandrrError):
    """Error calling an external API."""

    def __init__(self, api_name: str, message: str) -> None:
        self.api_name = api_name
        super().__init__(f"{api_name} API error: {message}")
