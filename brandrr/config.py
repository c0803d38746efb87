"""Worker configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Worker settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Brandrr Worker"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    api_v1_prefix: str = "/v1"

    # Shared secrets
    worker_api_key: str | None = None
    internal_callback_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("internal_callback_key", "brandrr_internal_key"),
    )
    default_callback_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("default_callback_url", "brandrr_callback_url"),
    )
    callback_timeout_seconds: float = 15.0

    # Working directories and downloads
    work_root: str | None = None
    download_timeout_seconds: float = 120.0
    download_max_bytes: int = 2_000_000_000

    # External tools
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    rsvg_convert_binary: str = "rsvg-convert"
    imagemagick_binary: str = "magick"
    command_timeout_seconds: float = 1800.0
    rasterizer_timeout_seconds: float = 30.0

    # Fonts and emoji assets
    font_dir: str = "/usr/share/fonts/truetype"
    default_font_path: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"
    default_bold_font_path: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
    emoji_cdn_base_url: str = "https://cdn.jsdelivr.net/gh/jdecked/twemoji@15.1.0/assets/72x72"
    emoji_fetch_timeout_seconds: float = 5.0

    # Storage
    signed_url_ttl_seconds: int = 86400  # 24 hours
    drive_resumable_threshold_bytes: int = 5 * 1024 * 1024
    drive_chunk_size_bytes: int = 8 * 1024 * 1024
    storage_timeout_seconds: float = 300.0
    google_client_id: str | None = None
    google_client_secret: str | None = None

    @field_validator("emoji_cdn_base_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: object) -> object:
        """Store base URLs without a trailing slash so paths join cleanly."""
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper() or "INFO"
        return value

    @property
    def callback_auth_enabled(self) -> bool:
        """Whether outbound callbacks carry a bearer secret."""
        return bool(self.internal_callback_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
