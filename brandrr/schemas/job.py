"""Job submission and callback schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

JobType = Literal["image_brand", "video_brand", "pdf_brand"]
JobStatus = Literal["running", "succeeded", "failed"]
LogoSize = Literal["small", "medium", "large", "xlarge"]

S3_COMPATIBLE_PROVIDERS = frozenset({"s3", "r2", "minio", "wasabi", "backblaze", "do_spaces"})
GOOGLE_DRIVE_PROVIDER = "google_drive"


class InputMeta(BaseModel):
    """Precomputed metadata sent with an input (all optional)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    duration_minutes: float | None = None
    page_count: int | None = None
    width: int | None = None
    height: int | None = None


class JobInput(BaseModel):
    """One file to brand."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    temp_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("temp_url", "temp_path", "url"),
    )
    filename: str = "file"
    mime_type: str | None = None
    meta: InputMeta = Field(default_factory=InputMeta)


class LogoConfig(BaseModel):
    """Logo overlay settings."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    size: LogoSize = "medium"
    position: str = "bottom-right"
    opacity: float = 0.9

    @field_validator("size", mode="before")
    @classmethod
    def _unknown_size_is_medium(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in {"small", "medium", "large", "xlarge"}:
            return value.strip().lower()
        return "medium"

    @field_validator("opacity", mode="before")
    @classmethod
    def _clamp_opacity(cls, value: object) -> object:
        try:
            return min(1.0, max(0.0, float(value)))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.9


class ContactInfo(BaseModel):
    """Contact details shown in the footer and on documents."""

    model_config = ConfigDict(extra="ignore")

    phone: str | None = None
    email: str | None = None
    website: str | None = None
    address: str | None = None


class SocialHandles(BaseModel):
    """Social handles shown in the footer."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    instagram: str | None = None
    facebook: str | None = None
    x: str | None = Field(default=None, validation_alias=AliasChoices("x", "twitter"))
    linkedin: str | None = None
    youtube: str | None = None
    tiktok: str | None = None


class StickerSelection(BaseModel):
    """Catalog sticker id or inline sticker metadata."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    label: str | None = None
    gradient: str | None = None
    gradient_colors: tuple[str, str] | None = None
    text_color: str = "#FFFFFF"
    emoji: str | None = None

    @field_validator("gradient_colors", mode="before")
    @classmethod
    def _two_stop_gradient(cls, value: object) -> object:
        if isinstance(value, list | tuple) and len(value) >= 2:
            return (str(value[0]), str(value[1]))
        return None


class BrandConfig(BaseModel):
    """Declarative brand configuration for one job."""

    model_config = ConfigDict(extra="ignore")

    logo_url_temp: str | None = None
    logo: LogoConfig = Field(default_factory=LogoConfig)
    brand_name: str | None = None
    tagline: str | None = None
    primary_color: str = "#111827"
    contact: ContactInfo = Field(default_factory=ContactInfo)
    social: SocialHandles = Field(default_factory=SocialHandles)
    font_family: str = "inter"
    stickers: list[StickerSelection] = Field(default_factory=list)

    @field_validator("brand_name", "tagline", mode="before")
    @classmethod
    def _blank_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def logo_requested(self) -> bool:
        """Whether the logo overlay is switched on."""
        return self.logo.enabled


class Destination(BaseModel):
    """User-configured storage target."""

    model_config = ConfigDict(extra="ignore")

    provider: str | None = None
    base_path: str | None = None

    # S3-compatible family
    bucket: str | None = None
    region: str | None = None
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None

    # OAuth drive family
    oauth_access_token: str | None = None
    oauth_refresh_token: str | None = None
    google_client_id: str | None = None
    google_client_secret: str | None = None
    drive_root_folder_id: str = "root"

    @field_validator("provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    @property
    def is_s3_compatible(self) -> bool:
        return self.provider in S3_COMPATIBLE_PROVIDERS

    @property
    def is_google_drive(self) -> bool:
        return self.provider == GOOGLE_DRIVE_PROVIDER


class OutputConfig(BaseModel):
    """Where branded files are delivered."""

    model_config = ConfigDict(extra="ignore")

    destination: Destination | None = None


class CallbackTarget(BaseModel):
    """Callback receiver for job updates."""

    model_config = ConfigDict(extra="ignore")

    url: str | None = None


class JobPayload(BaseModel):
    """Job submission payload."""

    model_config = ConfigDict(extra="ignore")

    job_id: str = Field(min_length=1)
    job_type: JobType = "image_brand"
    inputs: list[JobInput] = Field(default_factory=list)
    brand: BrandConfig = Field(default_factory=BrandConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    callback: CallbackTarget = Field(default_factory=CallbackTarget)

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_callback_url(cls, data: Any) -> Any:
        """Accept a top-level ``callback_url`` as ``callback.url``."""
        if not isinstance(data, dict):
            return data
        callback = data.get("callback")
        legacy_url = data.get("callback_url")
        if not callback and legacy_url:
            data = {**data, "callback": {"url": legacy_url}}
        return data

    @field_validator("job_id", mode="before")
    @classmethod
    def _strip_job_id(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


class ExportRecord(BaseModel):
    """One delivered output file."""

    type: Literal["image", "video", "pdf"]
    filename: str
    storage_path: str
    mime_type: str
    size_bytes: int
    signed_url: str | None = None


class JobUpdate(BaseModel):
    """Callback body sent to the job owner."""

    job_id: str
    status: JobStatus
    progress: int = Field(ge=0, le=100)
    error_message: str | None = None
    exports: list[ExportRecord] | None = None
    actual_pdf_pages: int | None = None
    actual_video_minutes: float | None = None
