"""Per-job import settings."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from media_import_engine.domain.import_types import AccessMode, TitleMode, Visibility

_DEFAULT_MEDIA_EXTENSIONS = (".mp4",)


class JobSettings(BaseModel):
    """Structured configuration captured when a job is created."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    prefix: str = ""
    visibility: Visibility = Visibility.PRIVATE
    category_id: int | None = Field(default=None, alias="categoryId")
    default_title_mode: TitleMode = Field(
        default=TitleMode.FILENAME_NO_EXT,
        alias="defaultTitleMode",
    )
    access_mode: AccessMode = Field(default=AccessMode.AUTO, alias="accessMode")
    signed_url_ttl_seconds: int = Field(
        default=3600,
        ge=60,
        le=24 * 3600,
        alias="signedUrlTtlSeconds",
    )
    media_extensions: list[str] = Field(
        default_factory=lambda: list(_DEFAULT_MEDIA_EXTENSIONS),
        alias="mediaExtensions",
    )

    @field_validator("prefix", mode="before")
    @classmethod
    def strip_prefix(cls, value: object) -> object:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("visibility", "default_title_mode", "access_mode", mode="before")
    @classmethod
    def lower_enum_literal(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("category_id", mode="before")
    @classmethod
    def positive_category_or_none(cls, value: object) -> object:
        """Blank, zero and negative category ids mean "no category"."""

        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        try:
            parsed = int(value)  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return value
        return parsed if parsed > 0 else None

    @field_validator("media_extensions", mode="before")
    @classmethod
    def parse_csv_extensions(cls, value: object) -> object:
        if isinstance(value, str):
            return [item for item in value.split(",") if item.strip()]
        return value

    @field_validator("media_extensions")
    @classmethod
    def normalize_extensions(cls, value: list[str]) -> list[str]:
        normalized: list[str] = []
        for raw in value:
            extension = raw.strip().lower()
            if not extension:
                continue
            if not extension.startswith("."):
                extension = f".{extension}"
            if extension not in normalized:
                normalized.append(extension)
        if not normalized:
            raise ValueError("media_extensions must contain at least one extension.")
        return normalized

    def matches_media_key(self, key: str) -> bool:
        """Return whether an object key carries one of the job's media extensions."""

        lowered = key.lower()
        return any(lowered.endswith(extension) for extension in self.media_extensions)


__all__ = ["JobSettings"]
