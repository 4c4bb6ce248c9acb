from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from signage.config import DEFAULT_DISPLAY_DURATION_SEC


class MediaType(str, Enum):
    video = "video"
    image = "image"
    url = "url"
    embedded_report = "embeddedReport"

    @property
    def has_file(self) -> bool:
        return self in (MediaType.video, MediaType.image)


# Older management clients still send the report provider name.
MEDIA_TYPE_ALIASES = {"powerbi": MediaType.embedded_report}


class MediaItem(BaseModel):
    """One playable slot of a player's manifest, as stored on disk."""

    identifier: str = Field(..., min_length=1)
    type: MediaType
    source_ref: str | None = Field(default=None, alias="sourceRef")
    page_name: str | None = Field(default=None, alias="pageName")
    display_duration_seconds: int = Field(
        default=DEFAULT_DISPLAY_DURATION_SEC, alias="displayDurationSeconds", gt=0
    )
    expires_at: datetime | None = Field(default=None, alias="expiresAt")

    class Config:
        populate_by_name = True

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ReorderIn(BaseModel):
    ordered_identifiers: list[str] = Field(..., alias="orderedIdentifiers")

    class Config:
        populate_by_name = True


class ExpiryUpdateIn(BaseModel):
    """Sets the expiry of every entry named ``identifier``.

    A missing or null ``newExpiry`` clears the expiry (never expires).
    """

    identifier: str = Field(..., min_length=1)
    new_expiry: str | int | None = Field(default=None, alias="newExpiry")

    class Config:
        populate_by_name = True
