"""Cache entry manifest model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """Manifest written next to a target's cache archive.

    Attributes:
        target: Target identifier the archive is keyed by.
        image: Image tag contained in the archive.
        recipe_hash: Content hash of the build description the image was built from.
        layers: Layer ids saved alongside the tag.
        size_bytes: Archive size.
        sha256: Archive checksum.
        created_at: When the archive was written.
    """

    model_config = ConfigDict(extra="ignore")

    target: str
    image: str
    recipe_hash: str
    layers: list[str] = Field(default_factory=list)
    size_bytes: int = 0
    sha256: str = ""
    created_at: datetime


__all__ = ["CacheEntry"]
