"""
Pydantic models for stored Items and store reports.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return the current timezone-aware UTC timestamp."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Read naive timestamps as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Item(BaseModel):
    """
    Metadata record for one stored blob.

    ``id`` is assigned by the store on insertion; whatever the caller puts
    there is overwritten. Items are never updated once stored.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = ""
    """Short base58 identifier, also the blob file name."""

    expires: datetime
    """Absolute time after which the Item is stale."""

    created: datetime = Field(default_factory=utc_now)
    """When the Item was stored."""

    filename: str | None = None
    """Original upload filename."""

    content_type: str | None = None
    """MIME type reported by the uploader."""

    metadata: dict[str, str] = Field(default_factory=dict)
    """Caller-defined fields, opaque to the store."""

    @field_validator("expires", "created")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    def is_expired(self, now: datetime) -> bool:
        """Return whether ``expires`` is at or before ``now``."""
        return self.expires <= as_utc(now)


class ReconcileReport(BaseModel):
    """Result of a record/blob reconciliation pass."""

    model_config = ConfigDict(extra="forbid")

    orphan_blobs: list[str]
    """Blob files without a record, removed."""

    dangling_records: list[str]
    """Records without a blob file, removed."""

    @property
    def total(self) -> int:
        """Number of repaired entries."""
        return len(self.orphan_blobs) + len(self.dangling_records)
