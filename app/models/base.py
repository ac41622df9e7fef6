"""Shared base fields and helpers for the tenant-owned tables."""

import uuid
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC, so values compare equally on PostgreSQL and SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    """Text primary key; tenant ids travel verbatim through headers and tokens."""
    return str(uuid.uuid4())


class TimestampMixin(SQLModel):
    """Created / updated timestamps for every mutable table (audit rows excluded)."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    def touch(self) -> None:
        self.updated_at = utcnow()
