"""Tenant model — top-level isolation boundary."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_id


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    name: str = Field(max_length=255, nullable=False)
    slug: str = Field(max_length=100, unique=True, nullable=False, index=True)
    # Custom domain mapped to this tenant, e.g. "queue.burgerbar.com"
    domain: str | None = Field(default=None, max_length=255, unique=True, index=True)
    is_active: bool = Field(default=True)


# ── Pydantic schemas ─────────────────────────────────────────

class TenantRead(SQLModel):
    id: str
    name: str
    slug: str
    domain: str | None
    is_active: bool
    created_at: datetime
