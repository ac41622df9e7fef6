"""Merchant model — a business account, tenant member through its own column."""

from datetime import datetime

from pydantic import EmailStr
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_id


class Merchant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "merchants"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    # NULL = legacy merchant created before multi-tenancy
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)

    email: str = Field(max_length=320, unique=True, nullable=False, index=True)
    business_name: str = Field(max_length=255, nullable=False)
    phone: str | None = Field(default=None, max_length=32)
    business_type: str = Field(default="restaurant", max_length=50)
    password_hash: str = Field(nullable=False)

    # Plan limit, mirrors the subscription's queue allowance
    max_queues: int = Field(default=1, ge=1)

    is_active: bool = Field(default=True)
    last_login: datetime | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class MerchantCreate(SQLModel):
    email: EmailStr
    business_name: str = Field(max_length=255)
    password: str = Field(min_length=8, max_length=128)
    phone: str | None = Field(default=None, max_length=32)
    business_type: str = Field(default="restaurant", max_length=50)
    # Ignored by tenant-scoped writes; the bound tenant wins
    tenant_id: str | None = None


class MerchantUpdate(SQLModel):
    business_name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    business_type: str | None = Field(default=None, max_length=50)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    is_active: bool | None = None


class MerchantRead(SQLModel):
    id: str
    tenant_id: str | None
    email: str
    business_name: str
    phone: str | None
    business_type: str
    max_queues: int
    is_active: bool
    last_login: datetime | None
    created_at: datetime
