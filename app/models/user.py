"""User model and its tenant memberships."""

from enum import StrEnum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_id


class TenantUserRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    STAFF = "staff"


class User(TimestampMixin, SQLModel, table=True):
    """A staff / back-office login. Reaches tenants only through TenantUser rows."""

    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    email: str = Field(max_length=320, unique=True, nullable=False, index=True)
    password_hash: str = Field(nullable=False)
    name: str = Field(default="", max_length=255)
    is_active: bool = Field(default=True)


class TenantUser(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenant_users"
    __table_args__ = (UniqueConstraint("user_id", "tenant_id", name="uq_tenant_users_user_tenant"),)

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    user_id: str = Field(foreign_key="users.id", nullable=False, index=True)
    tenant_id: str = Field(foreign_key="tenants.id", nullable=False, index=True)
    role: TenantUserRole = Field(default=TenantUserRole.STAFF)
    is_active: bool = Field(default=True)


# ── Pydantic schemas ─────────────────────────────────────────

class UserRead(SQLModel):
    id: str
    email: str
    name: str
    is_active: bool
