"""AuditLog model — durable sink for security events."""

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from app.models.base import new_id, utcnow


class AuditLog(SQLModel, table=True):
    """Append-only. Rows are inserted once and never updated or deleted."""

    __tablename__ = "audit_logs"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    action: str = Field(max_length=128, nullable=False, index=True)
    resource_type: str = Field(max_length=64, nullable=False)
    details: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    timestamp: datetime = Field(default_factory=utcnow, nullable=False, index=True)
    user_id: str | None = Field(default=None, max_length=64, index=True)
    merchant_id: str | None = Field(default=None, max_length=64, index=True)
