"""WebChatSession — a customer's browser chat, owned through its merchant."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_id, utcnow


class WebChatSession(TimestampMixin, SQLModel, table=True):
    __tablename__ = "webchat_sessions"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    session_id: str = Field(max_length=128, unique=True, nullable=False, index=True)
    merchant_id: str = Field(foreign_key="merchants.id", nullable=False, index=True)
    queue_entry_id: str | None = Field(default=None, foreign_key="queue_entries.id")

    customer_name: str = Field(default="", max_length=255)
    is_active: bool = Field(default=True)
    last_activity_at: datetime = Field(default_factory=utcnow, nullable=False)
    expires_at: datetime | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class WebChatJoin(SQLModel):
    queue_id: str
    customer_name: str = Field(max_length=255)
    customer_phone: str = Field(default="", max_length=32)
    party_size: int = Field(default=1, ge=1)


class WebChatStatus(SQLModel):
    session_id: str
    in_queue: bool
    queue_number: str | None = None
    position: int | None = None
    status: str | None = None
    estimated_wait_time: int | None = None
    verification_code: str | None = None
