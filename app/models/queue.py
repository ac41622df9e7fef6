"""Queue and QueueEntry — owned by a merchant, tenant reached through it."""

from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_id, utcnow


class QueueEntryStatus(StrEnum):
    WAITING = "waiting"
    CALLED = "called"
    SERVING = "serving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Platform(StrEnum):
    WEB = "web"
    WEBCHAT = "webchat"
    WHATSAPP = "whatsapp"


class Queue(TimestampMixin, SQLModel, table=True):
    __tablename__ = "queues"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    merchant_id: str = Field(foreign_key="merchants.id", nullable=False, index=True)

    name: str = Field(max_length=255, nullable=False)
    description: str = Field(default="", max_length=1000)
    is_active: bool = Field(default=True)
    max_capacity: int = Field(default=50, ge=1)
    # Minutes per party, used for wait estimates
    average_service_time: int = Field(default=15, ge=1)


class QueueEntry(TimestampMixin, SQLModel, table=True):
    __tablename__ = "queue_entries"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    queue_id: str = Field(foreign_key="queues.id", nullable=False, index=True)

    customer_name: str = Field(max_length=255, nullable=False)
    customer_phone: str = Field(default="", max_length=32)
    party_size: int = Field(default=1, ge=1)
    platform: Platform = Field(default=Platform.WEB)
    session_id: str | None = Field(default=None, max_length=128, index=True)

    position: int = Field(nullable=False)
    status: QueueEntryStatus = Field(default=QueueEntryStatus.WAITING, index=True)
    verification_code: str | None = Field(default=None, max_length=8)
    estimated_wait_time: int = Field(default=0)

    joined_at: datetime = Field(default_factory=utcnow, nullable=False)
    called_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class QueueCreate(SQLModel):
    name: str = Field(max_length=255)
    description: str = Field(default="", max_length=1000)
    max_capacity: int = Field(default=50, ge=1)
    average_service_time: int = Field(default=15, ge=1)


class QueueUpdate(SQLModel):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    is_active: bool | None = None
    max_capacity: int | None = Field(default=None, ge=1)
    average_service_time: int | None = Field(default=None, ge=1)


class QueueRead(SQLModel):
    id: str
    merchant_id: str
    name: str
    description: str
    is_active: bool
    max_capacity: int
    average_service_time: int
    created_at: datetime


class QueueEntryCreate(SQLModel):
    customer_name: str = Field(max_length=255)
    customer_phone: str = Field(default="", max_length=32)
    party_size: int = Field(default=1, ge=1)
    platform: Platform = Platform.WEB


class QueueEntryRead(SQLModel):
    id: str
    queue_id: str
    customer_name: str
    customer_phone: str
    party_size: int
    platform: Platform
    position: int
    status: QueueEntryStatus
    verification_code: str | None
    estimated_wait_time: int
    joined_at: datetime
    called_at: datetime | None
    completed_at: datetime | None


class QueueStats(SQLModel):
    waiting_count: int
    served_today: int
    average_wait_time: float
