"""Import all models so SQLModel.metadata picks them up."""

from app.models.audit_log import AuditLog
from app.models.merchant import Merchant, MerchantCreate, MerchantRead, MerchantUpdate
from app.models.queue import (
    Platform,
    Queue,
    QueueCreate,
    QueueEntry,
    QueueEntryCreate,
    QueueEntryRead,
    QueueEntryStatus,
    QueueRead,
    QueueStats,
    QueueUpdate,
)
from app.models.tenant import Tenant, TenantRead
from app.models.user import TenantUser, TenantUserRole, User, UserRead
from app.models.webchat_session import WebChatJoin, WebChatSession, WebChatStatus

__all__ = [
    "AuditLog",
    "Merchant",
    "MerchantCreate",
    "MerchantRead",
    "MerchantUpdate",
    "Platform",
    "Queue",
    "QueueCreate",
    "QueueEntry",
    "QueueEntryCreate",
    "QueueEntryRead",
    "QueueEntryStatus",
    "QueueRead",
    "QueueStats",
    "QueueUpdate",
    "Tenant",
    "TenantRead",
    "TenantUser",
    "TenantUserRole",
    "User",
    "UserRead",
    "WebChatJoin",
    "WebChatSession",
    "WebChatStatus",
]
