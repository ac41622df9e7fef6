"""Web chat sessions and their link to a queue entry.

Sessions are persisted rows, so they survive restarts and are tenant-scoped
through their merchant like everything else.
"""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import Settings, get_settings
from app.core.errors import (
    AlreadyInQueueError,
    QueueEntryNotFoundError,
    QueueNotFoundError,
    WebChatSessionNotFoundError,
)
from app.models.base import utcnow
from app.models.queue import Platform, QueueEntry, QueueEntryCreate, QueueEntryStatus
from app.models.webchat_session import WebChatJoin, WebChatSession, WebChatStatus
from app.services.queue_service import QueueService, generate_verification_code
from app.tenancy.scoped import TenantDB, tenant_db
from app.tenancy.security_log import SecurityEventLog

logger = logging.getLogger(__name__)


def generate_queue_number(position: int) -> str:
    """Customer-facing number for a web chat entry, e.g. ``W007``."""
    return f"W{position:03d}"


class WebChatService:
    def __init__(
        self,
        session: AsyncSession,
        security_log: SecurityEventLog,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.security_log = security_log
        self.settings = settings or get_settings()
        self.queues = QueueService(session, security_log)

    async def _db(self, tenant_id: str | None) -> TenantDB:
        return await tenant_db(self.session, tenant_id, self.security_log, context="WEBCHAT_SERVICE")

    def _expiry(self):
        return utcnow() + timedelta(minutes=self.settings.webchat_session_ttl_minutes)

    async def create_session(
        self,
        session_id: str,
        merchant_id: str,
        customer_name: str = "",
        tenant_id: str | None = None,
    ) -> WebChatSession:
        """Create the session, or refresh it if this tenant already has it."""
        db = await self._db(tenant_id)
        chat = await db.webchat_sessions.find_by_session_id(session_id)
        if chat is None:
            # Session ids are globally unique; one owned elsewhere is off limits
            taken = await self.session.execute(
                select(WebChatSession.id).where(WebChatSession.session_id == session_id)
            )
            if taken.first() is not None:
                raise WebChatSessionNotFoundError()
            chat = await db.webchat_sessions.create(
                {
                    "session_id": session_id,
                    "merchant_id": merchant_id,
                    "customer_name": customer_name,
                    "expires_at": self._expiry(),
                }
            )
            logger.info("WebChat session created: %s", session_id)
        else:
            values = {"is_active": True, "last_activity_at": utcnow(), "expires_at": self._expiry()}
            if customer_name:
                values["customer_name"] = customer_name
            chat = await db.webchat_sessions.update(chat.id, values)
        await self.session.commit()
        return chat

    async def get_session(self, session_id: str, tenant_id: str | None = None) -> WebChatSession | None:
        """Return an active, unexpired session and extend its lifetime."""
        db = await self._db(tenant_id)
        chat = await db.webchat_sessions.find_first(
            WebChatSession.session_id == session_id,
            WebChatSession.is_active.is_(True),  # type: ignore[union-attr]
            WebChatSession.expires_at > utcnow(),  # type: ignore[operator]
        )
        if chat is None:
            return None
        chat = await db.webchat_sessions.update(
            chat.id,
            {"last_activity_at": utcnow(), "expires_at": self._expiry()},
        )
        await self.session.commit()
        return chat

    async def _require_session(self, session_id: str, tenant_id: str | None) -> WebChatSession:
        chat = await self.get_session(session_id, tenant_id)
        if chat is None:
            raise WebChatSessionNotFoundError()
        return chat

    async def clear_session(self, session_id: str, tenant_id: str | None = None) -> bool:
        db = await self._db(tenant_id)
        chat = await db.webchat_sessions.find_by_session_id(session_id)
        if chat is None:
            return False
        await db.webchat_sessions.delete(chat.id)
        await self.session.commit()
        logger.info("WebChat session cleared: %s", session_id)
        return True

    async def join_queue(
        self,
        session_id: str,
        data: WebChatJoin,
        tenant_id: str | None = None,
    ) -> QueueEntry:
        chat = await self._require_session(session_id, tenant_id)

        queue = await self.queues.get(data.queue_id, tenant_id)
        if queue.merchant_id != chat.merchant_id:
            raise QueueNotFoundError()
        if await self.has_active_queue(session_id, tenant_id):
            raise AlreadyInQueueError(session_id)

        entry = await self.queues.add_customer(
            queue.id,
            QueueEntryCreate(
                customer_name=data.customer_name,
                customer_phone=data.customer_phone,
                party_size=data.party_size,
                platform=Platform.WEBCHAT,
            ),
            tenant_id,
            session_id=session_id,
            verification_code=generate_verification_code(),
        )

        db = await self._db(tenant_id)
        await db.webchat_sessions.update(
            chat.id,
            {"queue_entry_id": entry.id, "customer_name": data.customer_name},
        )
        await self.session.commit()
        return entry

    async def get_queue_status(self, session_id: str, tenant_id: str | None = None) -> WebChatStatus:
        chat = await self._require_session(session_id, tenant_id)
        if chat.queue_entry_id is None:
            return WebChatStatus(session_id=session_id, in_queue=False)

        db = await self._db(tenant_id)
        entry = await db.queue_entries.find_unique(chat.queue_entry_id)
        if entry is None:
            return WebChatStatus(session_id=session_id, in_queue=False)

        position = None
        wait = None
        if entry.status == QueueEntryStatus.WAITING:
            # Live position: waiting entries at or ahead of this one
            position = await db.queue_entries.count(
                QueueEntry.queue_id == entry.queue_id,
                QueueEntry.status == QueueEntryStatus.WAITING,
                QueueEntry.position <= entry.position,
            )
            queue = await db.queues.find_unique(entry.queue_id)
            wait = position * queue.average_service_time if queue is not None else None

        return WebChatStatus(
            session_id=session_id,
            in_queue=entry.status in (QueueEntryStatus.WAITING, QueueEntryStatus.CALLED),
            queue_number=generate_queue_number(entry.position),
            position=position,
            status=str(entry.status),
            estimated_wait_time=wait,
            verification_code=entry.verification_code,
        )

    async def cancel_queue_entry(self, session_id: str, tenant_id: str | None = None) -> QueueEntry:
        chat = await self._require_session(session_id, tenant_id)
        if chat.queue_entry_id is None:
            raise QueueEntryNotFoundError()

        await self.security_log.info(
            "WEBCHAT_CANCEL_QUEUE_ENTRY",
            session_id=session_id,
            queue_entry_id=chat.queue_entry_id,
            tenant_id=tenant_id,
        )
        entry = await self.queues.remove_customer(
            chat.queue_entry_id, QueueEntryStatus.CANCELLED, tenant_id
        )

        db = await self._db(tenant_id)
        await db.webchat_sessions.update(chat.id, {"queue_entry_id": None})
        await self.session.commit()
        return entry

    async def has_active_queue(self, session_id: str, tenant_id: str | None = None) -> bool:
        db = await self._db(tenant_id)
        chat = await db.webchat_sessions.find_by_session_id(session_id)
        if chat is None or chat.queue_entry_id is None:
            return False
        entry = await db.queue_entries.find_unique(chat.queue_entry_id)
        return entry is not None and entry.status == QueueEntryStatus.WAITING

    async def active_sessions_count(self, tenant_id: str | None = None) -> int:
        db = await self._db(tenant_id)
        return await db.webchat_sessions.count(
            WebChatSession.is_active.is_(True),  # type: ignore[union-attr]
            WebChatSession.expires_at > utcnow(),  # type: ignore[operator]
        )

    @staticmethod
    def generate_queue_number(position: int) -> str:
        return generate_queue_number(position)
