"""Queues and their entries."""

import logging
import secrets
from datetime import datetime, time
from typing import Any

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from app.core.errors import (
    MerchantNotFoundError,
    QueueEntryNotFoundError,
    QueueLimitReachedError,
    QueueNotFoundError,
)
from app.models.base import utcnow
from app.models.queue import (
    Queue,
    QueueCreate,
    QueueEntry,
    QueueEntryCreate,
    QueueEntryStatus,
    QueueStats,
    QueueUpdate,
)
from app.models.webchat_session import WebChatSession
from app.tenancy.scoped import TenantDB, tenant_db
from app.tenancy.security_log import SecurityEventLog

logger = logging.getLogger(__name__)

# No 0/O or 1/I
VERIFICATION_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
VERIFICATION_CODE_LENGTH = 4

FINAL_STATUSES = (
    QueueEntryStatus.COMPLETED,
    QueueEntryStatus.CANCELLED,
    QueueEntryStatus.NO_SHOW,
)


def generate_verification_code() -> str:
    return "".join(
        secrets.choice(VERIFICATION_ALPHABET) for _ in range(VERIFICATION_CODE_LENGTH)
    )


class QueueService:
    def __init__(self, session: AsyncSession, security_log: SecurityEventLog) -> None:
        self.session = session
        self.security_log = security_log

    async def _db(self, tenant_id: str | None) -> TenantDB:
        return await tenant_db(self.session, tenant_id, self.security_log, context="QUEUE_SERVICE")

    # ── Queues ───────────────────────────────────────────────

    async def find_by_id(self, queue_id: str, tenant_id: str | None = None) -> Queue | None:
        db = await self._db(tenant_id)
        return await db.queues.find_unique(queue_id)

    async def get(self, queue_id: str, tenant_id: str | None = None) -> Queue:
        queue = await self.find_by_id(queue_id, tenant_id)
        if queue is None:
            raise QueueNotFoundError()
        return queue

    async def find_by_merchant(
        self,
        merchant_id: str,
        tenant_id: str | None = None,
        *,
        active_only: bool = False,
    ) -> list[Queue]:
        db = await self._db(tenant_id)
        criteria = [Queue.merchant_id == merchant_id]
        if active_only:
            criteria.append(Queue.is_active.is_(True))  # type: ignore[union-attr]
        return await db.queues.find_many(
            *criteria,
            order_by=[Queue.created_at.desc()],  # type: ignore[attr-defined]
        )

    async def list_queues(self, tenant_id: str | None = None) -> list[Queue]:
        """Every queue visible to the tenant, across its merchants."""
        db = await self._db(tenant_id)
        return await db.queues.find_many(order_by=[Queue.created_at.desc()])  # type: ignore[attr-defined]

    async def create(
        self,
        merchant_id: str,
        data: QueueCreate,
        tenant_id: str | None = None,
    ) -> Queue:
        db = await self._db(tenant_id)
        merchant = await db.merchants.find_unique(merchant_id)
        if merchant is None:
            raise MerchantNotFoundError()

        existing = await db.queues.count(Queue.merchant_id == merchant_id)
        if existing >= merchant.max_queues:
            raise QueueLimitReachedError(
                f"Merchant may own at most {merchant.max_queues} queue(s)"
            )

        queue = await db.queues.create({**data.model_dump(), "merchant_id": merchant_id})
        await self.session.commit()
        logger.info("Created queue %s for merchant %s", queue.id, merchant_id)
        return queue

    async def update(
        self,
        queue_id: str,
        data: QueueUpdate | dict[str, Any],
        tenant_id: str | None = None,
    ) -> Queue:
        values = data.model_dump(exclude_unset=True) if isinstance(data, SQLModel) else dict(data)
        # Ownership never moves between merchants
        values.pop("merchant_id", None)

        db = await self._db(tenant_id)
        queue = await db.queues.update(queue_id, values)
        if queue is None:
            raise QueueNotFoundError()
        await self.session.commit()
        return queue

    async def delete(self, queue_id: str, tenant_id: str | None = None) -> None:
        db = await self._db(tenant_id)
        if await db.queues.find_unique(queue_id) is None:
            raise QueueNotFoundError()

        entries = await db.queue_entries.find_many(QueueEntry.queue_id == queue_id)
        entry_ids = [entry.id for entry in entries]
        if entry_ids:
            chats = await db.webchat_sessions.find_many(
                WebChatSession.queue_entry_id.in_(entry_ids)  # type: ignore[union-attr]
            )
            for chat in chats:
                await db.webchat_sessions.update(chat.id, {"queue_entry_id": None})
        for entry in entries:
            await db.queue_entries.delete(entry.id)
        await db.queues.delete(queue_id)
        await self.session.commit()
        logger.info("Deleted queue %s with %d entries", queue_id, len(entries))

    async def get_queue_with_entries(
        self,
        queue_id: str,
        tenant_id: str | None = None,
    ) -> tuple[Queue, list[QueueEntry]]:
        """The queue and its waiting entries in position order."""
        db = await self._db(tenant_id)
        queue = await db.queues.find_unique(queue_id)
        if queue is None:
            raise QueueNotFoundError()
        entries = await db.queue_entries.find_many(
            QueueEntry.queue_id == queue_id,
            QueueEntry.status == QueueEntryStatus.WAITING,
            order_by=[QueueEntry.position],
        )
        return queue, entries

    # ── Entries ──────────────────────────────────────────────

    async def find_entry(self, entry_id: str, tenant_id: str | None = None) -> QueueEntry | None:
        db = await self._db(tenant_id)
        return await db.queue_entries.find_unique(entry_id)

    async def add_customer(
        self,
        queue_id: str,
        data: QueueEntryCreate,
        tenant_id: str | None = None,
        *,
        session_id: str | None = None,
        verification_code: str | None = None,
    ) -> QueueEntry:
        """Append a waiting entry after the current last position."""
        db = await self._db(tenant_id)
        queue = await db.queues.find_unique(queue_id)
        if queue is None:
            raise QueueNotFoundError()

        (last_position,) = await db.queue_entries.aggregate(
            func.max(QueueEntry.position),
            criteria=[
                QueueEntry.queue_id == queue_id,
                QueueEntry.status == QueueEntryStatus.WAITING,
            ],
        )
        position = (last_position or 0) + 1

        entry = await db.queue_entries.create(
            {
                **data.model_dump(),
                "queue_id": queue_id,
                "position": position,
                "status": QueueEntryStatus.WAITING,
                "estimated_wait_time": position * queue.average_service_time,
                "session_id": session_id,
                "verification_code": verification_code,
            }
        )
        await self.session.commit()
        logger.info("Queue %s: %s joined at position %d", queue_id, entry.customer_name, position)
        return entry

    async def call_next(self, queue_id: str, tenant_id: str | None = None) -> QueueEntry | None:
        """Call the lowest-positioned waiting customer; None when nobody waits."""
        db = await self._db(tenant_id)
        if await db.queues.find_unique(queue_id) is None:
            raise QueueNotFoundError()

        entry = await db.queue_entries.find_first(
            QueueEntry.queue_id == queue_id,
            QueueEntry.status == QueueEntryStatus.WAITING,
            order_by=[QueueEntry.position],
        )
        if entry is None:
            return None
        return await self._call(db, entry, generate_verification_code())

    async def call_specific(
        self,
        queue_id: str,
        entry_id: str,
        tenant_id: str | None = None,
    ) -> QueueEntry | None:
        """Call a waiting customer out of order; None if not waiting."""
        db = await self._db(tenant_id)
        if await db.queues.find_unique(queue_id) is None:
            raise QueueNotFoundError()

        entry = await db.queue_entries.find_first(
            QueueEntry.id == entry_id,
            QueueEntry.queue_id == queue_id,
            QueueEntry.status == QueueEntryStatus.WAITING,
        )
        if entry is None:
            return None
        return await self._call(db, entry, entry.verification_code or generate_verification_code())

    async def _call(self, db: TenantDB, entry: QueueEntry, code: str) -> QueueEntry:
        called = await db.queue_entries.update(
            entry.id,
            {
                "status": QueueEntryStatus.CALLED,
                "called_at": utcnow(),
                "verification_code": code,
            },
        )
        if called is None:
            raise QueueEntryNotFoundError()
        await self.session.commit()
        return called

    async def remove_customer(
        self,
        entry_id: str,
        status: QueueEntryStatus = QueueEntryStatus.COMPLETED,
        tenant_id: str | None = None,
    ) -> QueueEntry:
        db = await self._db(tenant_id)
        entry = await db.queue_entries.update(
            entry_id,
            {"status": status, "completed_at": utcnow()},
        )
        if entry is None:
            raise QueueEntryNotFoundError()
        await self.session.commit()
        return entry

    async def get_queue_stats(self, queue_id: str, tenant_id: str | None = None) -> QueueStats:
        db = await self._db(tenant_id)
        if await db.queues.find_unique(queue_id) is None:
            raise QueueNotFoundError()

        waiting = await db.queue_entries.count(
            QueueEntry.queue_id == queue_id,
            QueueEntry.status == QueueEntryStatus.WAITING,
        )
        start_of_day = datetime.combine(utcnow().date(), time.min)
        served = await db.queue_entries.find_many(
            QueueEntry.queue_id == queue_id,
            QueueEntry.status == QueueEntryStatus.COMPLETED,
            QueueEntry.completed_at >= start_of_day,  # type: ignore[operator]
        )

        waits = [
            (entry.completed_at - entry.joined_at).total_seconds() / 60
            for entry in served
            if entry.completed_at is not None
        ]
        average = round(sum(waits) / len(waits), 1) if waits else 0.0
        return QueueStats(waiting_count=waiting, served_today=len(served), average_wait_time=average)

    @staticmethod
    def generate_verification_code() -> str:
        return generate_verification_code()
