"""Periodic retention jobs for chat sessions and queue entries.

These run across all tenants, so they use a raw session rather
than a tenant-scoped handle.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import delete, or_, update
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import async_session_factory
from app.models.base import utcnow
from app.models.queue import QueueEntry, QueueEntryStatus
from app.models.webchat_session import WebChatSession
from app.services.queue_service import FINAL_STATUSES

logger = logging.getLogger(__name__)

OPEN_STATUSES = (QueueEntryStatus.WAITING, QueueEntryStatus.CALLED)


def _session_factory(ctx: dict):
    """The factory placed in ``ctx`` by the worker startup, else the app default."""
    return ctx.get("session_factory") or async_session_factory


async def cleanup_webchat_sessions(ctx: dict) -> dict:
    """Deactivate expired sessions, then delete long-inactive ones."""
    settings = get_settings()
    now = utcnow()
    cutoff = now - timedelta(days=settings.queue_entry_retention_days)

    async with _session_factory(ctx)() as session:
        expired = await session.execute(
            update(WebChatSession)
            .where(
                WebChatSession.is_active.is_(True),  # type: ignore[union-attr]
                WebChatSession.expires_at < now,  # type: ignore[operator]
            )
            .values(is_active=False, updated_at=now)
        )
        deleted = await session.execute(
            delete(WebChatSession).where(
                WebChatSession.is_active.is_(False),  # type: ignore[union-attr]
                WebChatSession.updated_at < cutoff,
            )
        )
        await session.commit()

    logger.info(
        "Session cleanup: %d expired, %d deleted", expired.rowcount, deleted.rowcount
    )
    return {"expired_sessions": expired.rowcount, "deleted_sessions": deleted.rowcount}


async def cleanup_old_queue_entries(ctx: dict) -> dict:
    """Delete finished and stale entries, then close gaps in waiting positions."""
    settings = get_settings()
    now = utcnow()
    finished_cutoff = now - timedelta(days=settings.queue_entry_retention_days)
    stale_cutoff = now - timedelta(days=settings.stale_queue_entry_days)

    doomed = or_(
        (QueueEntry.status.in_(FINAL_STATUSES)) & (QueueEntry.joined_at < finished_cutoff),  # type: ignore[attr-defined]
        (QueueEntry.status.in_(OPEN_STATUSES)) & (QueueEntry.joined_at < stale_cutoff),  # type: ignore[attr-defined]
    )

    async with _session_factory(ctx)() as session:
        result = await session.execute(select(QueueEntry.id, QueueEntry.queue_id).where(doomed))
        rows = result.all()
        entry_ids = [row.id for row in rows]
        touched_queues = {row.queue_id for row in rows}

        if entry_ids:
            await session.execute(
                update(WebChatSession)
                .where(WebChatSession.queue_entry_id.in_(entry_ids))  # type: ignore[union-attr]
                .values(queue_entry_id=None)
            )
            await session.execute(delete(QueueEntry).where(QueueEntry.id.in_(entry_ids)))  # type: ignore[attr-defined]

        renumbered = 0
        for queue_id in touched_queues:
            waiting = await session.execute(
                select(QueueEntry)
                .where(
                    QueueEntry.queue_id == queue_id,
                    QueueEntry.status == QueueEntryStatus.WAITING,
                )
                .order_by(QueueEntry.position, QueueEntry.joined_at)
            )
            for position, entry in enumerate(waiting.scalars().all(), start=1):
                if entry.position != position:
                    entry.position = position
                    session.add(entry)
                    renumbered += 1

        await session.commit()

    logger.info(
        "Queue entry cleanup: %d deleted across %d queues, %d renumbered",
        len(entry_ids), len(touched_queues), renumbered,
    )
    return {"deleted": len(entry_ids), "renumbered": renumbered}
