"""Tests for the retention cron jobs."""

from datetime import timedelta

import pytest
from sqlmodel import select

from app.models.base import utcnow
from app.models.queue import QueueEntry, QueueEntryStatus
from app.models.webchat_session import WebChatSession
from app.workers import cleanup
from app.workers.main import WorkerSettings


@pytest.fixture
async def queue(make_tenant, make_merchant, make_queue):
    tenant = await make_tenant("acme")
    merchant = await make_merchant("shop@acme.test", tenant.id)
    return await make_queue(merchant.id)


def _entry(queue, name, position, status=QueueEntryStatus.WAITING, days_ago=0):
    return QueueEntry(
        queue_id=queue.id,
        customer_name=name,
        position=position,
        status=status,
        joined_at=utcnow() - timedelta(days=days_ago),
    )


@pytest.mark.asyncio
async def test_cleanup_webchat_sessions(session, session_factory, queue):
    now = utcnow()
    session.add_all(
        [
            WebChatSession(session_id="live", merchant_id=queue.merchant_id, expires_at=now + timedelta(minutes=30)),
            WebChatSession(session_id="expired", merchant_id=queue.merchant_id, expires_at=now - timedelta(minutes=1)),
            WebChatSession(
                session_id="ancient",
                merchant_id=queue.merchant_id,
                is_active=False,
                expires_at=now - timedelta(days=30),
                updated_at=now - timedelta(days=30),
            ),
        ]
    )
    await session.commit()

    result = await cleanup.cleanup_webchat_sessions({"session_factory": session_factory})

    assert result == {"expired_sessions": 1, "deleted_sessions": 1}
    session.expire_all()
    rows = {s.session_id: s for s in (await session.execute(select(WebChatSession))).scalars()}
    assert set(rows) == {"live", "expired"}
    assert rows["live"].is_active is True
    assert rows["expired"].is_active is False


@pytest.mark.asyncio
async def test_cleanup_old_queue_entries(session, session_factory, queue):
    old_done = _entry(queue, "Old done", 1, QueueEntryStatus.COMPLETED, days_ago=10)
    recent_done = _entry(queue, "Recent done", 2, QueueEntryStatus.COMPLETED, days_ago=1)
    stale = _entry(queue, "Stale", 3, days_ago=5)
    fresh = _entry(queue, "Fresh", 4)
    later = _entry(queue, "Later", 6)
    session.add_all([old_done, recent_done, stale, fresh, later])
    await session.commit()
    chat = WebChatSession(session_id="chat-1", merchant_id=queue.merchant_id, queue_entry_id=stale.id)
    session.add(chat)
    await session.commit()

    result = await cleanup.cleanup_old_queue_entries({"session_factory": session_factory})

    assert result == {"deleted": 2, "renumbered": 2}
    session.expire_all()
    remaining = (
        await session.execute(select(QueueEntry).order_by(QueueEntry.customer_name))
    ).scalars().all()
    assert {e.customer_name: e.position for e in remaining} == {
        "Fresh": 1,
        "Later": 2,
        "Recent done": 2,
    }
    await session.refresh(chat)
    assert chat.queue_entry_id is None


@pytest.mark.asyncio
async def test_cleanup_with_nothing_to_do(session_factory, queue):
    result = await cleanup.cleanup_old_queue_entries({"session_factory": session_factory})

    assert result == {"deleted": 0, "renumbered": 0}


def test_worker_schedules_both_jobs():
    scheduled = {job.coroutine for job in WorkerSettings.cron_jobs}

    assert scheduled == {cleanup.cleanup_webchat_sessions, cleanup.cleanup_old_queue_entries}
    assert WorkerSettings.redis_settings.port == 6379
