"""Merchant accounts, scoped to the caller's tenant when one is given."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from app.core.errors import MerchantNotFoundError, TenantInactiveError, TenantResolutionError
from app.core.security import hash_password, verify_password
from app.models.base import utcnow
from app.models.merchant import Merchant, MerchantCreate, MerchantUpdate
from app.models.queue import Queue, QueueEntry
from app.models.tenant import Tenant
from app.models.webchat_session import WebChatSession
from app.tenancy.scoped import TenantDB, tenant_db
from app.tenancy.security_log import SecurityEventLog

logger = logging.getLogger(__name__)


def _values(data: SQLModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(data, SQLModel):
        return data.model_dump(exclude_unset=True)
    return dict(data)


class MerchantService:
    def __init__(self, session: AsyncSession, security_log: SecurityEventLog) -> None:
        self.session = session
        self.security_log = security_log

    async def _db(self, tenant_id: str | None) -> TenantDB:
        return await tenant_db(self.session, tenant_id, self.security_log, context="MERCHANT_SERVICE")

    async def find_by_id(self, merchant_id: str, tenant_id: str | None = None) -> Merchant | None:
        db = await self._db(tenant_id)
        return await db.merchants.find_unique(merchant_id)

    async def get(self, merchant_id: str, tenant_id: str | None = None) -> Merchant:
        merchant = await self.find_by_id(merchant_id, tenant_id)
        if merchant is None:
            raise MerchantNotFoundError()
        return merchant

    async def find_by_email(self, email: str, tenant_id: str | None = None) -> Merchant | None:
        db = await self._db(tenant_id)
        return await db.merchants.find_first(Merchant.email == email.lower())

    async def list_merchants(
        self,
        tenant_id: str | None = None,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Merchant]:
        db = await self._db(tenant_id)
        return await db.merchants.find_many(
            order_by=[Merchant.created_at.desc()],  # type: ignore[attr-defined]
            limit=limit,
            offset=offset,
        )

    async def create(self, data: MerchantCreate, tenant_id: str | None = None) -> Merchant:
        values = data.model_dump(exclude={"password"})
        values["email"] = values["email"].lower()
        values["password_hash"] = hash_password(data.password)

        db = await self._db(tenant_id)
        merchant = await db.merchants.create(values)
        await self.session.commit()
        logger.info("Created merchant %s in tenant %s", merchant.id, merchant.tenant_id)
        return merchant

    async def update(
        self,
        merchant_id: str,
        data: MerchantUpdate | dict[str, Any],
        tenant_id: str | None = None,
    ) -> Merchant:
        """Update a merchant visible to ``tenant_id``.

        Through a scoped handle this also claims a legacy merchant for the
        bound tenant.
        """
        values = _values(data)
        password = values.pop("password", None)
        if password:
            values["password_hash"] = hash_password(password)

        db = await self._db(tenant_id)
        merchant = await db.merchants.update(merchant_id, values)
        if merchant is None:
            raise MerchantNotFoundError()
        await self.session.commit()
        return merchant

    async def delete(self, merchant_id: str, tenant_id: str | None = None) -> None:
        """Delete a merchant with its queues, entries and chat sessions."""
        db = await self._db(tenant_id)
        merchant = await db.merchants.find_unique(merchant_id)
        if merchant is None:
            raise MerchantNotFoundError()

        for chat in await db.webchat_sessions.find_many(WebChatSession.merchant_id == merchant_id):
            await db.webchat_sessions.delete(chat.id)
        for queue in await db.queues.find_many(Queue.merchant_id == merchant_id):
            for entry in await db.queue_entries.find_many(QueueEntry.queue_id == queue.id):
                await db.queue_entries.delete(entry.id)
            await db.queues.delete(queue.id)
        await db.merchants.delete(merchant_id)
        await self.session.commit()
        logger.info("Deleted merchant %s", merchant_id)

    async def authenticate(
        self,
        email: str,
        password: str,
        tenant_id: str | None = None,
    ) -> Merchant | None:
        """Return the merchant on valid credentials and record the login."""
        merchant = await self.find_by_email(email, tenant_id)
        if merchant is None or not merchant.is_active:
            return None
        if not verify_password(password, merchant.password_hash):
            return None

        merchant.last_login = utcnow()
        self.session.add(merchant)
        await self.session.commit()
        return merchant

    async def transfer(self, merchant_id: str, new_tenant_id: str) -> Merchant:
        """Explicitly move a merchant to another tenant. Unscoped, admin only."""
        merchant = await self.session.get(Merchant, merchant_id)
        if merchant is None:
            raise MerchantNotFoundError()

        target = await self.session.get(Tenant, new_tenant_id)
        if target is None:
            raise TenantResolutionError(new_tenant_id)
        if not target.is_active:
            raise TenantInactiveError(new_tenant_id)

        previous = merchant.tenant_id
        merchant.tenant_id = target.id
        merchant.touch()
        self.session.add(merchant)
        await self.session.commit()

        await self.security_log.warn(
            "MERCHANT_TENANT_TRANSFERRED",
            merchant_id=merchant.id,
            from_tenant_id=previous,
            to_tenant_id=target.id,
        )
        return merchant

    async def can_create_queue(self, merchant_id: str, tenant_id: str | None = None) -> bool:
        db = await self._db(tenant_id)
        merchant = await db.merchants.find_unique(merchant_id)
        if merchant is None:
            return False
        existing = await db.queues.count(Queue.merchant_id == merchant_id)
        return existing < merchant.max_queues

    async def email_taken(self, email: str) -> bool:
        """Emails are unique across tenants, so this check is unscoped."""
        result = await self.session.execute(
            select(Merchant.id).where(Merchant.email == email.lower())
        )
        return result.first() is not None
