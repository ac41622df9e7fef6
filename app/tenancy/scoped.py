"""Tenant-scoped data access.

``tenant_db(session, tenant_id, log)`` returns a fresh :class:`TenantDB`
whose repositories AND a tenant clause into every read and stamp the bound
tenant onto every write. Merchants carry ``tenant_id`` directly; queues,
queue entries and chat sessions reach it through their merchant, so their
clause is a nested ``IN (SELECT ...)`` ending at the same merchant condition.

Reads for another tenant's rows come back empty: a foreign id is
indistinguishable from a missing one.

With ``legacy_visible`` on, ``tenant_id IS NULL`` merchants (and everything
they own) are visible to every tenant. That keeps pre-multi-tenancy data
working at the cost of strict isolation; turn it off once legacy rows have
been claimed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import ColumnElement, Row, Select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from app.core.config import Settings, get_settings
from app.core.errors import (
    MerchantNotFoundError,
    NotFoundOrDeniedError,
    QueueEntryNotFoundError,
    QueueNotFoundError,
    WebChatSessionNotFoundError,
)
from app.models.base import TimestampMixin
from app.models.merchant import Merchant
from app.models.queue import Queue, QueueEntry
from app.models.webchat_session import WebChatSession
from app.tenancy.security_log import SecurityEventLog

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)


class ScopedRepository(Generic[ModelT]):
    """Data access for one entity, optionally bound to a tenant.

    An unbound repository (``tenant_id=None``) applies no filter and no
    tagging; that is the legacy escape hatch and is announced by
    :func:`tenant_db`.
    """

    model: ClassVar[type[SQLModel]]
    entity: ClassVar[str]
    not_found_error: ClassVar[type[NotFoundOrDeniedError]] = NotFoundOrDeniedError

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: str | None,
        security_log: SecurityEventLog,
        *,
        legacy_visible: bool = True,
    ) -> None:
        self.session = session
        self.tenant_id = tenant_id
        self.security_log = security_log
        self.legacy_visible = legacy_visible

    @property
    def is_scoped(self) -> bool:
        return self.tenant_id is not None

    # ── Filter construction ──────────────────────────────────

    def merchant_condition(self) -> ColumnElement[bool]:
        """The merchant-level tenant condition every clause bottoms out in."""
        condition = Merchant.tenant_id == self.tenant_id
        if self.legacy_visible:
            condition = or_(condition, Merchant.tenant_id.is_(None))  # type: ignore[union-attr]
        return condition

    def visible_merchant_ids(self) -> Select:
        return select(Merchant.id).where(self.merchant_condition())

    def _clause(self) -> ColumnElement[bool]:
        raise NotImplementedError

    def tenant_clause(self) -> ColumnElement[bool] | None:
        if not self.is_scoped:
            return None
        return self._clause()

    def _where(self, stmt: Select, criteria: Iterable[Any]) -> Select:
        stmt = stmt.where(*criteria)
        clause = self.tenant_clause()
        if clause is not None:
            stmt = stmt.where(clause)
        return stmt

    # ── Reads ────────────────────────────────────────────────

    async def find_many(
        self,
        *criteria: Any,
        order_by: Iterable[Any] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ModelT]:
        stmt = self._where(select(self.model), criteria).order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        await self._log_query("find_many")
        result = await self.session.execute(stmt)
        rows = list(result.scalars().all())
        await self._after_read(rows, "find_many")
        return rows

    async def find_first(self, *criteria: Any, order_by: Iterable[Any] = ()) -> ModelT | None:
        stmt = self._where(select(self.model), criteria).order_by(*order_by).limit(1)
        await self._log_query("find_first")
        result = await self.session.execute(stmt)
        row = result.scalars().first()
        if row is not None:
            await self._after_read([row], "find_first")
        return row

    async def find_unique(self, record_id: str) -> ModelT | None:
        stmt = self._where(select(self.model), [self.model.id == record_id])
        await self._log_query("find_unique")
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is not None:
            await self._after_read([row], "find_unique")
        return row

    async def count(self, *criteria: Any) -> int:
        stmt = self._where(select(func.count()).select_from(self.model), criteria)
        await self._log_query("count")
        return (await self.session.execute(stmt)).scalar_one()

    async def aggregate(self, *columns: Any, criteria: Iterable[Any] = ()) -> Row:
        """Run aggregate expressions, e.g. ``aggregate(func.max(QueueEntry.position))``."""
        stmt = self._where(select(*columns).select_from(self.model), criteria)
        await self._log_query("aggregate")
        return (await self.session.execute(stmt)).one()

    async def exists(self, record_id: str) -> bool:
        """Visibility probe used for parent checks. Not logged."""
        stmt = self._where(select(self.model.id), [self.model.id == record_id])
        return (await self.session.execute(stmt)).first() is not None

    # ── Writes ───────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelT:
        values = await self._tag(dict(data), existing=None)
        obj = self.model(**values)
        self.session.add(obj)
        await self.session.flush()
        await self._log_mutation("create")
        return obj  # type: ignore[return-value]

    async def update(self, record_id: str, data: dict[str, Any]) -> ModelT | None:
        """Update a visible row. Foreign or missing rows return None."""
        obj = await self.find_unique(record_id)
        if obj is None:
            return None
        return await self._apply(obj, data)

    async def _apply(self, obj: ModelT, data: dict[str, Any]) -> ModelT:
        values = await self._tag(dict(data), existing=obj)
        for field, value in values.items():
            setattr(obj, field, value)
        if isinstance(obj, TimestampMixin):
            obj.touch()
        self.session.add(obj)
        await self.session.flush()
        await self._log_mutation("update")
        return obj

    async def upsert(
        self,
        record_id: str,
        create: dict[str, Any],
        update: dict[str, Any],
    ) -> ModelT:
        existing = await self.find_unique(record_id)
        if existing is not None:
            return await self._apply(existing, update)

        # The id may belong to a foreign tenant; never overwrite or reveal it
        if await self.session.get(self.model, record_id) is not None:
            raise self.not_found_error()
        return await self.create({**create, "id": record_id})

    async def delete(self, record_id: str) -> bool:
        obj = await self.find_unique(record_id)
        if obj is None:
            return False
        await self.session.delete(obj)
        await self.session.flush()
        await self._log_mutation("delete")
        return True

    # ── Hooks ────────────────────────────────────────────────

    async def _tag(self, data: dict[str, Any], existing: ModelT | None) -> dict[str, Any]:
        """Adjust write payloads. Entities without a tenant column drop it."""
        data.pop("tenant_id", None)
        return data

    async def _after_read(self, rows: list[ModelT], operation: str) -> None:
        return None

    async def _log_query(self, operation: str) -> None:
        if self.is_scoped:
            await self.security_log.info(
                f"TENANT_FILTERED_{self.entity}_QUERY",
                tenant_id=self.tenant_id,
                operation=operation,
                legacy_visible=self.legacy_visible,
            )

    async def _log_mutation(self, operation: str) -> None:
        if self.is_scoped:
            await self.security_log.info(
                f"TENANT_SCOPED_{self.entity}_MUTATION",
                tenant_id=self.tenant_id,
                operation=operation,
            )

    def _sibling(self, repo_cls: type[ScopedRepository]) -> ScopedRepository:
        return repo_cls(
            self.session,
            self.tenant_id,
            self.security_log,
            legacy_visible=self.legacy_visible,
        )

    async def _require_parent(
        self,
        repo_cls: type[ScopedRepository],
        parent_id: str | None,
    ) -> None:
        if not self.is_scoped:
            return
        if parent_id is None or not await self._sibling(repo_cls).exists(parent_id):
            raise repo_cls.not_found_error()


class MerchantRepository(ScopedRepository[Merchant]):
    model = Merchant
    entity = "MERCHANT"
    not_found_error = MerchantNotFoundError

    def _clause(self) -> ColumnElement[bool]:
        return self.merchant_condition()

    async def _tag(self, data: dict[str, Any], existing: Merchant | None) -> dict[str, Any]:
        if self.is_scoped:
            # Payload tenant claims are ignored; the bound tenant wins
            data["tenant_id"] = self.tenant_id
        elif existing is not None:
            # Reassignment goes through MerchantService.transfer only
            data.pop("tenant_id", None)
        return data

    async def _after_read(self, rows: list[Merchant], operation: str) -> None:
        if not self.is_scoped:
            return
        for merchant in rows:
            if merchant.tenant_id is None:
                await self.security_log.warn(
                    "LEGACY_MERCHANT_ACCESS",
                    merchant_id=merchant.id,
                    tenant_id=self.tenant_id,
                    operation=operation,
                    message="Merchant accessed without tenant assignment - backward compatibility mode",
                )


class QueueRepository(ScopedRepository[Queue]):
    model = Queue
    entity = "QUEUE"
    not_found_error = QueueNotFoundError

    def _clause(self) -> ColumnElement[bool]:
        return Queue.merchant_id.in_(self.visible_merchant_ids())  # type: ignore[attr-defined]

    def visible_queue_ids(self) -> Select:
        return select(Queue.id).where(self._clause())

    async def _tag(self, data: dict[str, Any], existing: Queue | None) -> dict[str, Any]:
        data = await super()._tag(data, existing)
        if existing is None or "merchant_id" in data:
            await self._require_parent(MerchantRepository, data.get("merchant_id"))
        return data


class QueueEntryRepository(ScopedRepository[QueueEntry]):
    model = QueueEntry
    entity = "QUEUE_ENTRY"
    not_found_error = QueueEntryNotFoundError

    def _clause(self) -> ColumnElement[bool]:
        queues = self._sibling(QueueRepository)
        return QueueEntry.queue_id.in_(queues.visible_queue_ids())  # type: ignore[attr-defined]

    async def _tag(self, data: dict[str, Any], existing: QueueEntry | None) -> dict[str, Any]:
        data = await super()._tag(data, existing)
        if existing is None or "queue_id" in data:
            await self._require_parent(QueueRepository, data.get("queue_id"))
        return data


class WebChatSessionRepository(ScopedRepository[WebChatSession]):
    model = WebChatSession
    entity = "WEBCHAT_SESSION"
    not_found_error = WebChatSessionNotFoundError

    def _clause(self) -> ColumnElement[bool]:
        return WebChatSession.merchant_id.in_(self.visible_merchant_ids())  # type: ignore[attr-defined]

    async def find_by_session_id(self, session_id: str) -> WebChatSession | None:
        return await self.find_first(WebChatSession.session_id == session_id)

    async def _tag(self, data: dict[str, Any], existing: WebChatSession | None) -> dict[str, Any]:
        data = await super()._tag(data, existing)
        if existing is None or "merchant_id" in data:
            await self._require_parent(MerchantRepository, data.get("merchant_id"))
        return data


class TenantDB:
    """One set of repositories bound to one session and one tenant."""

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: str | None,
        security_log: SecurityEventLog,
        *,
        legacy_visible: bool = True,
    ) -> None:
        self.session = session
        self.tenant_id = tenant_id
        kwargs = {"legacy_visible": legacy_visible}
        self.merchants = MerchantRepository(session, tenant_id, security_log, **kwargs)
        self.queues = QueueRepository(session, tenant_id, security_log, **kwargs)
        self.queue_entries = QueueEntryRepository(session, tenant_id, security_log, **kwargs)
        self.webchat_sessions = WebChatSessionRepository(session, tenant_id, security_log, **kwargs)

    @property
    def is_scoped(self) -> bool:
        return self.tenant_id is not None


async def tenant_db(
    session: AsyncSession,
    tenant_id: str | None,
    security_log: SecurityEventLog,
    *,
    context: str = "TENANT_DB",
    settings: Settings | None = None,
) -> TenantDB:
    """Return a fresh handle for ``tenant_id``; unfiltered (and logged) when None."""
    settings = settings or get_settings()
    if not tenant_id:
        await security_log.warn(
            f"{context}_NO_TENANT_CONTEXT",
            message="Using unfiltered data access without tenant filtering - backward compatibility mode",
        )
        tenant_id = None
    return TenantDB(
        session,
        tenant_id,
        security_log,
        legacy_visible=settings.legacy_records_visible,
    )
