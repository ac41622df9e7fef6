"""Queue management. Merchants see their own queues, tenant users all of the tenant's."""

from fastapi import APIRouter, HTTPException, Query, Response, status

from app.api.deps import CurrentMerchant, CurrentPrincipal, SecurityLog, Session, TenantId
from app.core.errors import QueueEntryNotFoundError, QueueLimitReachedError, QueueNotFoundError
from app.models.queue import (
    Queue,
    QueueCreate,
    QueueEntryCreate,
    QueueEntryRead,
    QueueEntryStatus,
    QueueRead,
    QueueStats,
    QueueUpdate,
)
from app.services.queue_service import FINAL_STATUSES, QueueService
from app.tenancy.principal import MerchantPrincipal, Principal

router = APIRouter(prefix="/queues", tags=["queues"])


async def _get_queue(
    service: QueueService,
    queue_id: str,
    principal: Principal,
    tenant_id: str,
) -> Queue:
    """Tenant-scoped fetch, further narrowed to the merchant's own queues."""
    queue = await service.get(queue_id, tenant_id)
    if isinstance(principal, MerchantPrincipal) and queue.merchant_id != principal.id:
        raise QueueNotFoundError()
    return queue


@router.get("", response_model=list[QueueRead])
async def list_queues(
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> list[QueueRead]:
    service = QueueService(session, security_log)
    if isinstance(principal, MerchantPrincipal):
        queues = await service.find_by_merchant(principal.id, tenant_id)
    else:
        queues = await service.list_queues(tenant_id)
    return [QueueRead.model_validate(q) for q in queues]


@router.post("", response_model=QueueRead, status_code=status.HTTP_201_CREATED)
async def create_queue(
    body: QueueCreate,
    merchant: CurrentMerchant,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> QueueRead:
    try:
        queue = await QueueService(session, security_log).create(merchant.id, body, tenant_id)
    except QueueLimitReachedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return QueueRead.model_validate(queue)


@router.get("/{queue_id}", response_model=QueueRead)
async def get_queue(
    queue_id: str,
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> QueueRead:
    queue = await _get_queue(QueueService(session, security_log), queue_id, principal, tenant_id)
    return QueueRead.model_validate(queue)


@router.patch("/{queue_id}", response_model=QueueRead)
async def update_queue(
    queue_id: str,
    body: QueueUpdate,
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> QueueRead:
    service = QueueService(session, security_log)
    await _get_queue(service, queue_id, principal, tenant_id)
    queue = await service.update(queue_id, body, tenant_id)
    return QueueRead.model_validate(queue)


@router.delete("/{queue_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_queue(
    queue_id: str,
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> Response:
    service = QueueService(session, security_log)
    await _get_queue(service, queue_id, principal, tenant_id)
    await service.delete(queue_id, tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{queue_id}/stats", response_model=QueueStats)
async def get_queue_stats(
    queue_id: str,
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> QueueStats:
    service = QueueService(session, security_log)
    await _get_queue(service, queue_id, principal, tenant_id)
    return await service.get_queue_stats(queue_id, tenant_id)


# ── Entries ──────────────────────────────────────────────────

@router.get("/{queue_id}/entries", response_model=list[QueueEntryRead])
async def list_waiting_entries(
    queue_id: str,
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> list[QueueEntryRead]:
    service = QueueService(session, security_log)
    await _get_queue(service, queue_id, principal, tenant_id)
    _, entries = await service.get_queue_with_entries(queue_id, tenant_id)
    return [QueueEntryRead.model_validate(e) for e in entries]


@router.post(
    "/{queue_id}/entries",
    response_model=QueueEntryRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_customer(
    queue_id: str,
    body: QueueEntryCreate,
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> QueueEntryRead:
    service = QueueService(session, security_log)
    await _get_queue(service, queue_id, principal, tenant_id)
    entry = await service.add_customer(queue_id, body, tenant_id)
    return QueueEntryRead.model_validate(entry)


@router.post("/{queue_id}/call-next", response_model=QueueEntryRead)
async def call_next(
    queue_id: str,
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> QueueEntryRead:
    service = QueueService(session, security_log)
    await _get_queue(service, queue_id, principal, tenant_id)
    entry = await service.call_next(queue_id, tenant_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No customers waiting")
    return QueueEntryRead.model_validate(entry)


@router.post("/{queue_id}/entries/{entry_id}/call", response_model=QueueEntryRead)
async def call_specific(
    queue_id: str,
    entry_id: str,
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> QueueEntryRead:
    service = QueueService(session, security_log)
    await _get_queue(service, queue_id, principal, tenant_id)
    entry = await service.call_specific(queue_id, entry_id, tenant_id)
    if entry is None:
        raise QueueEntryNotFoundError()
    return QueueEntryRead.model_validate(entry)


@router.delete("/{queue_id}/entries/{entry_id}", response_model=QueueEntryRead)
async def remove_customer(
    queue_id: str,
    entry_id: str,
    principal: CurrentPrincipal,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
    outcome: QueueEntryStatus = Query(default=QueueEntryStatus.COMPLETED, alias="status"),
) -> QueueEntryRead:
    """Finish an entry as completed (default), cancelled or no-show."""
    if outcome not in FINAL_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Status must be completed, cancelled or no_show",
        )
    service = QueueService(session, security_log)
    await _get_queue(service, queue_id, principal, tenant_id)
    entry = await service.find_entry(entry_id, tenant_id)
    if entry is None or entry.queue_id != queue_id:
        raise QueueEntryNotFoundError()
    entry = await service.remove_customer(entry_id, outcome, tenant_id)
    return QueueEntryRead.model_validate(entry)
