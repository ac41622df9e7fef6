"""Merchant profile endpoints, scoped to the resolved tenant."""

from fastapi import APIRouter

from app.api.deps import CurrentMerchant, MerchantAccess, SecurityLog, Session, TenantId
from app.models.merchant import MerchantRead, MerchantUpdate
from app.services.merchant_service import MerchantService

router = APIRouter(prefix="/merchants", tags=["merchants"])


@router.get("/me", response_model=MerchantRead)
async def get_me(
    merchant: CurrentMerchant,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> MerchantRead:
    record = await MerchantService(session, security_log).get(merchant.id, tenant_id)
    return MerchantRead.model_validate(record)


@router.patch("/me", response_model=MerchantRead)
async def update_me(
    body: MerchantUpdate,
    merchant: CurrentMerchant,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> MerchantRead:
    # Merchants cannot deactivate themselves here
    data = body.model_dump(exclude_unset=True, exclude={"is_active"})
    record = await MerchantService(session, security_log).update(merchant.id, data, tenant_id)
    return MerchantRead.model_validate(record)


@router.get("/{merchant_id}", response_model=MerchantRead)
async def get_merchant(
    merchant_id: MerchantAccess,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> MerchantRead:
    record = await MerchantService(session, security_log).get(merchant_id, tenant_id)
    return MerchantRead.model_validate(record)
