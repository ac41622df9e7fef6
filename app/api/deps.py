"""FastAPI dependencies for principals, tenant context and merchant guards."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import TenantAccessError
from app.models.tenant import Tenant
from app.tenancy.principal import MerchantPrincipal, Principal
from app.tenancy.security_log import SecurityEventLog
from app.tenancy.validator import TenantValidator


def get_security_log(request: Request) -> SecurityEventLog:
    return request.app.state.security_log


def get_current_tenant(request: Request) -> Tenant:
    """Tenant attached by TenantIsolationMiddleware."""
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        raise TenantAccessError(status.HTTP_400_BAD_REQUEST, "Tenant not found", "TENANT_NOT_FOUND")
    return tenant


def get_tenant_id(tenant: Annotated[Tenant, Depends(get_current_tenant)]) -> str:
    return tenant.id


def get_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return principal


def require_merchant(
    principal: Annotated[Principal, Depends(get_principal)],
) -> MerchantPrincipal:
    if not isinstance(principal, MerchantPrincipal):
        raise TenantAccessError(
            status.HTTP_403_FORBIDDEN,
            "Access denied to merchant resources",
            "MERCHANT_ACCESS_DENIED",
        )
    return principal


async def require_merchant_access(
    request: Request,
    principal: Annotated[Principal, Depends(get_principal)],
    tenant: Annotated[Tenant, Depends(get_current_tenant)],
    session: Annotated[AsyncSession, Depends(get_session)],
    security_log: Annotated[SecurityEventLog, Depends(get_security_log)],
) -> str:
    """Merchant id from the path (or the merchant principal) that the tenant may touch."""
    merchant_id = request.path_params.get("merchant_id")
    if merchant_id is None and isinstance(principal, MerchantPrincipal):
        merchant_id = principal.id
    if not merchant_id:
        raise TenantAccessError(
            status.HTTP_400_BAD_REQUEST,
            "Merchant ID required",
            "MERCHANT_ID_REQUIRED",
        )

    validator = TenantValidator(session, security_log)
    try:
        allowed = await validator.validate_merchant_id(merchant_id, tenant, request)
    except Exception as exc:
        await security_log.error(
            "MERCHANT_ACCESS_VALIDATION_ERROR",
            request,
            merchant_id=merchant_id,
            error=str(exc),
        )
        raise TenantAccessError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            "INTERNAL_ERROR",
        ) from exc

    if not allowed:
        raise TenantAccessError(
            status.HTTP_403_FORBIDDEN,
            "Access denied to merchant resources",
            "MERCHANT_ACCESS_DENIED",
        )
    request.state.merchant_id = merchant_id
    return merchant_id


# Typed shorthand for use in route signatures
Session = Annotated[AsyncSession, Depends(get_session)]
SecurityLog = Annotated[SecurityEventLog, Depends(get_security_log)]
CurrentTenant = Annotated[Tenant, Depends(get_current_tenant)]
TenantId = Annotated[str, Depends(get_tenant_id)]
CurrentPrincipal = Annotated[Principal, Depends(get_principal)]
CurrentMerchant = Annotated[MerchantPrincipal, Depends(require_merchant)]
MerchantAccess = Annotated[str, Depends(require_merchant_access)]
