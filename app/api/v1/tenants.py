"""Current tenant info."""

from fastapi import APIRouter

from app.api.deps import CurrentTenant
from app.models.tenant import TenantRead

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.get(
    "/current",
    response_model=TenantRead,
    summary="Get the tenant resolved for this request",
)
async def get_current_tenant(tenant: CurrentTenant) -> TenantRead:
    """Anonymous callers may read this; the widget needs tenant branding."""
    return TenantRead.model_validate(tenant)
