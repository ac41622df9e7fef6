"""Authentication endpoints: merchant signup/login and tenant-user login.

These live under a public prefix, so the isolation middleware does not run;
registration resolves the tenant itself.
"""

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, EmailStr
from sqlmodel import select

from app.api.deps import SecurityLog, Session
from app.core.errors import TenantAccessError, TenantResolutionError
from app.core.security import create_jwt, verify_password
from app.models.merchant import Merchant, MerchantCreate, MerchantRead
from app.models.tenant import Tenant, TenantRead
from app.models.user import TenantUser, User, UserRead
from app.services.merchant_service import MerchantService
from app.tenancy.principal import PrincipalKind
from app.tenancy.resolver import TenantResolver

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Schemas ──────────────────────────────────────────────────

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TenantLoginRequest(LoginRequest):
    # Required only when the user belongs to several tenants
    tenant_id: str | None = None


class MerchantLoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    merchant: MerchantRead


class TenantLoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead
    tenant: TenantRead


def _merchant_token(merchant: Merchant) -> str:
    return create_jwt(
        subject=merchant.id,
        kind=PrincipalKind.MERCHANT,
        tenant_id=merchant.tenant_id,
        claims={"email": merchant.email, "business_name": merchant.business_name},
    )


# ── Routes ───────────────────────────────────────────────────

@router.post(
    "/merchant/register",
    response_model=MerchantLoginResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_merchant(
    body: MerchantCreate,
    request: Request,
    session: Session,
    security_log: SecurityLog,
) -> MerchantLoginResponse:
    """Create a merchant in the tenant resolved for this request."""
    resolver = TenantResolver(session, security_log, getattr(request.app.state, "settings", None))
    try:
        tenant = await resolver.resolve_request(request)
    except TenantResolutionError:
        tenant = None
    if tenant is None:
        raise TenantAccessError(status.HTTP_400_BAD_REQUEST, "Tenant not found", "TENANT_NOT_FOUND")

    service = MerchantService(session, security_log)
    if await service.email_taken(body.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A merchant with this email already exists",
        )

    merchant = await service.create(body, tenant.id)
    return MerchantLoginResponse(
        access_token=_merchant_token(merchant),
        merchant=MerchantRead.model_validate(merchant),
    )


@router.post("/merchant/login", response_model=MerchantLoginResponse)
async def merchant_login(
    body: LoginRequest,
    session: Session,
    security_log: SecurityLog,
) -> MerchantLoginResponse:
    """Authenticate a merchant, receive a JWT carrying its tenant."""
    merchant = await MerchantService(session, security_log).authenticate(body.email, body.password)
    if merchant is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    return MerchantLoginResponse(
        access_token=_merchant_token(merchant),
        merchant=MerchantRead.model_validate(merchant),
    )


@router.post("/login", response_model=TenantLoginResponse)
async def login(body: TenantLoginRequest, session: Session) -> TenantLoginResponse:
    """Authenticate a tenant user against one of its active memberships."""
    result = await session.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    stmt = (
        select(TenantUser, Tenant)
        .join(Tenant, Tenant.id == TenantUser.tenant_id)
        .where(
            TenantUser.user_id == user.id,
            TenantUser.is_active.is_(True),  # type: ignore[union-attr]
            Tenant.is_active.is_(True),  # type: ignore[union-attr]
        )
        .order_by(TenantUser.created_at)
    )
    if body.tenant_id:
        stmt = stmt.where(TenantUser.tenant_id == body.tenant_id)
    row = (await session.execute(stmt)).first()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No active tenant membership",
        )
    membership, tenant = row

    token = create_jwt(
        subject=user.id,
        kind=PrincipalKind.TENANT_USER,
        tenant_id=tenant.id,
        claims={"email": user.email, "role": str(membership.role)},
    )
    return TenantLoginResponse(
        access_token=token,
        user=UserRead.model_validate(user),
        tenant=TenantRead.model_validate(tenant),
    )
