"""Tenant validation: may this principal act inside this tenant?"""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from starlette.requests import Request

from app.models.merchant import Merchant
from app.models.tenant import Tenant
from app.models.user import TenantUser
from app.tenancy.principal import MerchantPrincipal, Principal, TenantUserPrincipal
from app.tenancy.security_log import SecurityEventLog

logger = logging.getLogger(__name__)


class TenantValidator:
    """Boolean entitlement checks. Every outcome is logged."""

    def __init__(self, session: AsyncSession, security_log: SecurityEventLog) -> None:
        self.session = session
        self.security_log = security_log

    async def validate(
        self,
        principal: Principal | None,
        tenant: Tenant | None,
        request: Request | None = None,
    ) -> bool:
        if principal is None or tenant is None:
            await self.security_log.critical(
                "MISSING_USER_OR_TENANT_CONTEXT",
                request,
                has_principal=principal is not None,
                has_tenant=tenant is not None,
            )
            return False

        try:
            if isinstance(principal, MerchantPrincipal):
                return await self.validate_merchant(principal, tenant, request)
            if isinstance(principal, TenantUserPrincipal):
                return await self.validate_tenant_user(principal, tenant, request)
        except Exception as exc:
            await self.security_log.error(
                "TENANT_VALIDATION_ERROR",
                request,
                principal_id=principal.id,
                tenant_id=tenant.id,
                error=str(exc),
            )
            raise

        logger.warning("Unknown principal type %s", type(principal).__name__)
        return False

    async def validate_merchant(
        self,
        principal: MerchantPrincipal,
        tenant: Tenant,
        request: Request | None = None,
    ) -> bool:
        """Own tenant or legacy (no tenant). The row is re-read, never trusted from the token."""
        return await self.validate_merchant_id(principal.id, tenant, request)

    async def validate_merchant_id(
        self,
        merchant_id: str,
        tenant: Tenant,
        request: Request | None = None,
    ) -> bool:
        stmt = select(Merchant).where(
            Merchant.id == merchant_id,
            or_(Merchant.tenant_id == tenant.id, Merchant.tenant_id.is_(None)),  # type: ignore[union-attr]
        )
        merchant = (await self.session.execute(stmt)).scalars().first()

        if merchant is None:
            await self.security_log.critical(
                "CROSS_TENANT_MERCHANT_ACCESS_ATTEMPT",
                request,
                merchant_id=merchant_id,
                requested_tenant_id=tenant.id,
            )
            return False

        if merchant.tenant_id is None:
            await self.security_log.warn(
                "LEGACY_MERCHANT_ACCESS",
                request,
                merchant_id=merchant.id,
                tenant_id=tenant.id,
                message="Merchant without tenant assignment accessing tenant - consider migration",
            )
            return True

        await self.security_log.info(
            "VALID_MERCHANT_ACCESS",
            request,
            merchant_id=merchant.id,
            tenant_id=tenant.id,
        )
        return True

    async def validate_tenant_user(
        self,
        principal: TenantUserPrincipal,
        tenant: Tenant,
        request: Request | None = None,
    ) -> bool:
        stmt = select(TenantUser).where(
            TenantUser.user_id == principal.id,
            TenantUser.tenant_id == tenant.id,
            TenantUser.is_active.is_(True),  # type: ignore[union-attr]
        )
        membership = (await self.session.execute(stmt)).scalars().first()

        if membership is None:
            await self.security_log.critical(
                "CROSS_TENANT_ACCESS_ATTEMPT",
                request,
                user_id=principal.id,
                user_tenant_id=principal.tenant_id,
                requested_tenant_id=tenant.id,
            )
            return False

        await self.security_log.info(
            "VALID_TENANT_ACCESS",
            request,
            user_id=principal.id,
            tenant_id=tenant.id,
            role=str(membership.role),
        )
        return True
