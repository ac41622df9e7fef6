"""Tenant resolution: turn request signals into exactly one active tenant.

Signals are tried in priority order and the first one that fetches a tenant
wins: explicit header, subdomain slug, custom domain, the authenticated
principal's own tenant, then (optionally) the oldest active tenant for
single-tenant deployments.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import ColumnElement
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from starlette.requests import Request

from app.core.config import Settings, get_settings
from app.core.errors import TenantInactiveError
from app.models.tenant import Tenant
from app.tenancy.principal import Principal
from app.tenancy.security_log import SecurityEventLog

logger = logging.getLogger(__name__)


def parse_subdomains(hostname: str | None, offset: int = 2) -> list[str]:
    """Subdomain labels left of the base domain, nearest-first.

    ``a.b.queuehub.io`` with offset 2 gives ``["b", "a"]``. IP addresses and
    ``localhost`` have no subdomains.
    """
    if not hostname:
        return []
    host = hostname.lower().rstrip(".")
    if host == "localhost":
        return []
    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return []
    labels = list(reversed(host.split(".")))
    return labels[offset:]


@dataclass(frozen=True)
class TenantSignals:
    """Everything the resolver is allowed to look at."""

    header_tenant_id: str | None = None
    hostname: str | None = None
    subdomains: list[str] = field(default_factory=list)
    principal: Principal | None = None
    request: Request | None = None

    @classmethod
    def from_request(cls, request: Request, settings: Settings | None = None) -> TenantSignals:
        settings = settings or get_settings()
        hostname = request.url.hostname
        header = request.headers.get(settings.tenant_header)
        return cls(
            header_tenant_id=header.strip() if header and header.strip() else None,
            hostname=hostname.lower() if hostname else None,
            subdomains=parse_subdomains(hostname, settings.subdomain_offset),
            principal=getattr(request.state, "principal", None),
            request=request,
        )


class TenantResolver:
    """Resolves the tenant for one request. Construct per request."""

    def __init__(
        self,
        session: AsyncSession,
        security_log: SecurityEventLog,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.security_log = security_log
        self.settings = settings or get_settings()

    async def resolve(self, signals: TenantSignals) -> Tenant | None:
        """Return the active tenant, or None when nothing matched.

        Raises:
            TenantInactiveError: a signal named a deactivated tenant.
        """
        try:
            return await self._resolve(signals)
        except TenantInactiveError:
            raise
        except Exception as exc:
            await self.security_log.error(
                "TENANT_RESOLUTION_FAILED",
                signals.request,
                error=str(exc),
            )
            raise

    async def resolve_request(self, request: Request) -> Tenant | None:
        return await self.resolve(TenantSignals.from_request(request, self.settings))

    async def _resolve(self, signals: TenantSignals) -> Tenant | None:
        request = signals.request
        principal_tenant_id = signals.principal.tenant_id if signals.principal else None

        # 1. Explicit header, never trusted over an authenticated identity
        if signals.header_tenant_id:
            tenant_id = signals.header_tenant_id
            method = "header"
            if principal_tenant_id and principal_tenant_id != tenant_id:
                await self.security_log.critical(
                    "CROSS_TENANT_HEADER_ATTEMPT",
                    request,
                    attempted_tenant_id=tenant_id,
                    principal_tenant_id=principal_tenant_id,
                    method="header",
                )
                tenant_id = principal_tenant_id
                method = "principal"
            tenant = await self._fetch(Tenant.id == tenant_id, request)
            if tenant is not None:
                return await self._resolved(tenant, method, request)

        # 2. Subdomain slug
        if signals.subdomains:
            slug = signals.subdomains[-1]
            tenant = await self._fetch(Tenant.slug == slug, request)
            if tenant is not None:
                return await self._resolved(
                    tenant, "subdomain", request,
                    tenant_slug=slug, subdomains=signals.subdomains,
                )

        # 3. Custom domain mapping
        if signals.hostname:
            tenant = await self._fetch(Tenant.domain == signals.hostname, request)
            if tenant is not None:
                return await self._resolved(tenant, "domain", request, domain=signals.hostname)

        # 4. The principal's own tenant
        if principal_tenant_id:
            tenant = await self._fetch(Tenant.id == principal_tenant_id, request)
            if tenant is not None:
                return await self._resolved(
                    tenant, "principal", request, principal_id=signals.principal.id
                )

        # 5. Single-tenant deployments
        if self.settings.single_tenant_fallback:
            tenant = await self._oldest_active_tenant()
            if tenant is not None:
                return await self._resolved(tenant, "fallback", request)

        await self.security_log.warn(
            "TENANT_NOT_RESOLVED",
            request,
            header_tenant_id=signals.header_tenant_id,
            hostname=signals.hostname,
            subdomains=signals.subdomains,
        )
        return None

    async def _fetch(self, condition: ColumnElement[bool], request: Request | None) -> Tenant | None:
        """Fetch regardless of status; an inactive match is a hard failure."""
        result = await self.session.execute(select(Tenant).where(condition))
        tenant = result.scalars().first()
        if tenant is not None and not tenant.is_active:
            await self.security_log.critical(
                "INACTIVE_TENANT_ACCESS_ATTEMPT",
                request,
                tenant_id=tenant.id,
                tenant_slug=tenant.slug,
            )
            raise TenantInactiveError(tenant.id)
        return tenant

    async def _oldest_active_tenant(self) -> Tenant | None:
        stmt = (
            select(Tenant)
            .where(Tenant.is_active == True)  # noqa: E712
            .order_by(Tenant.created_at, Tenant.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def _resolved(
        self,
        tenant: Tenant,
        method: str,
        request: Request | None,
        **details: Any,
    ) -> Tenant:
        await self.security_log.info(
            f"TENANT_RESOLVED_BY_{method.upper()}",
            request,
            tenant_id=tenant.id,
            method=method,
            **details,
        )
        return tenant
