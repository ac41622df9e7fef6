"""Request middleware: principal context and tenant isolation.

``AuthenticationMiddleware`` must run first (add it last). It only decodes;
enforcement happens in ``TenantIsolationMiddleware`` and route dependencies.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import Settings, get_settings
from app.core.errors import TenantResolutionError
from app.core.security import decode_jwt
from app.tenancy.principal import principal_from_claims
from app.tenancy.resolver import TenantResolver, TenantSignals
from app.tenancy.security_log import SecurityEventLog
from app.tenancy.validator import TenantValidator

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]


def error_response(status_code: int, error: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "code": code})


def is_public_path(path: str, prefixes: list[str]) -> bool:
    """True when ``path`` is one of ``prefixes`` or lies beneath one."""
    for prefix in prefixes:
        base = prefix.rstrip("/")
        if path == base or path.startswith(base + "/"):
            return True
    return False


def _settings_for(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Attach ``request.state.principal`` from an optional bearer JWT.

    Missing or invalid tokens leave the request anonymous.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request.state.principal = None

        auth = request.headers.get("authorization")
        if auth and auth.startswith("Bearer "):
            token = auth.removeprefix("Bearer ").strip()
            try:
                request.state.principal = principal_from_claims(decode_jwt(token))
            except JWTError:
                logger.debug("Ignoring invalid bearer token on %s", request.url.path)

        return await call_next(request)


class TenantIsolationMiddleware(BaseHTTPMiddleware):
    """Resolve the tenant, validate the principal against it, attach both.

    Responses: 400 TENANT_NOT_FOUND when nothing (active) resolves, 403
    TENANT_ACCESS_DENIED when validation fails, 500 INTERNAL_ERROR for any
    failure inside isolation itself. Errors raised by downstream handlers
    are not handled here.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        settings = _settings_for(request)
        path = request.url.path
        if is_public_path(path, settings.public_path_prefixes):
            return await call_next(request)

        security_log: SecurityEventLog = request.app.state.security_log
        try:
            denied = await self._isolate(request, settings, security_log)
        except Exception as exc:
            logger.exception("Tenant isolation failed for %s %s", request.method, path)
            await security_log.critical(
                "TENANT_MIDDLEWARE_ERROR",
                request,
                error=str(exc),
            )
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                "INTERNAL_ERROR",
            )
        if denied is not None:
            return denied

        return await call_next(request)

    async def _isolate(
        self,
        request: Request,
        settings: Settings,
        security_log: SecurityEventLog,
    ) -> Response | None:
        """Return an error response, or None once the tenant is attached."""
        session_factory = request.app.state.session_factory
        principal = getattr(request.state, "principal", None)

        async with session_factory() as session:
            resolver = TenantResolver(session, security_log, settings)
            try:
                tenant = await resolver.resolve(TenantSignals.from_request(request, settings))
            except TenantResolutionError:
                tenant = None

            if tenant is None:
                return error_response(
                    status.HTTP_400_BAD_REQUEST, "Tenant not found", "TENANT_NOT_FOUND"
                )

            request.state.tenant = tenant
            request.state.tenant_id = tenant.id

            if principal is not None:
                validator = TenantValidator(session, security_log)
                if not await validator.validate(principal, tenant, request):
                    await security_log.critical(
                        "UNAUTHORIZED_TENANT_ACCESS_BLOCKED",
                        request,
                        tenant_id=tenant.id,
                        principal_id=principal.id,
                        principal_kind=str(principal.kind),
                    )
                    return error_response(
                        status.HTTP_403_FORBIDDEN,
                        "Access denied to this tenant",
                        "TENANT_ACCESS_DENIED",
                    )

        await security_log.info(
            "TENANT_CONTEXT_ESTABLISHED",
            request,
            tenant_id=tenant.id,
            tenant_slug=tenant.slug,
            authenticated=principal is not None,
        )
        return None
