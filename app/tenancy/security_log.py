"""Tenant security event log.

Every event goes to the ``app.security`` logger as one JSON line. Events at
a persisted level (CRITICAL and ERROR by default) are also written to the
``audit_logs`` table through a dedicated session, so an audit row survives
even when the request's own transaction is rolled back.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)
event_logger = logging.getLogger("app.security")

RESOURCE_TYPE = "tenant_security"


class SecurityLevel(StrEnum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_STDLIB_LEVELS: dict[SecurityLevel, int] = {
    SecurityLevel.INFO: logging.INFO,
    SecurityLevel.WARNING: logging.WARNING,
    SecurityLevel.ERROR: logging.ERROR,
    SecurityLevel.CRITICAL: logging.CRITICAL,
}


def request_info(request: Request | None) -> dict[str, Any]:
    """Safe subset of a request for audit records. Never headers or bodies."""
    if request is None:
        return {}

    principal = getattr(request.state, "principal", None)
    merchant_id = getattr(request.state, "merchant_id", None)
    if merchant_id is None and principal is not None and principal.kind == "merchant":
        merchant_id = principal.id

    return {
        "method": request.method,
        "path": request.url.path,
        "user_agent": request.headers.get("user-agent"),
        "ip": request.client.host if request.client else None,
        "user_id": principal.id if principal is not None else None,
        "merchant_id": merchant_id,
    }


class SecurityEventLog:
    """Append-only sink for tenant security events."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] | None,
        persist_levels: Iterable[str] = (SecurityLevel.CRITICAL, SecurityLevel.ERROR),
    ) -> None:
        self._session_factory = session_factory
        self._persist_levels = {SecurityLevel(level) for level in persist_levels}

    async def log(
        self,
        level: SecurityLevel,
        event: str,
        request: Request | None = None,
        **details: Any,
    ) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": str(level),
            "event": event,
            **details,
        }
        if request is not None:
            entry["request"] = request_info(request)

        event_logger.log(
            _STDLIB_LEVELS[level],
            "[TENANT_SECURITY_%s] %s",
            level,
            json.dumps(entry, default=str),
            extra={"security_event": event, "security_level": str(level)},
        )

        if level in self._persist_levels:
            await self._persist(entry)
        return entry

    async def info(self, event: str, request: Request | None = None, **details: Any) -> dict[str, Any]:
        return await self.log(SecurityLevel.INFO, event, request, **details)

    async def warn(self, event: str, request: Request | None = None, **details: Any) -> dict[str, Any]:
        return await self.log(SecurityLevel.WARNING, event, request, **details)

    async def error(self, event: str, request: Request | None = None, **details: Any) -> dict[str, Any]:
        return await self.log(SecurityLevel.ERROR, event, request, **details)

    async def critical(self, event: str, request: Request | None = None, **details: Any) -> dict[str, Any]:
        return await self.log(SecurityLevel.CRITICAL, event, request, **details)

    async def _persist(self, entry: dict[str, Any]) -> None:
        """Write an audit row. Never raises."""
        if self._session_factory is None:
            return

        req = entry.get("request", {})
        row = AuditLog(
            action=entry["event"],
            resource_type=RESOURCE_TYPE,
            details=json.loads(json.dumps(entry, default=str)),
            user_id=entry.get("user_id") or req.get("user_id"),
            merchant_id=entry.get("merchant_id") or req.get("merchant_id"),
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except Exception:
            logger.exception("Failed to store security event %s", entry["event"])
