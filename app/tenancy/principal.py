"""Authenticated principals carried on ``request.state.principal``.

The auth layer decides the principal kind when it issues the token, so the
isolation layer dispatches on type instead of probing for fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class PrincipalKind(StrEnum):
    MERCHANT = "merchant"
    TENANT_USER = "tenant_user"


@dataclass(frozen=True, slots=True)
class MerchantPrincipal:
    id: str
    business_name: str
    tenant_id: str | None = None
    email: str = ""

    kind = PrincipalKind.MERCHANT


@dataclass(frozen=True, slots=True)
class TenantUserPrincipal:
    id: str
    tenant_id: str | None = None
    email: str = ""

    kind = PrincipalKind.TENANT_USER


Principal = MerchantPrincipal | TenantUserPrincipal


def principal_from_claims(payload: dict) -> Principal | None:
    """Build a principal from verified JWT claims; None for unknown shapes."""
    subject = payload.get("sub")
    if not subject:
        return None

    kind = payload.get("kind")
    if kind == PrincipalKind.MERCHANT:
        return MerchantPrincipal(
            id=str(subject),
            business_name=str(payload.get("business_name", "")),
            tenant_id=payload.get("tid"),
            email=str(payload.get("email", "")),
        )
    if kind == PrincipalKind.TENANT_USER:
        return TenantUserPrincipal(
            id=str(subject),
            tenant_id=payload.get("tid"),
            email=str(payload.get("email", "")),
        )
    return None
