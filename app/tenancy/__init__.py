"""Tenant isolation: resolution, validation, scoped data access, audit."""

from app.tenancy.principal import MerchantPrincipal, Principal, TenantUserPrincipal
from app.tenancy.resolver import TenantResolver, TenantSignals
from app.tenancy.scoped import TenantDB, tenant_db
from app.tenancy.security_log import SecurityEventLog, SecurityLevel
from app.tenancy.validator import TenantValidator

__all__ = [
    "MerchantPrincipal",
    "Principal",
    "SecurityEventLog",
    "SecurityLevel",
    "TenantDB",
    "TenantResolver",
    "TenantSignals",
    "TenantUserPrincipal",
    "TenantValidator",
    "tenant_db",
]
