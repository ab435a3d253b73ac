"""Static configuration models for Poster Gateway"""

from poster_gateway.models.tenant import Tenant, TenantRegistry, load_tenants

__all__ = [
    "Tenant",
    "TenantRegistry",
    "load_tenants",
]
