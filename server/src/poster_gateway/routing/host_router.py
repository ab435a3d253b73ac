"""Host-based tenant routing applied before the application sees a request"""

import re
from typing import Optional

from starlette.datastructures import Headers
from starlette.responses import RedirectResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from poster_gateway.logging_config import get_logger
from poster_gateway.models.tenant import Tenant, TenantRegistry, path_is_under

logger = get_logger(__name__)

EXCLUDED_PREFIXES = (
    "/static/",
    "/favicon",
    "/api/",
    "/auth/",
    "/health",
    "/access-denied",
)
STATIC_ASSET = re.compile(
    r"\.(png|jpe?g|svg|gif|ico|webp|css|js|woff2?|ttf|ttc|map)$", re.IGNORECASE
)


def is_excluded(path: str) -> bool:
    """Paths that are delivered as-is on every host."""
    return path.startswith(EXCLUDED_PREFIXES) or bool(STATIC_ASSET.search(path))


class HostRouter:
    """Maps (hostname, path) onto a tenant and its path namespace."""

    def __init__(self, registry: TenantRegistry):
        self.registry = registry

    def route(self, hostname: str, path: str) -> tuple[Optional[Tenant], str]:
        """
        Resolve the tenant for hostname and rewrite path into its namespace.

        Unknown hosts (preview deployments, localhost) are never assigned a
        default tenant; their path is returned unchanged.
        """
        tenant = self.registry.match_host(hostname)
        if tenant is None or is_excluded(path):
            return tenant, path

        if path_is_under(path, tenant.path_prefix):
            return tenant, path

        return tenant, tenant.path_prefix + ("" if path == "/" else path)

    def foreign_owner(self, tenant: Optional[Tenant], path: str) -> Optional[Tenant]:
        """Another tenant whose prefix owns path, when reached on tenant's host."""
        if tenant is None:
            return None
        owner = self.registry.owner_of_path(path)
        if owner is None or owner.id == tenant.id:
            return None
        return owner


class HostRouterMiddleware:
    """
    Rewrite the request path by tenant host.

    A request that lands on one tenant's host with another tenant's prefix
    (``poster.example.com/studio``) is sent to the owning tenant's origin.
    No cookies are read or written here.
    """

    def __init__(self, app: ASGIApp, router: HostRouter):
        self.app = app
        self.router = router

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        host = Headers(scope=scope).get("host", "")
        path = scope.get("path", "/")
        tenant, rewritten = self.router.route(host, path)

        owner = self.router.foreign_owner(tenant, path)
        if owner is not None and scope["type"] == "http":
            query = scope.get("query_string", b"").decode("latin-1")
            location = owner.origin + path + (f"?{query}" if query else "")
            logger.info(f"Cross-tenant path {path} on {tenant.id} host, sending to {owner.id}")
            response = RedirectResponse(location, status_code=302)
            await response(scope, receive, send)
            return

        scope = dict(scope)
        scope.setdefault("state", {})
        scope["state"] = {**scope["state"], "tenant": tenant}
        if rewritten != path:
            raw_path = scope.get("raw_path") or path.encode("utf-8")
            scope["path"] = rewritten
            scope["raw_path"] = tenant.path_prefix.encode("utf-8") + (
                b"" if path == "/" else raw_path
            )

        await self.app(scope, receive, send)
