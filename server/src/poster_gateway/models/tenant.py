"""Tenant descriptors and the registry that resolves them"""

from typing import Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


def path_is_under(path: str, prefix: str) -> bool:
    """True when path equals prefix or continues it with a new segment."""
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def normalize_host(host: str) -> str:
    """Lower-case a Host header value and strip any port."""
    host = (host or "").strip().lower()
    if host.startswith("["):
        # IPv6 literal, keep the brackets but drop the port
        return host.split("]", 1)[0] + "]"
    return host.split(":", 1)[0]


class Tenant(BaseModel):
    """One logical application served by this deployment."""

    model_config = ConfigDict(frozen=True)

    id: Literal["studio", "poster"]
    host_patterns: tuple[str, ...]
    path_prefix: str
    origin: str
    cookie_namespace: str
    allowed_redirect_prefix: Optional[str] = None
    denial_path: str = "/access-denied"

    @field_validator("path_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        value = value.rstrip("/")
        if not value.startswith("/"):
            raise ValueError("path_prefix must start with '/'")
        return value

    @field_validator("origin")
    @classmethod
    def _check_origin(cls, value: str) -> str:
        value = value.rstrip("/")
        if not value.startswith(("https://", "http://")):
            raise ValueError("origin must be an absolute http(s) URL")
        if "/" in value.split("://", 1)[1]:
            raise ValueError("origin must not contain a path")
        return value

    @field_validator("host_patterns")
    @classmethod
    def _lower_patterns(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(p.strip().lower() for p in value if p.strip())

    @model_validator(mode="before")
    @classmethod
    def _default_redirect_prefix(cls, data):
        if isinstance(data, dict) and not data.get("allowed_redirect_prefix"):
            data = {**data, "allowed_redirect_prefix": data.get("path_prefix")}
        return data

    @model_validator(mode="after")
    def _check_redirect_prefix(self) -> "Tenant":
        if not path_is_under(self.allowed_redirect_prefix, self.path_prefix):
            raise ValueError("allowed_redirect_prefix must lie within path_prefix")
        return self

    @property
    def default_path(self) -> str:
        return self.path_prefix

    def matches_host(self, hostname: str) -> bool:
        """
        Match a hostname against this tenant's patterns.

        Pattern forms:
            "poster.example.com"  exact host
            "poster."             any host whose first label is "poster"
            "poster-*"            any host whose first label starts with "poster-"
        """
        host = normalize_host(hostname)
        if not host:
            return False
        first_label = host.split(".", 1)[0]
        for pattern in self.host_patterns:
            if pattern.endswith("*"):
                stem = pattern[:-1]
                if first_label.startswith(stem) and first_label != stem:
                    return True
            elif pattern.endswith("."):
                if host.startswith(pattern) and len(host) > len(pattern):
                    return True
            elif host == pattern:
                return True
        return False


class TenantRegistry:
    """Ordered, immutable set of tenants resolved once per request."""

    def __init__(self, tenants: list[Tenant]):
        ids = [t.id for t in tenants]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate tenant ids in registry")
        namespaces = [t.cookie_namespace for t in tenants]
        if len(set(namespaces)) != len(namespaces):
            raise ValueError("Tenants must not share a cookie namespace")
        self._tenants = tuple(tenants)

    def __iter__(self) -> Iterator[Tenant]:
        return iter(self._tenants)

    def __len__(self) -> int:
        return len(self._tenants)

    def get(self, tenant_id: str) -> Tenant:
        for tenant in self._tenants:
            if tenant.id == tenant_id:
                return tenant
        raise KeyError(tenant_id)

    def match_host(self, hostname: str) -> Optional[Tenant]:
        for tenant in self._tenants:
            if tenant.matches_host(hostname):
                return tenant
        return None

    def owner_of_path(self, path: str) -> Optional[Tenant]:
        for tenant in self._tenants:
            if path_is_under(path, tenant.path_prefix):
                return tenant
        return None


def _patterns(raw: str | None) -> tuple[str, ...]:
    return tuple(p for p in (raw or "").split(",") if p.strip())


def load_tenants(settings: dict) -> TenantRegistry:
    """Build the tenant registry from the configuration dictionary."""
    return TenantRegistry(
        [
            Tenant(
                id="studio",
                host_patterns=_patterns(settings.get("studio_host_patterns")),
                path_prefix=settings.get("studio_path_prefix") or "/studio",
                origin=settings["studio_origin"],
                cookie_namespace="sb-studio",
            ),
            Tenant(
                id="poster",
                host_patterns=_patterns(settings.get("poster_host_patterns")),
                path_prefix=settings.get("poster_path_prefix") or "/edit",
                origin=settings["poster_origin"],
                cookie_namespace="sb-poster",
            ),
        ]
    )
