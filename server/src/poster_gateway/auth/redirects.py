"""Post-login redirect sanitization shared by every login entry point"""

from typing import Optional
from urllib.parse import unquote, unquote_plus, urljoin, urlsplit

from poster_gateway.auth.errors import RedirectValidationError
from poster_gateway.logging_config import get_logger
from poster_gateway.models.tenant import Tenant, path_is_under

logger = get_logger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}
TRANSIENT_PARAMS = frozenset({"code", "state"})


def _origin_key(url: str) -> tuple[str, str, int]:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    try:
        port = parts.port
    except ValueError as e:
        raise RedirectValidationError(f"Invalid port: {e}")
    return scheme, (parts.hostname or ""), port or _DEFAULT_PORTS.get(scheme, 0)


def _resolve(raw_target: str, tenant: Tenant) -> str:
    """Resolve raw_target against the tenant's own origin and validate it."""
    if "\\" in raw_target or any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in raw_target):
        raise RedirectValidationError("Target contains forbidden characters")

    # Resolving against the tenant origin (never the request origin) means an
    # absolute URL keeps its own origin and fails the comparison below.
    resolved = urljoin(tenant.origin + "/", raw_target.strip())
    parts = urlsplit(resolved)

    if _origin_key(resolved) != _origin_key(tenant.origin):
        raise RedirectValidationError("Target leaves the tenant origin")

    path = parts.path or "/"
    segments = unquote(path).split("/")
    if "." in segments or ".." in segments:
        raise RedirectValidationError("Target contains dot segments")

    if not path_is_under(path, tenant.allowed_redirect_prefix):
        raise RedirectValidationError("Target is outside the tenant prefix")

    target = path
    if parts.query:
        target += "?" + parts.query
    if parts.fragment:
        target += "#" + parts.fragment
    return target


def sanitize(raw_target: Optional[str], tenant: Tenant) -> str:
    """
    Turn a client-supplied "return to" value into a safe in-tenant path.

    Never raises: anything empty, malformed, absolute to another origin, or
    outside the tenant's prefix collapses to the tenant's default path.

    Args:
        raw_target: Value of the ``redirect`` query parameter, possibly None
        tenant: Tenant whose origin and prefix bound the result

    Returns:
        ``path + search + hash`` under ``tenant.path_prefix``
    """
    if not raw_target or not raw_target.strip():
        return tenant.default_path

    try:
        return _resolve(raw_target, tenant)
    except (RedirectValidationError, ValueError) as e:
        logger.info(
            "Rejected redirect target for tenant %s (%s), using %s",
            tenant.id,
            e,
            tenant.default_path,
        )
        return tenant.default_path


def strip_transient_params(target: str) -> str:
    """
    Drop OAuth ``code``/``state`` parameters from a sanitized target.

    Every other query segment is kept byte-for-byte, in order.
    """
    body, has_fragment, fragment = target.partition("#")
    path, has_query, query = body.partition("?")
    if not has_query:
        return target
    segments = query.split("&")
    kept = [
        segment
        for segment in segments
        if unquote_plus(segment.partition("=")[0]) not in TRANSIENT_PARAMS
    ]
    if len(kept) == len(segments):
        return target
    result = path
    if kept:
        result += "?" + "&".join(kept)
    if has_fragment:
        result += "#" + fragment
    return result
