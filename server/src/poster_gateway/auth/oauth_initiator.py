"""Start of the OAuth login round-trip"""

from typing import Optional
from urllib.parse import quote

from poster_gateway.auth.errors import ConfigurationError
from poster_gateway.auth.models import AuthAttempt
from poster_gateway.auth.provider_client import SupabaseAuthClient, new_code_verifier
from poster_gateway.auth.redirects import sanitize
from poster_gateway.auth.session_store import SessionStore
from poster_gateway.logging_config import get_logger
from poster_gateway.models.tenant import Tenant

logger = get_logger(__name__)


def callback_url_for(tenant: Tenant, safe_redirect: str) -> str:
    """Callback URL pinned to the tenant's configured origin, never the request Host."""
    return (
        f"{tenant.origin}{tenant.path_prefix}/auth/callback"
        f"?redirect={quote(safe_redirect, safe='')}"
    )


class OAuthInitiator:
    def __init__(self, auth_client: Optional[SupabaseAuthClient]):
        self.auth_client = auth_client

    def begin_login(
        self, tenant: Tenant, desired_redirect: Optional[str], store: SessionStore
    ) -> str:
        """
        Build the provider authorization URL for tenant.

        The PKCE verifier is buffered on store, so the caller must apply the
        store to the same response that carries the returned URL.

        Raises:
            ConfigurationError: if the provider client is not configured
        """
        if self.auth_client is None:
            raise ConfigurationError("Identity provider client is not configured")

        logger.info(f"[login:{tenant.id}] {AuthAttempt.INIT.value}")

        safe_redirect = sanitize(desired_redirect, tenant)
        callback_url = callback_url_for(tenant, safe_redirect)

        code_verifier = new_code_verifier()
        store.start_pkce(code_verifier)

        logger.info(
            f"[login:{tenant.id}] {AuthAttempt.AWAITING_PROVIDER.value} return path {safe_redirect}"
        )
        return self.auth_client.authorization_url(callback_url, code_verifier)
