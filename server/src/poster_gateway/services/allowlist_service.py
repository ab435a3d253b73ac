"""Allow-list membership: the store that answers lookups and the gate that enforces them"""

import asyncio
from typing import Optional

import httpx
from aiocache import Cache

from poster_gateway.auth.errors import AllowlistLookupError, ConfigurationError
from poster_gateway.auth.models import AccessDecision
from poster_gateway.logging_config import get_logger

logger = get_logger(__name__)


class AllowlistStore:
    """Reads the ``allowed_users`` table through the Supabase REST API"""

    def __init__(
        self,
        supabase_url: str,
        api_key: str,
        table: str = "allowed_users",
        timeout: float = 5.0,
        cache_ttl: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not supabase_url or not api_key:
            raise ConfigurationError("Allow-list store requires SUPABASE_URL and SUPABASE_ANON_KEY")

        self.table_url = f"{supabase_url.rstrip('/')}/rest/v1/{table}"
        self.api_key = api_key
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self._transport = transport
        # Only positive answers are cached; a miss or an error is always re-queried
        self._hits = Cache(Cache.MEMORY)

    async def lookup(self, email: str, access_token: Optional[str] = None) -> bool:
        """
        Check whether email is present in the allow-list.

        Args:
            email: Lower-cased email address
            access_token: Signed-in user's token, so row-level security applies

        Returns:
            True if a matching row exists

        Raises:
            AllowlistLookupError: store unreachable or response malformed
        """
        if self.cache_ttl and await self._hits.get(email):
            return True

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(
                    self.table_url,
                    params={"select": "email", "email": f"eq.{email}", "limit": "1"},
                    headers={
                        "apikey": self.api_key,
                        "Authorization": f"Bearer {access_token or self.api_key}",
                        "Accept": "application/json",
                    },
                )
                response.raise_for_status()
                rows = response.json()

        except httpx.HTTPStatusError as e:
            raise AllowlistLookupError(
                f"Allow-list query failed with status {e.response.status_code}"
            )
        except httpx.RequestError as e:
            raise AllowlistLookupError(f"Allow-list store unreachable: {e}")
        except ValueError as e:
            raise AllowlistLookupError(f"Allow-list response is not JSON: {e}")

        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise AllowlistLookupError("Allow-list response is not a list of rows")

        found = any(str(row.get("email", "")).lower() == email for row in rows)
        if found and self.cache_ttl:
            await self._hits.set(email, True, ttl=self.cache_ttl)
        return found


class AllowlistGate:
    """Fail-closed allow-list check for an authenticated session"""

    def __init__(self, store: Optional[AllowlistStore], timeout: float = 5.0):
        self.store = store
        self.timeout = timeout

    async def check(
        self, email: Optional[str], access_token: Optional[str] = None
    ) -> AccessDecision:
        """
        Decide whether email may hold a session.

        Any failure to get a definite answer denies access.
        """
        email = (email or "").strip().lower()
        if not email:
            logger.info("Allow-list check without an email, denying")
            return AccessDecision(allowed=False, email=None)

        if self.store is None:
            logger.error("Allow-list store is not configured, denying %s", email)
            return AccessDecision(allowed=False, email=email)

        try:
            allowed = await asyncio.wait_for(
                self.store.lookup(email, access_token), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error("Allow-list lookup timed out for %s, denying", email)
            return AccessDecision(allowed=False, email=email)
        except AllowlistLookupError as e:
            logger.error("Allow-list lookup failed for %s, denying: %s", email, e)
            return AccessDecision(allowed=False, email=email)

        logger.info("Allow-list check for %s: %s", email, "allowed" if allowed else "denied")
        return AccessDecision(allowed=bool(allowed), email=email)


def create_allowlist_store(settings: dict) -> AllowlistStore:
    """
    Construct the allow-list store from configuration.

    Raises:
        ConfigurationError: if the store URL or key is missing
    """
    return AllowlistStore(
        supabase_url=settings.get("supabase_url"),
        api_key=settings.get("supabase_anon_key"),
        table=settings.get("allowlist_table") or "allowed_users",
        timeout=settings.get("allowlist_timeout_seconds", 5.0),
        cache_ttl=settings.get("allowlist_cache_ttl", 60),
    )
