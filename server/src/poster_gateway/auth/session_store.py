"""Cookie-backed session persistence scoped to one tenant and one request"""

import time
from dataclasses import dataclass
from typing import Mapping, Optional

from fastapi import Response
from itsdangerous import BadSignature, URLSafeTimedSerializer
from pydantic import ValidationError

from poster_gateway.auth.errors import (
    ConfigurationError,
    ProviderExchangeError,
    SessionPersistError,
)
from poster_gateway.auth.models import Session
from poster_gateway.auth.provider_client import SupabaseAuthClient
from poster_gateway.logging_config import get_logger
from poster_gateway.models.tenant import Tenant

logger = get_logger(__name__)

# Browsers drop cookies whose name=value exceeds this size
MAX_COOKIE_BYTES = 4096

SESSION_COOKIE = "auth-token"
VERIFIER_COOKIE = "code-verifier"


@dataclass(frozen=True)
class CookiePolicy:
    """Attributes shared by every cookie the gateway writes."""

    secret_key: str
    secure: bool = True
    max_age: int = 604800
    verifier_max_age: int = 600

    def serializer(self, namespace: str) -> URLSafeTimedSerializer:
        # The namespace is the salt, so a cookie copied into another tenant's
        # namespace fails signature verification.
        return URLSafeTimedSerializer(self.secret_key, salt=f"{namespace}-{SESSION_COOKIE}")


class SessionStore:
    """
    Read cookies from the current request and buffer writes for its response.

    Names passed to get/set/remove are always expanded inside the tenant's
    cookie namespace (``sb-poster-auth-token``), so one tenant's store can
    neither read nor write another tenant's cookies. Buffered writes reach the
    browser only through ``apply`` on the single response of this request.
    """

    def __init__(
        self,
        cookies: Mapping[str, str],
        tenant: Tenant,
        auth_client: Optional[SupabaseAuthClient],
        policy: CookiePolicy,
    ):
        self.tenant = tenant
        self._cookies = cookies
        self._auth = auth_client
        self._policy = policy
        self._serializer = policy.serializer(tenant.cookie_namespace)
        self._pending: dict[str, Optional[tuple[str, int]]] = {}

    # ------------------------------------------------------------------
    # Raw cookie access
    # ------------------------------------------------------------------

    def cookie_name(self, name: str) -> str:
        return f"{self.tenant.cookie_namespace}-{name}"

    def get(self, name: str) -> Optional[str]:
        full_name = self.cookie_name(name)
        if full_name in self._pending:
            entry = self._pending[full_name]
            return entry[0] if entry else None
        return self._cookies.get(full_name)

    def set(self, name: str, value: str, max_age: Optional[int] = None) -> None:
        full_name = self.cookie_name(name)
        if len(f"{full_name}={value}".encode("utf-8")) > MAX_COOKIE_BYTES:
            raise SessionPersistError(f"Cookie {full_name} exceeds {MAX_COOKIE_BYTES} bytes")
        self._pending[full_name] = (value, max_age or self._policy.max_age)

    def remove(self, name: str) -> None:
        self._pending[self.cookie_name(name)] = None

    @property
    def pending_cookie_names(self) -> list[str]:
        return list(self._pending)

    def apply(self, response: Response) -> Response:
        """Attach every buffered cookie write to response."""
        for full_name, entry in self._pending.items():
            if entry is None:
                response.delete_cookie(
                    full_name,
                    path="/",
                    secure=self._policy.secure,
                    httponly=True,
                    samesite="lax",
                )
            else:
                value, max_age = entry
                response.set_cookie(
                    full_name,
                    value,
                    max_age=max_age,
                    path="/",
                    secure=self._policy.secure,
                    httponly=True,
                    samesite="lax",
                )
        return response

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    def _auth_client(self) -> SupabaseAuthClient:
        if self._auth is None:
            raise ConfigurationError("Identity provider client is not configured")
        return self._auth

    def _persist(self, session: Session) -> None:
        self.set(SESSION_COOKIE, self._serializer.dumps(session.model_dump()))

    def _load(self) -> Optional[Session]:
        raw = self.get(SESSION_COOKIE)
        if not raw:
            return None
        try:
            data = self._serializer.loads(raw, max_age=self._policy.max_age)
            return Session.model_validate(data)
        except (BadSignature, ValidationError) as e:
            logger.warning(
                f"Discarding unreadable session cookie for tenant {self.tenant.id}: "
                f"{type(e).__name__}"
            )
            self.remove(SESSION_COOKIE)
            return None

    def start_pkce(self, code_verifier: str) -> None:
        self.set(VERIFIER_COOKIE, code_verifier, max_age=self._policy.verifier_max_age)

    async def exchange_code(self, code: str) -> Session:
        """
        Exchange an authorization code and persist the resulting session.

        Raises:
            ProviderExchangeError: missing verifier or provider rejection
            SessionPersistError: session does not fit in a cookie
        """
        verifier = self.get(VERIFIER_COOKIE)
        if not verifier:
            raise ProviderExchangeError("Missing PKCE code verifier")

        payload = await self._auth_client().exchange_code(code, verifier)
        session = Session.from_token_response(payload)

        self.remove(VERIFIER_COOKIE)
        self._persist(session)
        return session

    async def set_session(
        self,
        access_token: str,
        refresh_token: str,
        expires_in: Optional[int] = None,
    ) -> Session:
        """Adopt implicit-flow tokens after the provider confirms them."""
        user = await self._auth_client().get_user(access_token)
        email = user.get("email")
        session = Session(
            access_token=access_token,
            refresh_token=refresh_token,
            user_email=email.lower() if email else None,
            expires_at=int(time.time()) + int(expires_in or 3600),
        )
        self._persist(session)
        return session

    async def get_session(self) -> Optional[Session]:
        """
        Return the current session, refreshing it when the access token expired.

        An expired session that cannot be refreshed is removed.
        """
        session = self._load()
        if session is None or not session.is_expired():
            return session

        try:
            payload = await self._auth_client().refresh(session.refresh_token)
            refreshed = Session.from_token_response(payload)
        except ProviderExchangeError as e:
            logger.info(f"Session refresh failed for tenant {self.tenant.id}: {e}")
            self.remove(SESSION_COOKIE)
            return None

        if refreshed.user_email is None:
            refreshed = refreshed.model_copy(update={"user_email": session.user_email})
        self._persist(refreshed)
        return refreshed

    async def sign_out(self) -> None:
        """Revoke the session at the provider (best effort) and clear its cookies."""
        session = self._load()
        if session is not None and self._auth is not None:
            try:
                await self._auth.sign_out(session.access_token)
            except ProviderExchangeError as e:
                logger.warning(
                    f"Provider sign-out failed for tenant {self.tenant.id}, "
                    f"clearing cookies anyway: {e}"
                )
        self.remove(SESSION_COOKIE)
        self.remove(VERIFIER_COOKIE)
