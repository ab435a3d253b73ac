"""OAuth callback handling: exchange credentials, check the allow-list, redirect once"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from fastapi import Request, Response

from poster_gateway.auth.errors import ProviderExchangeError, SessionPersistError
from poster_gateway.auth.models import AuthAttempt, Session, denial_reason
from poster_gateway.auth.redirects import sanitize, strip_transient_params
from poster_gateway.auth.responses import AuthResponseBuilder, failure_page
from poster_gateway.auth.session_store import SessionStore
from poster_gateway.logging_config import get_logger
from poster_gateway.models.tenant import Tenant
from poster_gateway.services.allowlist_service import AllowlistGate

logger = get_logger(__name__)

DENIED_REASON_KEY = "denied_reason"


@dataclass(frozen=True)
class FragmentTokens:
    """Implicit-flow tokens read from the URL fragment and posted by the browser."""

    access_token: str
    refresh_token: str
    expires_in: Optional[int] = None


class CallbackExchanger:
    """
    Drives one callback request through
    CODE_RECEIVED -> SESSION_EXCHANGED -> ALLOWLIST_CHECKED -> GRANTED/DENIED -> REDIRECTED.

    Credential precedence: authorization code, then fragment tokens, then an
    already valid session.
    """

    def __init__(self, gate: AllowlistGate, timeout: float = 10.0):
        self.gate = gate
        self.timeout = timeout

    @staticmethod
    def _transition(tenant: Tenant, state: AuthAttempt, detail: str = "") -> AuthAttempt:
        logger.info(f"[callback:{tenant.id}] {state.value}{' ' + detail if detail else ''}")
        return state

    async def _exchange(
        self,
        store: SessionStore,
        code: Optional[str],
        fragment_tokens: Optional[FragmentTokens],
    ) -> Session:
        if code:
            return await store.exchange_code(code)
        if fragment_tokens is not None:
            return await store.set_session(
                fragment_tokens.access_token,
                fragment_tokens.refresh_token,
                fragment_tokens.expires_in,
            )
        session = await store.get_session()
        if session is None:
            raise ProviderExchangeError("No authorization code, tokens or existing session")
        return session

    def _fail(self, request: Request, tenant: Tenant, reason: str) -> Response:
        self._transition(tenant, AuthAttempt.FAILED, reason)
        return failure_page(request)

    async def handle_callback(
        self,
        request: Request,
        tenant: Tenant,
        store: SessionStore,
        fragment_tokens: Optional[FragmentTokens] = None,
    ) -> Response:
        """
        Handle the provider's redirect back to tenant.

        Returns exactly one response: a redirect carrying every cookie written
        while handling this request, or a generic failure page with none.
        """
        params = request.query_params
        redirect_status = 303 if request.method == "POST" else 302

        if params.get("error"):
            logger.warning(
                f"[callback:{tenant.id}] provider returned error "
                f"{params.get('error')}: {params.get('error_description', '')}"
            )
            return self._fail(request, tenant, "provider error")

        code = params.get("code")
        self._transition(
            tenant,
            AuthAttempt.CODE_RECEIVED,
            "code" if code else ("fragment tokens" if fragment_tokens else "existing session"),
        )

        try:
            session = await asyncio.wait_for(
                self._exchange(store, code, fragment_tokens), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            return self._fail(request, tenant, "exchange timed out")
        except ProviderExchangeError as e:
            return self._fail(request, tenant, f"exchange failed: {e}")
        except SessionPersistError as e:
            logger.error(f"[callback:{tenant.id}] could not persist session: {e}")
            return self._fail(request, tenant, "session persist failed")

        self._transition(tenant, AuthAttempt.SESSION_EXCHANGED, session.user_email or "<no email>")

        decision = await self.gate.check(session.user_email, session.access_token)
        self._transition(tenant, AuthAttempt.ALLOWLIST_CHECKED, decision.email or "<no email>")

        builder = AuthResponseBuilder(store)
        if decision.allowed:
            self._transition(tenant, AuthAttempt.GRANTED, decision.email)
            target = strip_transient_params(sanitize(params.get("redirect"), tenant))
            builder.redirect(tenant.origin + target, status_code=redirect_status)
        else:
            self._transition(tenant, AuthAttempt.DENIED, decision.email or "<no email>")
            await store.sign_out()
            request.session[DENIED_REASON_KEY] = denial_reason(decision.email)
            builder.redirect(tenant.origin + tenant.denial_path, status_code=redirect_status)

        response = builder.build()
        self._transition(tenant, AuthAttempt.REDIRECTED, response.headers["location"])
        return response
