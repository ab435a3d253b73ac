"""Authentication models for the gateway"""

import enum
import time
from typing import Any, Optional

from pydantic import BaseModel

from poster_gateway.auth.errors import ProviderExchangeError


class AuthAttempt(str, enum.Enum):
    """States of one callback request, logged as the exchange progresses."""

    INIT = "init"
    AWAITING_PROVIDER = "awaiting_provider"
    CODE_RECEIVED = "code_received"
    SESSION_EXCHANGED = "session_exchanged"
    ALLOWLIST_CHECKED = "allowlist_checked"
    GRANTED = "granted"
    DENIED = "denied"
    REDIRECTED = "redirected"
    FAILED = "failed"


class Session(BaseModel):
    access_token: str
    refresh_token: str
    user_email: Optional[str] = None
    expires_at: int

    def is_expired(self, leeway: int = 30) -> bool:
        return time.time() + leeway >= self.expires_at

    @classmethod
    def from_token_response(cls, payload: Any) -> "Session":
        """
        Build a session from a provider token response.

        Args:
            payload: JSON body returned by the token endpoint

        Returns:
            Session with the user's email lower-cased

        Raises:
            ProviderExchangeError: if required fields are missing
        """
        if not isinstance(payload, dict):
            raise ProviderExchangeError("Token response is not an object")

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        if not access_token or not refresh_token:
            raise ProviderExchangeError("Token response is missing tokens")

        expires_at = payload.get("expires_at")
        if not expires_at:
            expires_in = payload.get("expires_in") or 3600
            expires_at = int(time.time()) + int(expires_in)

        user = payload.get("user") or {}
        email = user.get("email") if isinstance(user, dict) else None

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            user_email=email.lower() if email else None,
            expires_at=int(expires_at),
        )


class AccessDecision(BaseModel):
    allowed: bool
    email: Optional[str] = None


def denial_reason(email: Optional[str]) -> str:
    """Human-readable, non-secret reason shown on the access-denied page."""
    if email:
        return f"不在允許名單：{email}"
    return "無法取得 email"
