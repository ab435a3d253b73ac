"""Client for the identity provider (Supabase Auth) used by the login flow"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from authlib.common.security import generate_token
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from poster_gateway.auth.errors import ConfigurationError, ProviderExchangeError
from poster_gateway.logging_config import get_logger

logger = get_logger(__name__)


def new_code_verifier() -> str:
    """Random PKCE verifier (RFC 7636 allows 43-128 unreserved characters)."""
    return generate_token(64)


class SupabaseAuthClient:
    """Thin async wrapper around the Supabase Auth REST endpoints.

    Instances hold configuration only and are shared by all requests.
    """

    def __init__(
        self,
        supabase_url: str,
        anon_key: str,
        provider: str = "google",
        prompt: Optional[str] = "select_account",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not supabase_url or not anon_key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_ANON_KEY must be configured")

        self.base_url = supabase_url.rstrip("/")
        self.auth_url = f"{self.base_url}/auth/v1"
        self.anon_key = anon_key
        self.provider = provider
        self.prompt = prompt
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
        }

    def authorization_url(self, redirect_to: str, code_verifier: str) -> str:
        """
        Build the provider authorization URL for a PKCE login.

        Args:
            redirect_to: Absolute callback URL on the tenant's own origin
            code_verifier: Verifier whose S256 challenge is sent to the provider

        Returns:
            URL the browser should be redirected to
        """
        params = {
            "provider": self.provider,
            "redirect_to": redirect_to,
            "code_challenge": create_s256_code_challenge(code_verifier),
            "code_challenge_method": "s256",
        }
        if self.prompt:
            params["prompt"] = self.prompt
        return f"{self.auth_url}/authorize?{urlencode(params)}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        expect_body: bool = True,
    ) -> Any:
        url = f"{self.auth_url}{path}"
        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(access_token),
                )
                response.raise_for_status()
                if not expect_body:
                    return None
                return response.json()

        except httpx.TimeoutException as e:
            logger.warning(f"Identity provider timed out on {path}: {e}")
            raise ProviderExchangeError(f"Provider timeout on {path}")
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Identity provider returned {e.response.status_code} on {path}"
            )
            raise ProviderExchangeError(
                f"Provider rejected request with status {e.response.status_code}"
            )
        except httpx.RequestError as e:
            logger.error(f"Failed to reach identity provider on {path}: {e}")
            raise ProviderExchangeError(f"Provider unreachable: {e}")
        except ValueError as e:
            logger.error(f"Malformed response from identity provider on {path}: {e}")
            raise ProviderExchangeError("Provider returned malformed JSON")

    async def exchange_code(self, auth_code: str, code_verifier: str) -> Dict[str, Any]:
        """Exchange a PKCE authorization code for a token response."""
        return await self._request(
            "POST",
            "/token",
            params={"grant_type": "pkce"},
            json={"auth_code": auth_code, "code_verifier": code_verifier},
        )

    async def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """Trade a refresh token for a new token response."""
        return await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        """Fetch the user behind an access token, validating the token."""
        user = await self._request("GET", "/user", access_token=access_token)
        if not isinstance(user, dict):
            raise ProviderExchangeError("User response is not an object")
        return user

    async def sign_out(self, access_token: str) -> None:
        """Revoke the refresh tokens of the session behind access_token."""
        await self._request(
            "POST",
            "/logout",
            access_token=access_token,
            params={"scope": "local"},
            expect_body=False,
        )


def create_auth_client(settings: dict) -> SupabaseAuthClient:
    """
    Construct the provider client from configuration.

    Raises:
        ConfigurationError: if the provider URL or key is missing
    """
    return SupabaseAuthClient(
        supabase_url=settings.get("supabase_url"),
        anon_key=settings.get("supabase_anon_key"),
        provider=settings.get("oauth_provider") or "google",
        prompt=settings.get("oauth_prompt"),
        timeout=settings.get("provider_timeout_seconds", 10.0),
    )
