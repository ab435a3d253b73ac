"""Shared test configuration and fixtures for Poster Gateway tests"""

import json
import logging
import time
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi.testclient import TestClient

from poster_gateway.auth.provider_client import SupabaseAuthClient
from poster_gateway.main import create_app
from poster_gateway.models.tenant import load_tenants
from poster_gateway.services.allowlist_service import AllowlistStore
from tests.config import test_config

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class FakeSupabase:
    """In-process stand-in for the Supabase Auth and REST endpoints.

    Served to the real clients through httpx.MockTransport.
    """

    def __init__(self):
        self.codes: dict[str, str] = {}
        self.consumed_codes: set[str] = set()
        self.access_tokens: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.revoked: list[str] = []
        self.allowed_emails: set[str] = set()
        self.allowlist_status = 200
        self.allowlist_body = None
        self.allowlist_queries: list[str] = []
        self.seen_verifiers: list[str] = []
        self.token_padding = ""

    def _issue(self, email: str, seed: str) -> dict:
        access_token = f"at-{seed}{self.token_padding}"
        refresh_token = f"rt-{seed}"
        self.access_tokens[access_token] = email
        self.refresh_tokens[refresh_token] = email
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": 3600,
            "expires_at": int(time.time()) + 3600,
            "user": {"email": email},
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = parse_qs(urlsplit(str(request.url)).query)

        if path == "/auth/v1/token":
            body = json.loads(request.content or b"{}")
            grant_type = params.get("grant_type", [""])[0]
            if grant_type == "pkce":
                code = body.get("auth_code")
                self.seen_verifiers.append(body.get("code_verifier"))
                if code not in self.codes or code in self.consumed_codes:
                    return httpx.Response(400, json={"error": "invalid_grant"})
                self.consumed_codes.add(code)
                return httpx.Response(200, json=self._issue(self.codes[code], code))
            if grant_type == "refresh_token":
                token = body.get("refresh_token")
                email = self.refresh_tokens.pop(token, None)
                if email is None:
                    return httpx.Response(400, json={"error": "invalid_grant"})
                return httpx.Response(200, json=self._issue(email, f"{token}-refreshed"))
            return httpx.Response(400, json={"error": "unsupported_grant_type"})

        if path == "/auth/v1/user":
            token = request.headers.get("Authorization", "")[len("Bearer "):]
            email = self.access_tokens.get(token)
            if email is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json={"id": "user-1", "email": email})

        if path == "/auth/v1/logout":
            token = request.headers.get("Authorization", "")[len("Bearer "):]
            self.revoked.append(token)
            self.access_tokens.pop(token, None)
            return httpx.Response(204)

        if path == "/rest/v1/allowed_users":
            email = params.get("email", [""])[0].removeprefix("eq.")
            self.allowlist_queries.append(email)
            if self.allowlist_status != 200:
                return httpx.Response(self.allowlist_status, json={"message": "boom"})
            if self.allowlist_body is not None:
                return httpx.Response(200, json=self.allowlist_body)
            rows = [{"email": email}] if email in self.allowed_emails else []
            return httpx.Response(200, json=rows)

        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def fake_supabase():
    supabase = FakeSupabase()
    supabase.codes["good-code"] = "allowed@example.com"
    supabase.codes["stranger-code"] = "a@b.com"
    supabase.allowed_emails.add("allowed@example.com")
    return supabase


@pytest.fixture
def mock_transport(fake_supabase):
    return httpx.MockTransport(fake_supabase.handle)


@pytest.fixture
def auth_client(mock_transport):
    return SupabaseAuthClient(
        test_config["supabase_url"],
        test_config["supabase_anon_key"],
        transport=mock_transport,
    )


@pytest.fixture
def allowlist_store(mock_transport):
    return AllowlistStore(
        test_config["supabase_url"],
        test_config["supabase_anon_key"],
        cache_ttl=0,
        transport=mock_transport,
    )


@pytest.fixture
def tenants():
    return load_tenants(test_config)


@pytest.fixture
def poster(tenants):
    return tenants.get("poster")


@pytest.fixture
def studio(tenants):
    return tenants.get("studio")


@pytest.fixture
def app(auth_client, allowlist_store):
    return create_app(
        dict(test_config), auth_client=auth_client, allowlist_store=allowlist_store
    )


@pytest.fixture
def poster_client(app):
    """Browser talking to the Poster hostname"""
    return TestClient(app, base_url="https://poster.example.com")


@pytest.fixture
def studio_client(app):
    """Browser talking to the Studio hostname"""
    return TestClient(app, base_url="https://studio.example.com")
