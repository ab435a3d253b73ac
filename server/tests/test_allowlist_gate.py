"""Tests for the fail-closed allow-list gate"""

import asyncio

import pytest

from poster_gateway.auth.errors import AllowlistLookupError
from poster_gateway.services.allowlist_service import AllowlistGate, AllowlistStore
from tests.config import test_config


class RecordingStore:
    def __init__(self, allowed=(), error=None, delay=0.0):
        self.allowed = set(allowed)
        self.error = error
        self.delay = delay
        self.calls = []

    async def lookup(self, email, access_token=None):
        self.calls.append(email)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return email in self.allowed


@pytest.mark.asyncio
async def test_email_is_lower_cased_before_lookup():
    store = RecordingStore(allowed={"allowed@example.com"})
    decision = await AllowlistGate(store).check("  Allowed@Example.COM ")

    assert decision.allowed is True
    assert decision.email == "allowed@example.com"
    assert store.calls == ["allowed@example.com"]


@pytest.mark.asyncio
async def test_missing_email_is_denied_without_lookup():
    store = RecordingStore(allowed={"allowed@example.com"})
    decision = await AllowlistGate(store).check(None)

    assert decision.allowed is False
    assert decision.email is None
    assert store.calls == []


@pytest.mark.asyncio
async def test_unknown_email_is_denied():
    decision = await AllowlistGate(RecordingStore()).check("a@b.com")
    assert decision.allowed is False
    assert decision.email == "a@b.com"


@pytest.mark.asyncio
async def test_store_error_fails_closed():
    store = RecordingStore(
        allowed={"allowed@example.com"}, error=AllowlistLookupError("unreachable")
    )
    decision = await AllowlistGate(store).check("allowed@example.com")
    assert decision.allowed is False
    assert decision.email == "allowed@example.com"


@pytest.mark.asyncio
async def test_slow_store_times_out_and_fails_closed():
    store = RecordingStore(allowed={"allowed@example.com"}, delay=1.0)
    decision = await AllowlistGate(store, timeout=0.05).check("allowed@example.com")
    assert decision.allowed is False


@pytest.mark.asyncio
async def test_unconfigured_store_fails_closed():
    decision = await AllowlistGate(None).check("allowed@example.com")
    assert decision.allowed is False


@pytest.mark.asyncio
async def test_store_queries_table_with_user_token(allowlist_store, fake_supabase):
    assert await allowlist_store.lookup("allowed@example.com", "at-user") is True
    assert await allowlist_store.lookup("a@b.com") is False
    assert fake_supabase.allowlist_queries == ["allowed@example.com", "a@b.com"]


@pytest.mark.asyncio
async def test_store_caches_positive_hits_only(mock_transport, fake_supabase):
    store = AllowlistStore(
        test_config["supabase_url"],
        test_config["supabase_anon_key"],
        cache_ttl=60,
        transport=mock_transport,
    )
    await store.lookup("allowed@example.com")
    await store.lookup("allowed@example.com")
    await store.lookup("a@b.com")
    await store.lookup("a@b.com")

    assert fake_supabase.allowlist_queries == ["allowed@example.com", "a@b.com", "a@b.com"]


@pytest.mark.asyncio
async def test_store_raises_on_http_error(allowlist_store, fake_supabase):
    fake_supabase.allowlist_status = 500
    with pytest.raises(AllowlistLookupError):
        await allowlist_store.lookup("allowed@example.com")
