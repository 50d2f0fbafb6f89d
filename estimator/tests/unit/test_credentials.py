"""Unit tests for the credential manager."""

import asyncio
import threading
import time
from urllib.parse import parse_qs

import httpx
import pytest

from config.errors import ErrorCode, RemoteError
from services.credentials import CredentialManager, decode_expiry
from services.local_store import KEY_REFRESH_TOKEN
from services.scopestack_client import ScopeStackClient
from tests.fixtures.mock_scopestack import (
    ACCOUNT_SLUG,
    API_URL,
    TOKEN_PATH,
    TOKEN_URL,
    make_jwt,
    resource,
    scoped,
    token_response,
)


def _manager(http_client, local_store, access_token, refresh_token="refresh-1"):
    return CredentialManager(
        access_token=access_token,
        refresh_token=refresh_token,
        store=local_store,
        token_url=TOKEN_URL,
        client_id="client-id",
        client_secret="client-secret",
        http_client=http_client,
        expiry_skew_seconds=0,
    )


class TestDecodeExpiry:
    """Tests for reading the exp claim."""

    def test_reads_exp_without_verifying_signature(self):
        token = make_jwt(600)
        exp = decode_expiry(token)
        assert exp is not None

    def test_opaque_token_has_no_expiry(self):
        assert decode_expiry("not-a-jwt") is None
        assert decode_expiry(None) is None


class TestCredentialManager:
    """Tests for CredentialManager."""

    def test_is_expired(self, http_client, local_store):
        manager = _manager(http_client, local_store, make_jwt(-60))
        assert manager.is_expired() is True
        assert manager.is_expired(make_jwt(600)) is False

    def test_opaque_token_is_not_expired(self, http_client, local_store):
        manager = _manager(http_client, local_store, "opaque-token")
        assert manager.is_expired() is False

    def test_stored_refresh_token_wins_over_bootstrap(self, http_client, local_store):
        local_store.set(KEY_REFRESH_TOKEN, "stored-refresh")
        manager = CredentialManager(
            access_token="a",
            store=local_store,
            token_url=TOKEN_URL,
            http_client=http_client,
        )
        assert manager.refresh_token == "stored-refresh"

    def test_defaults_from_environment(self, http_client, local_store):
        manager = CredentialManager(store=local_store, http_client=http_client)
        assert manager.access_token == "env-access-token"
        assert manager.refresh_token == "env-refresh-token"
        assert manager.client_secret == "env-client-secret"

    @pytest.mark.asyncio
    async def test_valid_token_is_returned_without_refresh(self, http_client, local_store, fake_scopestack):
        token = make_jwt(600)
        manager = _manager(http_client, local_store, token)

        assert await manager.get_access_token() == token
        assert fake_scopestack.calls("POST", TOKEN_PATH) == []

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_and_persisted(self, http_client, local_store, fake_scopestack):
        new_token = make_jwt(3600)
        fake_scopestack.on("POST", TOKEN_PATH, token_response(new_token, "refresh-2"))
        manager = _manager(http_client, local_store, make_jwt(-60))

        token = await manager.get_access_token()

        assert token == new_token
        assert manager.refresh_token == "refresh-2"
        assert manager.refresh_count == 1
        assert local_store.get(KEY_REFRESH_TOKEN) == "refresh-2"

        body = fake_scopestack.calls("POST", TOKEN_PATH)[0].content.decode()
        assert "grant_type=refresh_token" in body
        assert "refresh_token=refresh-1" in body

    @pytest.mark.asyncio
    async def test_refresh_keeps_old_refresh_token_when_not_rotated(self, http_client, local_store, fake_scopestack):
        fake_scopestack.on("POST", TOKEN_PATH, {"access_token": make_jwt(3600)})
        manager = _manager(http_client, local_store, make_jwt(-60))

        await manager.get_access_token()

        assert manager.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, http_client, local_store, fake_scopestack):
        new_token = make_jwt(3600)
        fake_scopestack.on("POST", TOKEN_PATH, token_response(new_token))
        manager = _manager(http_client, local_store, make_jwt(-60))

        tokens = await asyncio.gather(*(manager.get_access_token() for _ in range(5)))

        assert set(tokens) == {new_token}
        assert len(fake_scopestack.calls("POST", TOKEN_PATH)) == 1
        assert manager.refresh_count == 1

    @pytest.mark.asyncio
    async def test_missing_refresh_token_raises(self, http_client, local_store, fake_scopestack):
        manager = _manager(http_client, local_store, make_jwt(-60), refresh_token=None)
        manager._pair = (manager.access_token, None)

        with pytest.raises(RemoteError) as exc_info:
            await manager.get_access_token()

        assert exc_info.value.code == ErrorCode.AUTH_REFRESH_FAILED

    @pytest.mark.asyncio
    async def test_rejected_refresh_raises(self, http_client, local_store, fake_scopestack):
        fake_scopestack.on("POST", TOKEN_PATH, (400, {"error": "invalid_grant"}))
        manager = _manager(http_client, local_store, make_jwt(-60))

        with pytest.raises(RemoteError) as exc_info:
            await manager.get_access_token()

        assert exc_info.value.code == ErrorCode.AUTH_REFRESH_FAILED
        assert exc_info.value.status_code == 400
        assert exc_info.value.body == {"error": "invalid_grant"}

    @pytest.mark.asyncio
    async def test_force_refresh_skips_when_already_rotated(self, http_client, local_store, fake_scopestack):
        current = make_jwt(3600)
        manager = _manager(http_client, local_store, current)

        token = await manager.force_refresh("some-older-token")

        assert token == current
        assert fake_scopestack.calls("POST", TOKEN_PATH) == []


class TestExpiredCredentialOnRequest:
    """A request made with an expired credential refreshes exactly once."""

    @pytest.mark.asyncio
    async def test_concurrent_requests_trigger_single_exchange(self, http_client, local_store, fake_scopestack):
        new_token = make_jwt(3600)
        fake_scopestack.on("POST", TOKEN_PATH, token_response(new_token))
        fake_scopestack.on("GET", scoped("/v1/projects/1"), {"data": resource("projects", 1, **{"project-name": "P"})})
        manager = _manager(http_client, local_store, make_jwt(-60))
        client = ScopeStackClient(
            credentials=manager,
            api_url=API_URL,
            account_slug=ACCOUNT_SLUG,
            http_client=http_client,
        )

        await asyncio.gather(
            client.get("/v1/projects/1", stage="pricing"),
            client.get("/v1/projects/1", stage="pricing"),
        )

        assert len(fake_scopestack.calls("POST", TOKEN_PATH)) == 1
        for request in fake_scopestack.calls("GET", scoped("/v1/projects/1")):
            assert request.headers["Authorization"] == f"Bearer {new_token}"

    @pytest.mark.asyncio
    async def test_transport_failure_during_refresh(self, local_store, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = _manager(client, local_store, make_jwt(-60))
        monkeypatch.setattr(CredentialManager._post_token_request.retry, "sleep", _no_sleep)

        with pytest.raises(RemoteError) as exc_info:
            await manager.get_access_token()

        assert exc_info.value.code == ErrorCode.AUTH_REFRESH_FAILED


class TestRefreshAcrossEventLoops:
    """Requests served on separate threads share one refresh."""

    def test_threads_with_own_loops_trigger_single_exchange(self, local_store):
        new_token = make_jwt(3600)
        exchanges = []

        def handler(request):
            form = parse_qs(request.content.decode())
            exchanges.append(form["refresh_token"][0])
            time.sleep(0.3)
            return httpx.Response(200, json=token_response(new_token))

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = _manager(client, local_store, make_jwt(-60))
        tokens = []
        errors = []

        def worker():
            # One event loop per thread, as with threaded Flask handlers
            try:
                tokens.append(asyncio.run(manager.get_access_token()))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert exchanges == ["refresh-1"]
        assert tokens == [new_token, new_token]
        assert manager.refresh_count == 1


async def _no_sleep(seconds):
    return None
