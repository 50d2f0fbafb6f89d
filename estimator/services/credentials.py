"""ScopeStack credential manager.

Owns the bearer/refresh token pair shared by every outgoing API request.

- Access tokens are JWTs; expiry is read from the unverified `exp` claim.
- An expired access token is exchanged for a new pair through the OAuth
  token endpoint (`grant_type=refresh_token`).
- Refresh is single-flight: concurrent callers wait on one lock and
  re-check the token after acquiring it, so one expiry causes exactly one
  exchange. The lock is a thread lock, so requests served on separate
  threads (each with its own event loop) share it too.
- The rotated refresh token is persisted to the local store.
"""

import asyncio
import threading
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

import httpx
import jwt
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
import structlog

from config.settings import settings
from config.errors import RemoteError, ErrorCode
from config.secrets import (
    get_scopestack_access_token,
    get_scopestack_client_secret,
    get_scopestack_refresh_token,
)
from services.local_store import LocalStore, KEY_REFRESH_TOKEN

logger = structlog.get_logger(__name__)

TOKEN_PATH = "/oauth/token"

# Poll interval while another thread holds the refresh lock
LOCK_POLL_SECONDS = 0.01


def decode_expiry(token: Optional[str]) -> Optional[float]:
    """Return the `exp` claim of a JWT as a unix timestamp.

    Returns None for opaque (non-JWT) tokens or tokens without `exp`.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    exp = claims.get("exp")
    return float(exp) if exp is not None else None


class CredentialManager:
    """Holds and refreshes the ScopeStack token pair."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        store: Optional[LocalStore] = None,
        token_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        expiry_skew_seconds: Optional[int] = None,
    ):
        """Initialize CredentialManager.

        Args:
            access_token: Initial bearer token (default from secrets).
            refresh_token: Initial refresh token. A token persisted in the
                local store wins over the secrets bootstrap value.
            store: Local store used to persist rotated refresh tokens.
            token_url: OAuth token endpoint (default from settings).
            client_id: OAuth client id (default from settings).
            client_secret: OAuth client secret (default from secrets).
            http_client: Optional shared client (tests inject a mock transport).
            expiry_skew_seconds: Refresh this many seconds before `exp`.
        """
        self.store = store or LocalStore()
        self.token_url = token_url or f"{settings.scopestack_auth_url.rstrip('/')}{TOKEN_PATH}"
        self.client_id = client_id or settings.scopestack_client_id
        self.client_secret = client_secret or get_scopestack_client_secret()
        self.expiry_skew_seconds = (
            settings.token_expiry_skew_seconds if expiry_skew_seconds is None else expiry_skew_seconds
        )
        self._http_client = http_client

        stored_refresh = self.store.get(KEY_REFRESH_TOKEN)
        self._pair: Tuple[Optional[str], Optional[str]] = (
            access_token or get_scopestack_access_token(),
            refresh_token or stored_refresh or get_scopestack_refresh_token(),
        )
        self._thread_lock = threading.Lock()
        self.refresh_count = 0

    @asynccontextmanager
    async def _refresh_lock(self) -> AsyncIterator[None]:
        """Hold the refresh lock without blocking the running event loop."""
        while not self._thread_lock.acquire(blocking=False):
            await asyncio.sleep(LOCK_POLL_SECONDS)
        try:
            yield
        finally:
            self._thread_lock.release()

    @property
    def access_token(self) -> Optional[str]:
        return self._pair[0]

    @property
    def refresh_token(self) -> Optional[str]:
        return self._pair[1]

    def is_expired(self, token: Optional[str] = None) -> bool:
        """Check whether a token is missing or past its expiry claim."""
        token = token if token is not None else self.access_token
        if not token:
            return True
        exp = decode_expiry(token)
        if exp is None:
            return False
        return time.time() >= exp - self.expiry_skew_seconds

    async def get_access_token(self) -> str:
        """Return a valid access token, refreshing it first if expired."""
        token = self.access_token
        if not self.is_expired(token):
            return token

        async with self._refresh_lock():
            # Another caller may have refreshed while we waited
            if not self.is_expired(self.access_token):
                return self.access_token
            await self._refresh()
            return self.access_token

    async def force_refresh(self, stale_token: Optional[str]) -> str:
        """Refresh after the API rejected `stale_token` (HTTP 401).

        A no-op when the pair was already rotated past `stale_token`.
        """
        async with self._refresh_lock():
            if self.access_token and self.access_token != stale_token:
                return self.access_token
            await self._refresh()
            return self.access_token

    async def _refresh(self) -> None:
        """Exchange the refresh token for a new pair. Caller holds the lock."""
        if not self.refresh_token:
            raise RemoteError(
                message="Access token expired and no refresh token is available",
                stage="auth",
                code=ErrorCode.AUTH_REFRESH_FAILED,
            )

        payload = {
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        logger.info("token_refresh_started", token_url=self.token_url)
        try:
            if self._http_client is not None:
                response = await self._post_token_request(self._http_client, payload)
            else:
                async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
                    response = await self._post_token_request(client, payload)
        except httpx.HTTPError as e:
            raise RemoteError(
                message=f"Token refresh failed: {e}",
                stage="auth",
                code=ErrorCode.AUTH_REFRESH_FAILED,
            ) from e

        if response.status_code >= 400:
            raise RemoteError(
                message=f"Token refresh rejected with HTTP {response.status_code}",
                stage="auth",
                status_code=response.status_code,
                body=response_body(response),
                code=ErrorCode.AUTH_REFRESH_FAILED,
            )

        body = response.json()
        access_token = body.get("access_token")
        if not access_token:
            raise RemoteError(
                message="Token refresh response did not include an access token",
                stage="auth",
                status_code=response.status_code,
                body=body,
                code=ErrorCode.AUTH_REFRESH_FAILED,
            )
        refresh_token = body.get("refresh_token") or self.refresh_token

        # Swap both halves in one assignment
        self._pair = (access_token, refresh_token)
        self.refresh_count += 1
        self.store.set(KEY_REFRESH_TOKEN, refresh_token)

        logger.info("token_refreshed", refresh_count=self.refresh_count)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post_token_request(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        """POST to the token endpoint, retrying transport failures."""
        return await client.post(self.token_url, data=payload)


def response_body(response: httpx.Response):
    """Parsed JSON body when possible, raw text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text
