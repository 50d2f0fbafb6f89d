"""Unified secret access for the estimator.

Secrets come from the process environment (populated from `.env` by
config.settings). The refresh token read here is only the bootstrap value:
once a refresh happens, the rotated token lives in the local store.

Usage:
    from config.secrets import get_scopestack_access_token, get_secret

    token = get_scopestack_access_token()
"""

import os
from functools import lru_cache
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


def get_secret(secret_id: str) -> Optional[str]:
    """Get a secret from the environment.

    Args:
        secret_id: The name of the secret (e.g., 'SCOPESTACK_API_TOKEN')

    Returns:
        The secret value, or None if not found
    """
    value = os.environ.get(secret_id)
    if not value:
        logger.warning("secret_missing", secret_id=secret_id)
    return value or None


# Cached secret accessors for commonly used secrets

@lru_cache(maxsize=1)
def get_scopestack_access_token() -> Optional[str]:
    """Get the initial ScopeStack bearer token."""
    return get_secret('SCOPESTACK_API_TOKEN')


@lru_cache(maxsize=1)
def get_scopestack_refresh_token() -> Optional[str]:
    """Get the bootstrap ScopeStack refresh token."""
    return get_secret('SCOPESTACK_REFRESH_TOKEN')


@lru_cache(maxsize=1)
def get_scopestack_client_secret() -> Optional[str]:
    """Get the OAuth client secret used for token exchange."""
    return get_secret('SCOPESTACK_CLIENT_SECRET')


@lru_cache(maxsize=1)
def get_ai_api_key() -> Optional[str]:
    """Get the AI completion endpoint key."""
    return get_secret('AI_API_KEY')


def clear_secret_cache() -> None:
    """Clear cached secrets. Useful for testing or when secrets are rotated."""
    get_scopestack_access_token.cache_clear()
    get_scopestack_refresh_token.cache_clear()
    get_scopestack_client_secret.cache_clear()
    get_ai_api_key.cache_clear()
