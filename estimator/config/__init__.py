"""Estimator configuration.

This package contains:
- settings: Environment variables and configuration
- secrets: Credential access from the environment
- errors: Custom exceptions and error codes
"""

from config.settings import settings
from config.errors import EstimatorError
from config.secrets import (
    get_secret,
    get_scopestack_access_token,
    get_scopestack_refresh_token,
    get_ai_api_key,
)

__all__ = [
    "settings",
    "EstimatorError",
    "get_secret",
    "get_scopestack_access_token",
    "get_scopestack_refresh_token",
    "get_ai_api_key",
]
