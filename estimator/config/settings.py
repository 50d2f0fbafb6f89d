"""Estimator configuration settings.

Loads configuration from environment variables with sensible defaults.
Credentials (API tokens, OAuth client secret, AI key) are read through
config.secrets, not from this class.
"""

import os
from typing import Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load .env file for non-secret configuration (API hosts, polling budgets, etc.)
load_dotenv()


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # ScopeStack API
    scopestack_api_url: str = field(default_factory=lambda: os.getenv("SCOPESTACK_API_URL", "https://api.scopestack.io"))
    scopestack_auth_url: str = field(default_factory=lambda: os.getenv("SCOPESTACK_AUTH_URL", "https://app.scopestack.io"))
    scopestack_account_slug: Optional[str] = field(default_factory=lambda: os.getenv("SCOPESTACK_ACCOUNT_SLUG"))
    scopestack_client_id: Optional[str] = field(default_factory=lambda: os.getenv("SCOPESTACK_CLIENT_ID"))
    http_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("HTTP_TIMEOUT_SECONDS", "30")))

    # Token refresh: treat a token as expired this many seconds early
    token_expiry_skew_seconds: int = field(default_factory=lambda: int(os.getenv("TOKEN_EXPIRY_SKEW_SECONDS", "30")))

    # AI completion endpoint (Gemini generateContent)
    ai_base_url: str = field(default_factory=lambda: os.getenv("AI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"))
    ai_model: str = field(default_factory=lambda: os.getenv("AI_MODEL", "gemini-1.5-flash"))
    ai_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("AI_TIMEOUT_SECONDS", "60")))

    # Survey pipeline polling
    survey_poll_interval_seconds: float = field(default_factory=lambda: float(os.getenv("SURVEY_POLL_INTERVAL_SECONDS", "2")))
    survey_max_poll_attempts: int = field(default_factory=lambda: int(os.getenv("SURVEY_MAX_POLL_ATTEMPTS", "150")))

    # Document pipeline polling
    document_poll_delay_seconds: float = field(default_factory=lambda: float(os.getenv("DOCUMENT_POLL_DELAY_SECONDS", "1")))
    document_max_poll_attempts: int = field(default_factory=lambda: int(os.getenv("DOCUMENT_MAX_POLL_ATTEMPTS", "10")))
    document_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("DOCUMENT_TIMEOUT_SECONDS", "300")))

    # Form behaviour
    client_search_min_length: int = field(default_factory=lambda: int(os.getenv("CLIENT_SEARCH_MIN_LENGTH", "2")))
    require_sales_executive: bool = field(default_factory=lambda: os.getenv("REQUIRE_SALES_EXECUTIVE", "false").lower() == "true")

    # Local key-value store (refresh token, prompt template)
    local_store_path: str = field(default_factory=lambda: os.getenv("LOCAL_STORE_PATH", ".estimator/local_store.json"))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


# Singleton settings instance
settings = Settings()
