"""Pytest configuration and shared fixtures for estimator tests."""

import os
import sys
import pytest
import httpx


# ============================================================================
# Ensure local imports work (config/, models/, services/, workflow/)
# ============================================================================
#
# The codebase uses absolute imports like `from models...` / `from services...`,
# so `estimator/` must be importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from tests.fixtures.mock_scopestack import (  # noqa: E402
    ACCOUNT_SLUG,
    API_URL,
    TOKEN_URL,
    FakeScopeStack,
    make_jwt,
)


# ============================================================================
# ScopeStack Mocks
# ============================================================================

@pytest.fixture
def fake_scopestack():
    """Empty fake ScopeStack server; tests register routes on it."""
    return FakeScopeStack()


@pytest.fixture
def http_client(fake_scopestack):
    """httpx client whose transport is the fake server."""
    return httpx.AsyncClient(transport=fake_scopestack.transport())


@pytest.fixture
def local_store(tmp_path):
    from services.local_store import LocalStore

    return LocalStore(tmp_path / "store.json")


@pytest.fixture
def credentials(http_client, local_store):
    """Credential manager holding a valid access token."""
    from services.credentials import CredentialManager

    return CredentialManager(
        access_token=make_jwt(3600),
        refresh_token="refresh-1",
        store=local_store,
        token_url=TOKEN_URL,
        client_id="client-id",
        client_secret="client-secret",
        http_client=http_client,
        expiry_skew_seconds=0,
    )


@pytest.fixture
def api(credentials, http_client):
    """ScopeStackClient wired to the fake server."""
    from services.scopestack_client import ScopeStackClient

    return ScopeStackClient(
        credentials=credentials,
        api_url=API_URL,
        account_slug=ACCOUNT_SLUG,
        http_client=http_client,
    )


# ============================================================================
# Sample Data Fixtures
# ============================================================================

@pytest.fixture
def sample_questions():
    """Questionnaire questions, including one deleted question."""
    from models.scopestack import Question

    return [
        Question(id="101", slug="industry", question="Industry", required=True, position=1),
        Question(id="102", slug="site_count", question="How many sites?", value_type="number", position=2),
        Question(id="103", slug="legacy", question="Legacy question", position=3, deleted_at="2024-01-01T00:00:00Z"),
    ]


@pytest.fixture
def sample_request_data():
    """Estimate form body as the browser submits it."""
    return {
        "projectName": "Network Refresh",
        "clientName": "Acme",
        "questionnaireId": "12",
        "answers": {"industry": "Retail"},
        "accountId": "1",
        "accountSlug": ACCOUNT_SLUG,
        "rateTableId": "7",
        "paymentTermId": "4",
    }


@pytest.fixture
def sample_request(sample_request_data):
    """Parsed EstimateRequest for the sample form body."""
    from models.workflow import EstimateRequest

    return EstimateRequest.model_validate(sample_request_data)


# ============================================================================
# Environment Setup
# ============================================================================

@pytest.fixture(autouse=True)
def mock_settings(monkeypatch, tmp_path):
    """Fast polling, isolated local store and test credentials for all tests."""
    from config.settings import settings
    from config.secrets import clear_secret_cache

    monkeypatch.setattr(settings, "survey_poll_interval_seconds", 0)
    monkeypatch.setattr(settings, "document_poll_delay_seconds", 0)
    monkeypatch.setattr(settings, "local_store_path", str(tmp_path / "local_store.json"))
    monkeypatch.setattr(settings, "require_sales_executive", False)
    monkeypatch.setenv("SCOPESTACK_API_TOKEN", "env-access-token")
    monkeypatch.setenv("SCOPESTACK_REFRESH_TOKEN", "env-refresh-token")
    monkeypatch.setenv("SCOPESTACK_CLIENT_SECRET", "env-client-secret")
    monkeypatch.setenv("AI_API_KEY", "test-ai-key")
    clear_secret_cache()
    yield settings
    clear_secret_cache()
