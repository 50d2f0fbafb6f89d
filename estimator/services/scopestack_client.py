"""ScopeStack API client for the estimator.

Typed request/response wrapper over the ScopeStack JSON:API.

Architecture:
- Every request asks the CredentialManager for a valid bearer token first
  (expired tokens are refreshed before the request goes out)
- A 401 forces one refresh and one replay of the request
- Non-success responses and transport failures raise RemoteError carrying
  the workflow stage, HTTP status and server error body
- Collection reads follow `links.next` until the last page

References:
- ScopeStack API: https://api.scopestack.io (JSON:API, application/vnd.api+json)
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from config.settings import settings
from config.errors import RemoteError, ErrorCode
from models.scopestack import (
    CurrentUser,
    NamedDefault,
    Project,
    Questionnaire,
)
from services.credentials import CredentialManager, response_body

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

JSONAPI_CONTENT_TYPE = "application/vnd.api+json"

# Safety stop for `links.next` chains
MAX_PAGES = 50


def resource_ref(resource_type: str, resource_id: Any) -> Dict[str, Any]:
    """JSON:API relationship object for a single related resource."""
    return {"data": {"type": resource_type, "id": str(resource_id)}}


class ScopeStackClient:
    """Authenticated client for the ScopeStack resource API.

    Provides:
    - Low-level get/post/put returning the `data` member
    - Compound-document reads (`included`) and paginated collection reads
    - Form bootstrap reads (current user, questionnaires, defaults)
    - Project and project-contact creation
    """

    def __init__(
        self,
        credentials: Optional[CredentialManager] = None,
        api_url: Optional[str] = None,
        account_slug: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize ScopeStackClient.

        Args:
            credentials: Shared credential manager.
            api_url: API host (default from settings).
            account_slug: Account path segment for scoped resources.
            http_client: Optional pre-built client (tests inject a mock transport).
            timeout: Request timeout in seconds (default from settings).
        """
        self.credentials = credentials or CredentialManager()
        self.api_url = (api_url or settings.scopestack_api_url).rstrip("/")
        self.account_slug = account_slug or settings.scopestack_account_slug
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the underlying httpx client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ScopeStackClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # =========================================================================
    # Transport
    # =========================================================================

    def _url(self, path: str, scoped: bool = True) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if scoped:
            if not self.account_slug:
                raise RemoteError(
                    message="Account slug is not configured",
                    stage="config",
                )
            return f"{self.api_url}/{self.account_slug}{path}"
        return f"{self.api_url}{path}"

    async def _send(
        self,
        method: str,
        url: str,
        token: str,
        params: Optional[Dict[str, Any]],
        payload: Optional[Dict[str, Any]],
        stage: str,
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": JSONAPI_CONTENT_TYPE,
            "Content-Type": JSONAPI_CONTENT_TYPE,
        }
        try:
            return await self.client.request(
                method,
                url,
                params=params,
                json=payload,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error("scopestack_transport_error", stage=stage, method=method, url=url, error=str(e))
            raise RemoteError(
                message=f"{method} {url} failed: {e}",
                stage=stage,
                code=ErrorCode.REMOTE_CONNECTION_ERROR,
            ) from e

    async def request(
        self,
        method: str,
        path: str,
        stage: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        scoped: bool = True,
    ) -> Dict[str, Any]:
        """Issue an authenticated request and return the parsed document.

        Args:
            method: HTTP method.
            path: Resource path (e.g. "/v1/projects") or absolute URL.
            stage: Workflow stage name, carried on errors.
            params: Query parameters.
            payload: JSON:API request document.
            scoped: Prefix the path with the account slug.

        Returns:
            The full JSON response document ({} for empty bodies).

        Raises:
            RemoteError: On non-success status or transport failure.
        """
        url = self._url(path, scoped=scoped)
        token = await self.credentials.get_access_token()
        response = await self._send(method, url, token, params, payload, stage)

        if response.status_code == 401 and self.credentials.refresh_token:
            logger.info("scopestack_unauthorized_retry", stage=stage, url=url)
            token = await self.credentials.force_refresh(token)
            response = await self._send(method, url, token, params, payload, stage)

        if response.status_code >= 400:
            body = response_body(response)
            logger.error(
                "scopestack_request_failed",
                stage=stage,
                method=method,
                url=url,
                status_code=response.status_code,
                body=body,
            )
            raise RemoteError(
                message=f"{method} {path} returned HTTP {response.status_code}",
                stage=stage,
                status_code=response.status_code,
                body=body,
            )

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def get(self, path: str, stage: str, params: Optional[Dict[str, Any]] = None, scoped: bool = True) -> Any:
        """GET and return the `data` member."""
        document = await self.request("GET", path, stage, params=params, scoped=scoped)
        return document.get("data")

    async def post(self, path: str, payload: Dict[str, Any], stage: str) -> Any:
        """POST a JSON:API document and return the `data` member."""
        document = await self.request("POST", path, stage, payload=payload)
        return document.get("data")

    async def put(self, path: str, stage: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """PUT (used for sub-actions like calculate/apply) and return `data`."""
        document = await self.request("PUT", path, stage, payload=payload)
        return document.get("data")

    async def list_all(
        self,
        path: str,
        stage: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Read every page of a collection.

        Returns:
            {"data": [...], "included": [...]} accumulated across pages.
        """
        data: List[Dict[str, Any]] = []
        included: List[Dict[str, Any]] = []
        next_path: Optional[str] = path
        next_params = params
        pages = 0

        while next_path and pages < MAX_PAGES:
            document = await self.request("GET", next_path, stage, params=next_params)
            data.extend(document.get("data") or [])
            included.extend(document.get("included") or [])
            pages += 1
            next_path = (document.get("links") or {}).get("next")
            # Next links already carry the query string
            next_params = None

        if next_path:
            logger.warning("scopestack_pagination_truncated", path=path, pages=pages)

        return {"data": data, "included": included}

    # =========================================================================
    # Form bootstrap
    # =========================================================================

    async def get_current_user(self) -> CurrentUser:
        """Identity and account of the token holder."""
        data = await self.get("/v1/me", stage="account", scoped=False)
        user = CurrentUser.from_resource(data)
        if not self.account_slug:
            self.account_slug = user.account_slug
        return user

    async def fetch_questionnaires(self, tag: Optional[str] = None) -> List[Questionnaire]:
        """Active, published questionnaires (optionally filtered by tag)."""
        params = {"filter[active]": "true", "filter[published]": "true"}
        if tag:
            params["filter[tag-list]"] = tag
        result = await self.list_all("/v1/questionnaires", stage="questionnaire", params=params)
        return [Questionnaire.from_resource(item) for item in result["data"]]

    async def fetch_questionnaire(self, questionnaire_id: str) -> Questionnaire:
        """A questionnaire with its nested questions."""
        data = await self.get(
            f"/v1/questionnaires/{questionnaire_id}",
            stage="questionnaire",
            params={"include": "questions"},
        )
        return Questionnaire.from_resource(data)

    async def _fetch_default(self, path: str, stage: str, params: Dict[str, Any]) -> Optional[NamedDefault]:
        result = await self.list_all(path, stage=stage, params=params)
        for item in result["data"]:
            candidate = NamedDefault.from_resource(item)
            if candidate.default:
                return candidate
        return None

    async def fetch_default_rate_table(self) -> Optional[NamedDefault]:
        """The account's default active rate table, if any."""
        return await self._fetch_default("/v1/rate-tables", "rate_table", {"filter[active]": "true"})

    async def fetch_default_payment_term(self) -> Optional[NamedDefault]:
        """The account's default active payment term, if any."""
        return await self._fetch_default("/v1/payment-terms", "payment_term", {"filter[active]": "true"})

    # =========================================================================
    # Project provisioning
    # =========================================================================

    async def create_project(
        self,
        project_name: str,
        account_id: str,
        client_id: str,
        payment_term_id: str,
        rate_table_id: str,
        msa_date: Optional[str] = None,
        sales_executive_id: Optional[str] = None,
    ) -> Project:
        """Create the project that the estimate is built on."""
        relationships = {
            "account": resource_ref("accounts", account_id),
            "client": resource_ref("clients", client_id),
            "payment-term": resource_ref("payment-terms", payment_term_id),
            "rate-table": resource_ref("rate-tables", rate_table_id),
        }
        if sales_executive_id:
            relationships["sales-executive"] = resource_ref("sales-executives", sales_executive_id)

        payload = {
            "data": {
                "type": "projects",
                "attributes": {
                    "project-name": project_name.strip(),
                    "msa-date": msa_date or None,
                },
                "relationships": relationships,
            }
        }
        data = await self.post("/v1/projects", payload, stage="project")
        project = Project.from_resource(data)
        logger.info("project_created", project_id=project.id, client_id=client_id)
        return project

    async def create_project_contact(
        self,
        project_id: str,
        name: str,
        email: str = "",
        phone: str = "",
        title: str = "",
    ) -> Dict[str, Any]:
        """Attach the primary customer contact to a project."""
        payload = {
            "data": {
                "type": "project-contacts",
                "attributes": {
                    "active": True,
                    "name": name,
                    "title": title or "Primary Contact",
                    "email": email,
                    "phone": phone,
                    "contact-type": "primary_customer_contact",
                },
                "relationships": {
                    "project": resource_ref("projects", project_id),
                },
            }
        }
        data = await self.post("/v1/project-contacts", payload, stage="contact")
        logger.info("project_contact_created", project_id=project_id, contact_id=(data or {}).get("id"))
        return data
