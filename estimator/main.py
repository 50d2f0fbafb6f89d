"""HTTP entry points for the estimate form.

Provides handlers for:
- Loading the form context (current user, questionnaires, defaults)
- Loading one questionnaire's active questions
- Client and sales executive type-ahead search
- Creating an estimate (the full provisioning workflow)
- Regenerating the executive summary
- Reading, saving and resetting the prompt template

Every handler takes a Flask request and answers with the
{"success": bool, "data" | "error": ...} envelope.
"""

import asyncio
import json
from datetime import datetime, date
from typing import Any, Dict, Optional

import structlog
from flask import Request, Response

from config.settings import settings
from config.errors import (
    EstimatorError,
    ErrorCode,
    RemoteError,
    ValidationError,
    WorkflowTimeoutError,
)
from services.credentials import CredentialManager
from services.local_store import LocalStore
from services.scopestack_client import ScopeStackClient
from services.client_resolver import ClientResolver
from services.pricing_service import format_pricing
from services.summary_generator import PromptTemplateStore, survey_pairs
from validators.estimate_validator import parse_estimate_request
from workflow.orchestrator import EstimateWorkflow
from utils.workflow_logger import configure_logging

configure_logging(settings.log_level)
logger = structlog.get_logger()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

_credentials: Optional[CredentialManager] = None


# ============================================================================
# Helper Functions
# ============================================================================


def success_response(data: Any) -> Dict[str, Any]:
    """Build success response."""
    return {"success": True, "data": data}


def error_response(code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    """Build error response."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {}
        }
    }


def get_request_json(req: Request) -> Dict[str, Any]:
    """Extract JSON from request body.

    Raises:
        ValidationError: If JSON is invalid.
    """
    if not req.get_data():
        return {}
    try:
        return req.get_json(force=True) or {}
    except Exception as e:
        raise ValidationError(
            message=f"Invalid JSON in request body: {str(e)}"
        )


def status_for_error(error: EstimatorError) -> int:
    """HTTP status for an estimator error."""
    if isinstance(error, ValidationError) or error.code == ErrorCode.DATA_INTEGRITY_ERROR:
        return 400
    if error.code == ErrorCode.WORKFLOW_ALREADY_RUNNING:
        return 409
    if isinstance(error, WorkflowTimeoutError):
        return 504
    if isinstance(error, RemoteError):
        return 502
    return 500


def get_credentials() -> CredentialManager:
    """Process-wide credential manager, so refreshed tokens outlive one request."""
    global _credentials
    if _credentials is None:
        _credentials = CredentialManager(store=LocalStore())
    return _credentials


def build_api(account_slug: Optional[str] = None) -> ScopeStackClient:
    return ScopeStackClient(credentials=get_credentials(), account_slug=account_slug)


def _handle(req: Request, handler, event: str) -> Response:
    """Run `handler(data)` and wrap its result or error in the envelope."""
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req) if req.method == "POST" else dict(req.args)
        return _json_response(success_response(handler(data)))
    except EstimatorError as e:
        status = status_for_error(e)
        if status >= 500:
            logger.error(f"{event}_error", error=e.message, code=e.code)
        return _json_response(error_response(e.code, e.message, e.details), status=status)
    except Exception as e:
        logger.exception(f"{event}_exception", error=str(e))
        return _json_response(
            error_response(ErrorCode.WORKFLOW_FAILED, f"Request failed: {str(e)}"),
            status=500
        )


# ============================================================================
# Form bootstrap
# ============================================================================


def get_form_context(req: Request) -> Response:
    """Current user, published questionnaires and account defaults.

    Request body (optional):
    {
        "questionnaireTag": "network"
    }
    """
    def handler(data: Dict[str, Any]) -> Dict[str, Any]:
        return asyncio.run(_get_form_context_async(data.get("questionnaireTag")))

    return _handle(req, handler, "form_context")


async def _get_form_context_async(tag: Optional[str]) -> Dict[str, Any]:
    async with build_api() as api:
        context = await EstimateWorkflow(api).load_form_context(tag)
    return context.model_dump(by_alias=True, mode="json")


def get_questionnaire(req: Request) -> Response:
    """One questionnaire with its active (non-deleted) questions.

    Request body:
    {
        "questionnaireId": "12",
        "accountSlug": "acme-it"
    }
    """
    def handler(data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("questionnaireId"):
            raise ValidationError(message="Missing questionnaireId in request", field="questionnaireId")
        return asyncio.run(_get_questionnaire_async(data))

    return _handle(req, handler, "questionnaire")


async def _get_questionnaire_async(data: Dict[str, Any]) -> Dict[str, Any]:
    async with build_api(data.get("accountSlug")) as api:
        questionnaire = await api.fetch_questionnaire(str(data["questionnaireId"]))
    active = questionnaire.model_copy(update={"questions": questionnaire.active_questions()})
    return active.model_dump(by_alias=True, mode="json")


def search_clients(req: Request) -> Response:
    """Type-ahead client search.

    Request body:
    {
        "term": "acm"
    }
    """
    def handler(data: Dict[str, Any]) -> Dict[str, Any]:
        return asyncio.run(_search_async(data, executives=False))

    return _handle(req, handler, "client_search")


def search_sales_executives(req: Request) -> Response:
    """Type-ahead sales executive search. Same body as `search_clients`."""
    def handler(data: Dict[str, Any]) -> Dict[str, Any]:
        return asyncio.run(_search_async(data, executives=True))

    return _handle(req, handler, "executive_search")


async def _search_async(data: Dict[str, Any], executives: bool) -> Dict[str, Any]:
    term = data.get("term") or ""
    async with build_api(data.get("accountSlug")) as api:
        resolver = ClientResolver(api)
        if executives:
            results = await resolver.search_sales_executives(term)
        else:
            results = await resolver.search_clients(term)
    return {
        "term": term,
        "results": [r.model_dump(by_alias=True, mode="json") for r in results],
    }


# ============================================================================
# Estimate workflow
# ============================================================================


def create_estimate(req: Request) -> Response:
    """Provision a project, survey, document, pricing and summary.

    Request body: the estimate form (camelCase keys), e.g.
    {
        "projectName": "Network refresh",
        "clientName": "Acme",
        "questionnaireId": "12",
        "answers": {"site_count": "3"},
        "accountId": "1",
        "accountSlug": "acme-it",
        "rateTableId": "7",
        "paymentTermId": "4"
    }

    Response data: the estimate result, with `statusMessage`,
    `completedStages`, ids, `documentUrl`, `pricing`, `services` and
    `executiveSummary`. On failure, `error.details.result` carries the
    partial result (which remote resources were created).
    """
    def handler(data: Dict[str, Any]) -> Dict[str, Any]:
        request = parse_estimate_request(data)
        logger.info(
            "estimate_request_received",
            project_name=request.project_name,
            client_id=request.selected_client.id if request.selected_client else None,
        )
        return asyncio.run(_create_estimate_async(request))

    return _handle(req, handler, "create_estimate")


async def _create_estimate_async(request) -> Dict[str, Any]:
    async with build_api(request.account_slug) as api:
        workflow = EstimateWorkflow(api)
        try:
            result = await workflow.run(request)
        except EstimatorError as e:
            e.details = {**e.details, "result": workflow.result.model_dump(by_alias=True, mode="json")}
            raise

    payload = result.model_dump(by_alias=True, mode="json")
    if result.pricing is not None:
        payload["pricingDisplay"] = format_pricing(result.pricing)
    return payload


def regenerate_summary(req: Request) -> Response:
    """Re-render the prompt and call the AI endpoint again.

    Request body:
    {
        "projectId": "123",
        "projectName": "Network refresh",
        "clientName": "Acme",
        "questionnaireId": "12",
        "answers": {...},
        "template": "optional edited template"
    }
    """
    def handler(data: Dict[str, Any]) -> Dict[str, Any]:
        for key in ("projectId", "projectName", "clientName"):
            if not data.get(key):
                raise ValidationError(message=f"Missing {key} in request", field=key)
        return asyncio.run(_regenerate_summary_async(data))

    return _handle(req, handler, "regenerate_summary")


async def _regenerate_summary_async(data: Dict[str, Any]) -> Dict[str, Any]:
    async with build_api(data.get("accountSlug")) as api:
        workflow = EstimateWorkflow(api)
        services = await workflow.pricing.fetch_services(data["projectId"])
        pairs = []
        if data.get("questionnaireId"):
            questionnaire = await api.fetch_questionnaire(data["questionnaireId"])
            pairs = survey_pairs(questionnaire.active_questions(), data.get("answers") or {})

        workflow.restore_summary_context(
            client_name=data["clientName"],
            project_name=data["projectName"],
            pairs=pairs,
            services=services,
        )
        summary = await workflow.regenerate_summary(data.get("template"))

    return {
        "executiveSummary": summary,
        "summaryState": workflow.summary_state.value,
    }


# ============================================================================
# Prompt template
# ============================================================================


def prompt_template(req: Request) -> Response:
    """Read, save or reset the prompt template.

    Request body:
    {
        "action": "get" | "save" | "reset",
        "template": "..."   // required for save
    }
    """
    def handler(data: Dict[str, Any]) -> Dict[str, Any]:
        store = PromptTemplateStore(LocalStore())
        action = data.get("action") or "get"
        if action == "get":
            template = store.load()
        elif action == "save":
            if not data.get("template"):
                raise ValidationError(message="Missing template in request", field="template")
            template = store.save(data["template"])
        elif action == "reset":
            template = store.reset()
        else:
            raise ValidationError(message=f"Unknown action: {action}", field="action")
        return {"template": template}

    return _handle(req, handler, "prompt_template")


# ============================================================================
# Response helpers
# ============================================================================


def _cors_response() -> Response:
    """Return CORS preflight response."""
    return Response("", status=204, headers=CORS_HEADERS)


def _json_response(data: dict, status: int = 200) -> Response:
    """Return JSON response with CORS headers."""

    def _json_default(o: Any):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return str(o)

    return Response(
        json.dumps(data, default=_json_default),
        status=status,
        mimetype="application/json",
        headers=CORS_HEADERS
    )
