"""Estimate workflow orchestrator.

Drives one form submission through the fixed provisioning sequence:

    validate -> client -> project -> contact -> survey -> document
             -> pricing -> services -> summary

Each stage feeds the next (client id, project id, account context). A
failure stops forward progress, is recorded on the result and re-raised.
Remote resources created before the failure are left in place; duplicate
submissions create duplicate remote records.

The executive summary is the only stage allowed to fail softly: the project
is fully provisioned by then, so a placeholder is shown instead.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Tuple

import structlog

from config.errors import AIGenerationError, EstimatorError, ErrorCode, PipelineError
from models.scopestack import ProjectService, Question
from models.workflow import (
    EstimateRequest,
    EstimateResult,
    FormContext,
    SummaryState,
    WorkflowStage,
)
from services.scopestack_client import ScopeStackClient
from services.client_resolver import ClientResolver
from services.survey_pipeline import SurveyPipeline, build_survey_responses
from services.document_pipeline import DocumentPipeline
from services.pricing_service import PricingService
from services.summary_generator import (
    SUMMARY_UNAVAILABLE,
    SummaryGenerator,
    survey_pairs,
)
from validators.estimate_validator import validate_estimate_request
from utils.workflow_logger import (
    log_workflow_start,
    log_workflow_complete,
    log_workflow_failed,
    log_stage_start,
)

logger = structlog.get_logger(__name__)

# Status strings shown on the form
STATUS_VALIDATING = "Validating form..."
STATUS_PROJECT_CREATED = "Project created..."
STATUS_SURVEY = "Creating and processing survey..."
STATUS_DOCUMENT = "Generating document..."
STATUS_DOCUMENT_READY = "Document ready!"
STATUS_PRICING = "Fetching pricing..."
STATUS_SUMMARY = "Generating executive summary..."
STATUS_COMPLETE = "Estimate complete!"
STATUS_FAILED_PREFIX = "Failed: "


@dataclass
class SummaryInputs:
    """Everything the summary prompt is rendered from."""
    client_name: str
    project_name: str
    pairs: List[Tuple[str, Any]] = field(default_factory=list)
    services: List[ProjectService] = field(default_factory=list)


class EstimateWorkflow:
    """Runs the estimate provisioning sequence for one submission at a time."""

    def __init__(
        self,
        api: ScopeStackClient,
        resolver: Optional[ClientResolver] = None,
        survey: Optional[SurveyPipeline] = None,
        document: Optional[DocumentPipeline] = None,
        pricing: Optional[PricingService] = None,
        summary: Optional[SummaryGenerator] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        """Initialize EstimateWorkflow.

        Args:
            api: Shared ScopeStack client.
            resolver: Client resolver (default built on `api`).
            survey: Survey pipeline (default built on `api`).
            document: Document pipeline (default built on `api`).
            pricing: Pricing/services fetcher (default built on `api`).
            summary: Executive summary generator.
            on_status: Called with every status string.
        """
        self.api = api
        self.resolver = resolver or ClientResolver(api)
        self.survey = survey or SurveyPipeline(api)
        self.document = document or DocumentPipeline(api)
        self.pricing = pricing or PricingService(api)
        self.summary = summary or SummaryGenerator()
        self.on_status = on_status

        self.status_message = ""
        self.status_history: List[str] = []
        self.result = EstimateResult()
        self.summary_state = SummaryState.NOT_GENERATED
        self._summary_triggered = False
        self._summary_inputs: Optional[SummaryInputs] = None
        self._current_stage: Optional[WorkflowStage] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Status
    # =========================================================================

    def _set_status(self, message: str) -> None:
        self.status_message = message
        self.status_history.append(message)
        self.result.status_message = message
        logger.info("workflow_status", status=message)
        if self.on_status is not None:
            self.on_status(message)

    def _begin(self, stage: WorkflowStage, status: Optional[str] = None) -> None:
        self._current_stage = stage
        log_stage_start(stage.value, self.result.project_id)
        if status:
            self._set_status(status)

    def _complete(self, stage: WorkflowStage) -> None:
        self.result.completed_stages.append(stage.value)

    # =========================================================================
    # Form bootstrap
    # =========================================================================

    async def load_form_context(self, questionnaire_tag: Optional[str] = None) -> FormContext:
        """Current user, questionnaires and account defaults for the form."""
        current_user = await self.api.get_current_user()
        questionnaires, rate_table, payment_term = await asyncio.gather(
            self.api.fetch_questionnaires(questionnaire_tag),
            self.api.fetch_default_rate_table(),
            self.api.fetch_default_payment_term(),
        )
        if rate_table is None:
            logger.warning("default_rate_table_missing", account_id=current_user.account_id)
        if payment_term is None:
            logger.warning("default_payment_term_missing", account_id=current_user.account_id)

        return FormContext(
            current_user=current_user,
            questionnaires=questionnaires,
            rate_table=rate_table,
            payment_term=payment_term,
        )

    # =========================================================================
    # Provisioning run
    # =========================================================================

    async def run(self, request: EstimateRequest) -> EstimateResult:
        """Provision the estimate described by `request`.

        Returns:
            EstimateResult with project, document, pricing, services and summary.

        Raises:
            PipelineError: A run is already in progress on this workflow.
            EstimatorError: The first stage that failed; already-created
                remote resources are not rolled back.
        """
        if self._running:
            raise PipelineError(
                code=ErrorCode.WORKFLOW_ALREADY_RUNNING,
                message="An estimate is already being created",
                stage=self._current_stage.value if self._current_stage else None,
            )

        self._running = True
        self.result = EstimateResult(started_at=datetime.now(timezone.utc))
        self.status_history = []
        self.summary_state = SummaryState.NOT_GENERATED
        self._summary_inputs = None
        self._summary_triggered = False
        self._current_stage = None
        start = time.time()

        client_label = request.selected_client.name if request.selected_client else request.client_name
        log_workflow_start(request.project_name, client_label)

        try:
            await self._provision(request, client_label)
        except Exception as e:
            self._record_failure(e)
            raise
        finally:
            self._running = False
            self.result.completed_at = datetime.now(timezone.utc)

        self.result.success = True
        self._set_status(STATUS_COMPLETE)
        log_workflow_complete(
            project_id=self.result.project_id,
            completed_stages=self.result.completed_stages,
            duration_ms=int((time.time() - start) * 1000),
            document_url=self.result.document_url,
        )
        return self.result

    async def _provision(self, request: EstimateRequest, client_label: str) -> None:
        if request.account_slug and not self.api.account_slug:
            self.api.account_slug = request.account_slug

        # Validate: nothing remote is created until the form and answers check out
        self._begin(WorkflowStage.VALIDATE, STATUS_VALIDATING)
        validate_estimate_request(request).raise_for_errors()
        questionnaire = await self.api.fetch_questionnaire(request.questionnaire_id)
        questions: List[Question] = questionnaire.active_questions()
        validate_estimate_request(request, questions).raise_for_errors()
        responses = build_survey_responses(questions, request.answers)
        self._complete(WorkflowStage.VALIDATE)

        self._begin(WorkflowStage.CLIENT)
        client_id = await self.resolver.resolve_or_create_client(
            request.client_name,
            request.account_id,
            selection=request.selected_client,
        )
        self.result.client_id = client_id
        self._complete(WorkflowStage.CLIENT)

        self._begin(WorkflowStage.PROJECT)
        msa_date = request.msa_date or (request.selected_client.msa_date if request.selected_client else None)
        project = await self.api.create_project(
            project_name=request.project_name,
            account_id=request.account_id,
            client_id=client_id,
            payment_term_id=request.payment_term_id,
            rate_table_id=request.rate_table_id,
            msa_date=msa_date,
            sales_executive_id=request.sales_executive_id,
        )
        self.result.project_id = project.id
        self._complete(WorkflowStage.PROJECT)
        self._set_status(STATUS_PROJECT_CREATED)

        contact = request.contact
        if contact.name.strip():
            self._begin(WorkflowStage.CONTACT)
            await self.api.create_project_contact(
                project.id,
                name=contact.name,
                email=contact.email,
                phone=contact.phone,
                title=contact.title,
            )
            self._complete(WorkflowStage.CONTACT)
        elif not contact.is_empty():
            logger.warning("project_contact_skipped_no_name", project_id=project.id)

        self._begin(WorkflowStage.SURVEY, STATUS_SURVEY)
        outcome = await self.survey.run(
            project_id=project.id,
            questionnaire_id=request.questionnaire_id,
            account_id=request.account_id,
            name=request.project_name,
            responses=responses,
        )
        self.result.survey_id = outcome.survey_id
        self._complete(WorkflowStage.SURVEY)

        self._begin(WorkflowStage.DOCUMENT, STATUS_DOCUMENT)
        document = await self.document.run(project.id)
        self.result.document_id = document.document_id
        self.result.document_url = document.document_url
        self._complete(WorkflowStage.DOCUMENT)
        self._set_status(STATUS_DOCUMENT_READY)

        self._begin(WorkflowStage.PRICING, STATUS_PRICING)
        self.result.pricing = await self.pricing.fetch_pricing(project.id)
        self._complete(WorkflowStage.PRICING)

        self._begin(WorkflowStage.SERVICES)
        services = await self.pricing.fetch_services(project.id)
        self.result.services = services
        self._complete(WorkflowStage.SERVICES)

        self._summary_inputs = SummaryInputs(
            client_name=client_label,
            project_name=request.project_name,
            pairs=survey_pairs(questions, request.answers),
            services=services,
        )
        self._begin(WorkflowStage.SUMMARY, STATUS_SUMMARY)
        await self.generate_summary()
        self._complete(WorkflowStage.SUMMARY)

    def _record_failure(self, error: Exception) -> None:
        stage = self._current_stage.value if self._current_stage else None
        self.result.success = False
        self.result.failed_stage = stage
        if isinstance(error, EstimatorError):
            message = error.message
            self.result.error = error.to_dict()
        else:
            message = str(error)
            self.result.error = {"code": ErrorCode.WORKFLOW_FAILED, "message": message, "details": {}}

        self._set_status(f"{STATUS_FAILED_PREFIX}{message}")
        logger.error(
            "workflow_failed",
            stage=stage,
            error=message,
            project_id=self.result.project_id,
            completed_stages=self.result.completed_stages,
        )
        log_workflow_failed(
            failed_stage=stage,
            error=message,
            completed_stages=self.result.completed_stages,
            project_id=self.result.project_id,
        )

    # =========================================================================
    # Executive summary
    # =========================================================================

    def restore_summary_context(
        self,
        client_name: str,
        project_name: str,
        pairs: List[Tuple[str, Any]],
        services: List[ProjectService],
    ) -> None:
        """Load summary inputs for a project provisioned by an earlier run."""
        self._summary_inputs = SummaryInputs(
            client_name=client_name,
            project_name=project_name,
            pairs=list(pairs),
            services=list(services),
        )
        self.summary_state = SummaryState.GENERATED

    async def generate_summary(self) -> Optional[str]:
        """Automatic summary trigger; runs at most once per submission.

        Raises:
            PipelineError: No provisioned project to summarize.
        """
        self._require_summary_inputs()
        if self.summary_state != SummaryState.NOT_GENERATED or self._summary_triggered:
            logger.info("summary_generation_suppressed", state=self.summary_state.value)
            return self.result.executive_summary
        self._summary_triggered = True
        return await self._summarize(template=None, state=SummaryState.NOT_GENERATED)

    async def regenerate_summary(self, template: Optional[str] = None) -> str:
        """User-initiated regeneration, optionally with an edited template.

        Raises:
            PipelineError: No provisioned project to summarize.
        """
        self._require_summary_inputs()
        return await self._summarize(template=template, state=SummaryState.REGENERATING)

    def _require_summary_inputs(self) -> None:
        if self._summary_inputs is None:
            raise PipelineError(
                code=ErrorCode.WORKFLOW_FAILED,
                message="No completed estimate to summarize",
                stage=WorkflowStage.SUMMARY.value,
            )

    async def _summarize(self, template: Optional[str], state: SummaryState) -> str:
        inputs = self._summary_inputs
        self.summary_state = state
        try:
            summary = await self.summary.generate_summary(
                client_name=inputs.client_name,
                project_name=inputs.project_name,
                pairs=inputs.pairs,
                services=inputs.services,
                template=template,
            )
        except AIGenerationError as e:
            logger.error("summary_generation_failed", error=e.message, code=e.code)
            self.summary_state = SummaryState.FAILED
            summary = SUMMARY_UNAVAILABLE
        else:
            self.summary_state = SummaryState.GENERATED

        self.result.executive_summary = summary
        self.result.summary_state = self.summary_state
        return summary
