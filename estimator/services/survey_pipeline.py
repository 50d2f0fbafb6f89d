"""Survey pipeline for the estimate workflow.

Submits questionnaire answers as a survey, asks ScopeStack to calculate
recommendations, waits for the asynchronous calculation, then applies the
recommendations to the project (which creates its services).

State per survey: created -> calculating -> completed -> applied

The calculation wait polls on a fixed interval and is bounded by a maximum
attempt count; exhausting it raises WorkflowTimeoutError.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from config.settings import settings
from config.errors import (
    DataIntegrityError,
    ErrorCode,
    PipelineError,
    WorkflowTimeoutError,
)
from models.scopestack import Question, Survey, SurveyResponse, SurveyStatus
from services.scopestack_client import ScopeStackClient, resource_ref

logger = structlog.get_logger(__name__)

STAGE = "survey"


class SurveyPhase(str, Enum):
    """Where a survey is in the pipeline."""

    CREATED = "created"
    CALCULATING = "calculating"
    COMPLETED = "completed"
    APPLIED = "applied"


@dataclass
class SurveyOutcome:
    """Result of a full survey pipeline run."""
    survey_id: str
    final_status: Optional[str]
    applied: Any = None
    phases: List[str] = field(default_factory=list)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def build_survey_responses(
    questions: List[Question],
    answers: Dict[str, Any]
) -> List[SurveyResponse]:
    """Turn slug-keyed answers into survey response triples.

    Only active (non-deleted) questions are eligible. Responses follow the
    order the questions are presented in; blank answers are skipped.

    Raises:
        DataIntegrityError: An answer's slug is not an active question.
    """
    active = [q for q in questions if not q.is_deleted]
    active_slugs = {q.slug for q in active}

    for slug in answers:
        if slug not in active_slugs:
            raise DataIntegrityError(
                message=f"Answer references unknown or deleted question '{slug}'",
                slug=slug,
            )

    return [
        SurveyResponse(question_id=q.id, question=q.question, answer=answers[q.slug])
        for q in active
        if q.slug in answers and not _is_blank(answers[q.slug])
    ]


class SurveyPipeline:
    """Create -> calculate -> await -> apply for one survey."""

    def __init__(
        self,
        api: ScopeStackClient,
        poll_interval: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
    ):
        """Initialize SurveyPipeline.

        Args:
            api: ScopeStack client.
            poll_interval: Seconds between status checks (default 2).
            max_poll_attempts: Status checks before giving up.
        """
        self.api = api
        self.poll_interval = settings.survey_poll_interval_seconds if poll_interval is None else poll_interval
        self.max_poll_attempts = max_poll_attempts or settings.survey_max_poll_attempts
        self.phase: Optional[SurveyPhase] = None
        self.phases: List[str] = []

    def _enter(self, phase: SurveyPhase, survey_id: str) -> None:
        self.phase = phase
        self.phases.append(phase.value)
        logger.info("survey_phase", survey_id=survey_id, phase=phase.value)

    async def create(
        self,
        project_id: str,
        questionnaire_id: str,
        account_id: str,
        name: str,
        responses: List[SurveyResponse],
    ) -> Survey:
        """Submit the survey with every answered question."""
        payload = {
            "data": {
                "type": "surveys",
                "attributes": {
                    "name": f"{name} Survey",
                    "responses": [r.to_payload() for r in responses],
                },
                "relationships": {
                    "account": resource_ref("accounts", account_id),
                    "questionnaire": resource_ref("questionnaires", questionnaire_id),
                    "project": resource_ref("projects", project_id),
                },
            }
        }
        data = await self.api.post("/v1/surveys", payload, stage=STAGE)
        survey = Survey.from_resource(data)
        self._enter(SurveyPhase.CREATED, survey.id)
        return survey

    async def calculate(self, survey_id: str) -> Any:
        """Ask the server to calculate recommendations."""
        data = await self.api.put(f"/v1/surveys/{survey_id}/calculate", stage=STAGE)
        self._enter(SurveyPhase.CALCULATING, survey_id)
        return data

    async def check_status(self, survey_id: str) -> Optional[str]:
        """Current calculation status of the survey."""
        data = await self.api.get(f"/v1/surveys/{survey_id}", stage=STAGE)
        return ((data or {}).get("attributes") or {}).get("status")

    async def await_completion(self, survey_id: str) -> Optional[str]:
        """Poll until the survey leaves the calculating status.

        Returns:
            The first status that is not "calculating".

        Raises:
            PipelineError: The calculation reported "failed".
            WorkflowTimeoutError: Still calculating after max_poll_attempts.
        """
        for attempt in range(1, self.max_poll_attempts + 1):
            await asyncio.sleep(self.poll_interval)
            status = await self.check_status(survey_id)
            logger.debug("survey_status_polled", survey_id=survey_id, attempt=attempt, status=status)

            if status == SurveyStatus.CALCULATING.value:
                continue

            if status == SurveyStatus.FAILED.value:
                raise PipelineError(
                    code=ErrorCode.SURVEY_CALCULATION_FAILED,
                    message=f"Survey {survey_id} calculation failed",
                    stage=STAGE,
                    details={"survey_id": survey_id},
                )
            if status != SurveyStatus.COMPLETED.value:
                logger.warning("survey_unexpected_status", survey_id=survey_id, status=status)

            self._enter(SurveyPhase.COMPLETED, survey_id)
            return status

        raise WorkflowTimeoutError(
            code=ErrorCode.SURVEY_TIMEOUT,
            message=f"Survey {survey_id} still calculating after {self.max_poll_attempts} checks",
            stage=STAGE,
            details={"survey_id": survey_id, "attempts": self.max_poll_attempts},
        )

    async def fetch_recommendations(self, survey_id: str) -> List[Dict[str, Any]]:
        """Recommendations calculated for the survey."""
        data = await self.api.get(f"/v1/surveys/{survey_id}/recommendations", stage=STAGE)
        return data or []

    async def apply_recommendations(self, survey_id: str) -> Any:
        """Apply the calculated recommendations to the project."""
        data = await self.api.put(f"/v1/surveys/{survey_id}/apply", stage=STAGE)
        self._enter(SurveyPhase.APPLIED, survey_id)
        return data

    async def run(
        self,
        project_id: str,
        questionnaire_id: str,
        account_id: str,
        name: str,
        responses: List[SurveyResponse],
    ) -> SurveyOutcome:
        """Run the full survey pipeline. Errors propagate; nothing is rolled back."""
        survey = await self.create(project_id, questionnaire_id, account_id, name, responses)
        await self.calculate(survey.id)
        status = await self.await_completion(survey.id)
        applied = await self.apply_recommendations(survey.id)
        return SurveyOutcome(
            survey_id=survey.id,
            final_status=status,
            applied=applied,
            phases=list(self.phases),
        )
