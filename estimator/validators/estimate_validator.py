"""Pre-flight validation of the estimate form.

Runs before any remote call. A failed check never touches the API; the
first failing field is what the form highlights.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
import structlog

from config.settings import settings
from config.errors import ValidationError
from models.scopestack import Question
from models.workflow import EstimateRequest

logger = structlog.get_logger(__name__)


@dataclass
class FieldError:
    """One failed check, keyed by the form field name."""
    field: str
    message: str


@dataclass
class ValidationResult:
    """Result of estimate form validation."""
    is_valid: bool = True
    errors: List[FieldError] = field(default_factory=list)

    def add(self, field_name: str, message: str) -> None:
        self.is_valid = False
        self.errors.append(FieldError(field=field_name, message=message))

    def raise_for_errors(self) -> None:
        """Raise ValidationError for the first failed check."""
        if self.is_valid:
            return
        first = self.errors[0]
        raise ValidationError(
            message=first.message,
            field=first.field,
            details={"errors": [{"field": e.field, "message": e.message} for e in self.errors]},
        )


def parse_estimate_request(data: Dict[str, Any]) -> EstimateRequest:
    """Parse the submitted form body.

    Raises:
        ValidationError: The body does not match the form shape.
    """
    if not isinstance(data, dict):
        raise ValidationError(message="Estimate request must be a JSON object")
    try:
        return EstimateRequest.model_validate(data)
    except PydanticValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        first_field = str(e.errors()[0]["loc"][0]) if e.errors() else None
        raise ValidationError(
            message="Invalid estimate request",
            field=first_field,
            details={"errors": errors},
        ) from e


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_estimate_request(
    request: EstimateRequest,
    questions: Optional[Sequence[Question]] = None,
    require_sales_executive: Optional[bool] = None,
) -> ValidationResult:
    """Check the form values needed to provision a project.

    Args:
        request: Submitted form values.
        questions: Questions of the selected questionnaire; required,
            non-deleted questions must have an answer.
        require_sales_executive: Override of the settings flag.
    """
    if require_sales_executive is None:
        require_sales_executive = settings.require_sales_executive

    result = ValidationResult()

    if _blank(request.project_name):
        result.add("projectName", "Project name is required.")
    if request.selected_client is None and _blank(request.client_name):
        result.add("clientName", "Please select an existing client or enter a new client name.")
    if _blank(request.account_id):
        result.add("accountId", "Account information is missing. Please reload and try again.")
    if _blank(request.account_slug):
        result.add("accountSlug", "Account information is missing. Please reload and try again.")
    if _blank(request.rate_table_id):
        result.add("rateTableId", "No default rate table is configured for this account.")
    if _blank(request.payment_term_id):
        result.add("paymentTermId", "No default payment term is configured for this account.")
    if require_sales_executive and _blank(request.sales_executive_id):
        result.add("salesExecutiveId", "Please select a sales executive.")
    if _blank(request.questionnaire_id):
        result.add("questionnaireId", "Please select a questionnaire.")

    for question in questions or []:
        if question.is_deleted or not question.required:
            continue
        if _blank(request.answers.get(question.slug)):
            result.add(question.slug, f"An answer is required: {question.question}")

    if not result.is_valid:
        logger.info("estimate_validation_failed", fields=[e.field for e in result.errors])

    return result
