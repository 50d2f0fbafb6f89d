"""Workflow models for the estimate provisioning run.

Pydantic models for the submitted form, the pre-filled form context, and
the in-flight/final state of one workflow run.
"""

from enum import Enum
from typing import Dict, Any, Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, field_serializer, field_validator

from models.scopestack import (
    Client,
    CurrentUser,
    NamedDefault,
    Pricing,
    ProjectService,
    Questionnaire,
)


class WorkflowStage(str, Enum):
    """Stages of the provisioning workflow, in execution order."""

    VALIDATE = "validate"
    CLIENT = "client"
    PROJECT = "project"
    CONTACT = "contact"
    SURVEY = "survey"
    DOCUMENT = "document"
    PRICING = "pricing"
    SERVICES = "services"
    SUMMARY = "summary"


class SummaryState(str, Enum):
    """Executive summary lifecycle for one submission."""

    NOT_GENERATED = "not_generated"
    GENERATED = "generated"
    REGENERATING = "regenerating"
    FAILED = "failed"


class ContactMode(str, Enum):
    """How contact fields are being filled."""

    NEW = "new"
    AUTO = "auto"
    CHOOSE = "choose"
    SELECTED = "selected"


class ContactFields(BaseModel):
    """The four contact inputs on the form."""

    name: str = ""
    email: str = ""
    phone: str = ""
    title: str = ""

    def is_empty(self) -> bool:
        return not any((self.name, self.email, self.phone, self.title))


class EstimateRequest(BaseModel):
    """Values collected by the estimate form on submit."""

    project_name: str = Field(default="", alias="projectName")
    client_name: str = Field(default="", alias="clientName")
    selected_client: Optional[Client] = Field(default=None, alias="selectedClient")
    msa_date: Optional[str] = Field(default=None, alias="msaDate")
    contact: ContactFields = Field(default_factory=ContactFields)
    questionnaire_id: Optional[str] = Field(default=None, alias="questionnaireId")
    answers: Dict[str, Any] = Field(default_factory=dict)
    account_id: Optional[str] = Field(default=None, alias="accountId")
    account_slug: Optional[str] = Field(default=None, alias="accountSlug")
    rate_table_id: Optional[str] = Field(default=None, alias="rateTableId")
    payment_term_id: Optional[str] = Field(default=None, alias="paymentTermId")
    sales_executive_id: Optional[str] = Field(default=None, alias="salesExecutiveId")

    class Config:
        populate_by_name = True

    @field_validator(
        "questionnaire_id",
        "account_id",
        "rate_table_id",
        "payment_term_id",
        "sales_executive_id",
        mode="before",
    )
    @classmethod
    def _id_as_string(cls, value: Any) -> Any:
        """Ids may arrive as JSON numbers; the API takes them as strings."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class FormContext(BaseModel):
    """Data loaded once to pre-fill the form."""

    current_user: CurrentUser = Field(alias="currentUser")
    questionnaires: List[Questionnaire] = Field(default_factory=list)
    rate_table: Optional[NamedDefault] = Field(default=None, alias="rateTable")
    payment_term: Optional[NamedDefault] = Field(default=None, alias="paymentTerm")

    class Config:
        populate_by_name = True

    @field_serializer("questionnaires", mode="wrap")
    def _without_deleted_questions(self, questionnaires: List[Questionnaire], handler):
        # Deleted questions are never sent to the form
        return handler([
            q.model_copy(update={"questions": q.active_questions()})
            for q in questionnaires
        ])


class EstimateResult(BaseModel):
    """Outcome of one workflow run, surfaced to the form."""

    success: bool = False
    status_message: str = Field(default="", alias="statusMessage")
    failed_stage: Optional[str] = Field(default=None, alias="failedStage")
    completed_stages: List[str] = Field(default_factory=list, alias="completedStages")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    project_id: Optional[str] = Field(default=None, alias="projectId")
    survey_id: Optional[str] = Field(default=None, alias="surveyId")
    document_id: Optional[str] = Field(default=None, alias="documentId")
    document_url: Optional[str] = Field(default=None, alias="documentUrl")
    pricing: Optional[Pricing] = None
    services: List[ProjectService] = Field(default_factory=list)
    executive_summary: Optional[str] = Field(default=None, alias="executiveSummary")
    summary_state: SummaryState = Field(default=SummaryState.NOT_GENERATED, alias="summaryState")
    error: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = Field(default=None, alias="startedAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")

    class Config:
        populate_by_name = True
        use_enum_values = True
