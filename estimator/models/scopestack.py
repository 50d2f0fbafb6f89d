"""ScopeStack resource models.

Pydantic models for the JSON:API resources the estimate workflow reads and
creates. Attribute aliases follow the API's kebab-case names; every model
can be built from a raw resource object (`{"id", "type", "attributes",
"relationships"}`) with `from_resource`.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


def _attributes(resource: Dict[str, Any]) -> Dict[str, Any]:
    return resource.get("attributes") or {}


def _related_ids(resource: Dict[str, Any], name: str) -> List[str]:
    """Ids referenced by a to-many (or to-one) relationship."""
    data = ((resource.get("relationships") or {}).get(name) or {}).get("data")
    if data is None:
        return []
    if isinstance(data, dict):
        data = [data]
    return [str(item["id"]) for item in data if item.get("id") is not None]


class SurveyStatus(str, Enum):
    """Calculation status reported on a survey."""

    CALCULATING = "calculating"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentStatus(str, Enum):
    """Generation status reported on a project document."""

    PENDING = "pending"
    FINISHED = "finished"
    FAILED = "failed"
    ERROR = "error"


class ValueType(str, Enum):
    """Input type of a questionnaire question."""

    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"


class CurrentUser(BaseModel):
    """Identity of the token holder (`/v1/me`)."""

    account_id: str = Field(alias="account-id")
    account_slug: str = Field(alias="account-slug")
    name: str = ""

    class Config:
        populate_by_name = True

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "CurrentUser":
        attrs = _attributes(resource)
        return cls(
            account_id=str(attrs.get("account-id")),
            account_slug=attrs.get("account-slug") or "",
            name=attrs.get("name") or "",
        )


class Contact(BaseModel):
    """A client contact."""

    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    title: str = ""

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "Contact":
        attrs = _attributes(resource)
        return cls(
            id=str(resource["id"]),
            name=attrs.get("name") or "",
            email=attrs.get("email") or "",
            phone=attrs.get("phone") or "",
            title=attrs.get("title") or "",
        )


class Client(BaseModel):
    """A customer account in ScopeStack."""

    id: str
    name: str
    msa_date: Optional[str] = Field(default=None, alias="msa-date")
    contacts: List[Contact] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @classmethod
    def from_resource(
        cls,
        resource: Dict[str, Any],
        included: Optional[List[Dict[str, Any]]] = None
    ) -> "Client":
        """Build a client, resolving its contacts from a compound document."""
        attrs = _attributes(resource)
        contact_ids = _related_ids(resource, "contacts")
        by_id = {
            str(item["id"]): item
            for item in included or []
            if item.get("type") == "contacts"
        }
        contacts = [Contact.from_resource(by_id[cid]) for cid in contact_ids if cid in by_id]
        return cls(
            id=str(resource["id"]),
            name=attrs.get("name") or "",
            msa_date=attrs.get("msa-date"),
            contacts=contacts,
        )


class SelectOption(BaseModel):
    """One choice of a select-type question."""

    key: str
    value: str


class Question(BaseModel):
    """A questionnaire question."""

    id: str
    slug: str
    question: str
    required: bool = False
    value_type: ValueType = Field(default=ValueType.TEXT, alias="value-type")
    select_options: List[SelectOption] = Field(default_factory=list, alias="select-options")
    position: Optional[int] = None
    deleted_at: Optional[str] = Field(default=None, alias="deleted-at")

    class Config:
        populate_by_name = True
        use_enum_values = True

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def from_attributes(cls, data: Dict[str, Any]) -> "Question":
        """Build from the nested question hash the questionnaire returns."""
        options = [
            SelectOption(key=str(opt.get("key", "")), value=str(opt.get("value", "")))
            for opt in data.get("select-options") or []
        ]
        value_type = data.get("value-type") or ValueType.TEXT.value
        if options:
            value_type = ValueType.SELECT.value
        elif value_type not in {vt.value for vt in ValueType}:
            value_type = ValueType.TEXT.value
        return cls(
            id=str(data["id"]),
            slug=data["slug"],
            question=data.get("question") or "",
            required=bool(data.get("required")),
            value_type=value_type,
            select_options=options,
            position=data.get("position"),
            deleted_at=data.get("deleted-at"),
        )


class Questionnaire(BaseModel):
    """A published questionnaire and its questions."""

    id: str
    name: str = ""
    questions: List[Question] = Field(default_factory=list)

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "Questionnaire":
        attrs = _attributes(resource)
        return cls(
            id=str(resource["id"]),
            name=attrs.get("name") or "",
            questions=[Question.from_attributes(q) for q in attrs.get("questions") or []],
        )

    def active_questions(self) -> List[Question]:
        """Questions eligible for rendering and submission, in presentation order."""
        return [q for q in self.questions if not q.is_deleted]


class SurveyResponse(BaseModel):
    """A (question-id, question-text, answer) triple submitted with a survey."""

    question_id: str = Field(alias="question-id")
    question: str
    answer: Any

    class Config:
        populate_by_name = True

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Survey(BaseModel):
    """A submitted survey."""

    id: str
    name: str = ""
    status: Optional[str] = None

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "Survey":
        attrs = _attributes(resource)
        return cls(
            id=str(resource["id"]),
            name=attrs.get("name") or "",
            status=attrs.get("status"),
        )


class Project(BaseModel):
    """A ScopeStack project (the estimate)."""

    id: str
    project_name: str = Field(alias="project-name")
    msa_date: Optional[str] = Field(default=None, alias="msa-date")

    class Config:
        populate_by_name = True

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "Project":
        attrs = _attributes(resource)
        return cls(
            id=str(resource["id"]),
            project_name=attrs.get("project-name") or "",
            msa_date=attrs.get("msa-date"),
        )


class DocumentTemplate(BaseModel):
    """A document template available to the account."""

    id: str
    name: str = ""
    active: bool = True

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "DocumentTemplate":
        attrs = _attributes(resource)
        return cls(
            id=str(resource["id"]),
            name=attrs.get("name") or "",
            active=attrs.get("active", True) is not False,
        )


class ProjectDocument(BaseModel):
    """A generated project document."""

    id: str
    status: Optional[str] = None
    document_url: Optional[str] = Field(default=None, alias="document-url")
    document_type: Optional[str] = Field(default=None, alias="document-type")

    class Config:
        populate_by_name = True

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "ProjectDocument":
        attrs = _attributes(resource)
        return cls(
            id=str(resource["id"]),
            status=attrs.get("status"),
            document_url=attrs.get("document-url") or None,
            document_type=attrs.get("document-type"),
        )


class ProjectService(BaseModel):
    """A service line item produced by applied recommendations."""

    id: str
    name: str = ""
    quantity: Optional[float] = None
    total_hours: Optional[float] = Field(default=None, alias="total-hours")
    description: str = Field(default="", alias="service-description")
    position: Optional[int] = None

    class Config:
        populate_by_name = True

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "ProjectService":
        attrs = _attributes(resource)
        return cls(
            id=str(resource["id"]),
            name=attrs.get("name") or "",
            quantity=attrs.get("quantity"),
            total_hours=attrs.get("total-hours"),
            description=attrs.get("service-description") or "",
            position=attrs.get("position"),
        )


class Pricing(BaseModel):
    """Snapshot of a project's contract financials.

    Values are passed through from the API unchanged; missing figures stay None.
    """

    revenue: Optional[Any] = None
    cost: Optional[Any] = None
    margin: Optional[Any] = None

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "Pricing":
        attrs = _attributes(resource)
        return cls(
            revenue=attrs.get("contract-revenue"),
            cost=attrs.get("contract-cost"),
            margin=attrs.get("contract-margin"),
        )


class SalesExecutive(BaseModel):
    """A sales executive that can own a project."""

    id: str
    name: str = ""
    email: str = ""

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "SalesExecutive":
        attrs = _attributes(resource)
        return cls(
            id=str(resource["id"]),
            name=attrs.get("name") or "",
            email=attrs.get("email") or "",
        )


class NamedDefault(BaseModel):
    """A rate table or payment term, flagged when it is the account default."""

    id: str
    name: str = ""
    default: bool = False

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "NamedDefault":
        attrs = _attributes(resource)
        return cls(
            id=str(resource["id"]),
            name=attrs.get("name") or "",
            default=attrs.get("default") is True,
        )
