"""Document pipeline for the estimate workflow.

Generates the statement of work (SOW) for a project and waits for it:

1. Pick the first active document template
2. Request generation (forced regeneration, PDF output)
3. Poll the project's documents until the first one is finished with a URL

Polling is bounded twice: a maximum number of attempts, and a wall-clock
budget around the whole pipeline. A "finished" status is authoritative and
must come with a document URL.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

import structlog

from config.settings import settings
from config.errors import ErrorCode, PipelineError, WorkflowTimeoutError
from models.scopestack import DocumentStatus, DocumentTemplate, ProjectDocument
from services.scopestack_client import ScopeStackClient, resource_ref

logger = structlog.get_logger(__name__)

STAGE = "document"
DOCUMENT_TYPE_SOW = "sow"

FAILED_STATUSES = {DocumentStatus.FAILED.value, DocumentStatus.ERROR.value}


@dataclass
class DocumentOutcome:
    """A generated, downloadable project document."""
    document_id: str
    document_url: str
    template_id: str


class DocumentPipeline:
    """Template discovery, generation and readiness polling."""

    def __init__(
        self,
        api: ScopeStackClient,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize DocumentPipeline.

        Args:
            api: ScopeStack client.
            max_attempts: Document polls before giving up (default 10).
            delay: Seconds between polls (default 1).
            timeout: Wall-clock budget for the whole pipeline (default 300).
        """
        self.api = api
        self.max_attempts = max_attempts or settings.document_max_poll_attempts
        self.delay = settings.document_poll_delay_seconds if delay is None else delay
        self.timeout = timeout or settings.document_timeout_seconds

    async def list_templates(self) -> List[DocumentTemplate]:
        """Active document templates for the account."""
        result = await self.api.list_all(
            "/v1/document-templates",
            stage=STAGE,
            params={"filter[active]": "true"},
        )
        templates = [DocumentTemplate.from_resource(item) for item in result["data"]]
        return [t for t in templates if t.active]

    async def select_template(self) -> DocumentTemplate:
        """First active template.

        Raises:
            PipelineError: No active template exists.
        """
        templates = await self.list_templates()
        if not templates:
            raise PipelineError(
                code=ErrorCode.NO_DOCUMENT_TEMPLATES,
                message="No active document templates are available",
                stage=STAGE,
            )
        return templates[0]

    async def create_document(self, project_id: str, template_id: str) -> ProjectDocument:
        """Request SOW generation for the project.

        Raises:
            PipelineError: The API accepted the request but returned no document id.
        """
        payload = {
            "data": {
                "type": "project-documents",
                "attributes": {
                    "template-id": str(template_id),
                    "document-type": DOCUMENT_TYPE_SOW,
                    "force-regeneration": True,
                    "generate-pdf": True,
                },
                "relationships": {
                    "project": resource_ref("projects", project_id),
                },
            }
        }
        data = await self.api.post("/v1/project-documents", payload, stage=STAGE)
        if not data or not data.get("id"):
            raise PipelineError(
                code=ErrorCode.DOCUMENT_CREATE_FAILED,
                message="Document creation failed - no document ID received",
                stage=STAGE,
                details={"project_id": project_id},
            )
        document = ProjectDocument.from_resource(data)
        logger.info("document_generation_started", project_id=project_id, document_id=document.id)
        return document

    async def get_project_documents(self, project_id: str) -> List[ProjectDocument]:
        """Documents currently attached to the project."""
        data = await self.api.get(
            "/v1/project-documents",
            stage=STAGE,
            params={"filter[project]": str(project_id), "include": "project"},
        )
        return [ProjectDocument.from_resource(item) for item in data or []]

    async def poll_until_ready(
        self,
        project_id: str,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> ProjectDocument:
        """Poll the project's first document until it is finished.

        Raises:
            PipelineError: Document failed, or finished without a URL.
            WorkflowTimeoutError: Not finished after max_attempts polls.
        """
        max_attempts = max_attempts or self.max_attempts
        delay = self.delay if delay is None else delay

        for attempt in range(1, max_attempts + 1):
            documents = await self.get_project_documents(project_id)
            document = documents[0] if documents else None
            status = document.status if document else None
            logger.debug("document_status_polled", project_id=project_id, attempt=attempt, status=status)

            if document is not None:
                if status == DocumentStatus.FINISHED.value:
                    if not document.document_url:
                        raise PipelineError(
                            code=ErrorCode.DOCUMENT_URL_MISSING,
                            message=f"Document {document.id} finished without a document URL",
                            stage=STAGE,
                            details={"document_id": document.id},
                        )
                    logger.info("document_ready", project_id=project_id, document_id=document.id)
                    return document
                if status in FAILED_STATUSES:
                    raise PipelineError(
                        code=ErrorCode.DOCUMENT_FAILED,
                        message=f"Document {document.id} generation reported '{status}'",
                        stage=STAGE,
                        details={"document_id": document.id},
                    )

            if attempt < max_attempts:
                await asyncio.sleep(delay)

        raise WorkflowTimeoutError(
            code=ErrorCode.DOCUMENT_TIMEOUT,
            message=f"Document not ready after {max_attempts} attempts",
            stage=STAGE,
            details={"project_id": project_id, "attempts": max_attempts},
        )

    async def _generate(self, project_id: str) -> DocumentOutcome:
        template = await self.select_template()
        created = await self.create_document(project_id, template.id)
        ready = await self.poll_until_ready(project_id)
        return DocumentOutcome(
            document_id=ready.id or created.id,
            document_url=ready.document_url,
            template_id=template.id,
        )

    async def run(self, project_id: str) -> DocumentOutcome:
        """Generate the SOW within the wall-clock budget.

        Raises:
            WorkflowTimeoutError: Polls exhausted or budget elapsed.
            PipelineError: No templates, creation or generation failure.
            RemoteError: Any API failure.
        """
        try:
            return await asyncio.wait_for(self._generate(project_id), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise WorkflowTimeoutError(
                code=ErrorCode.DOCUMENT_TIMEOUT,
                message=f"Document generation timed out after {self.timeout:.0f}s",
                stage=STAGE,
                details={"project_id": project_id, "timeout_seconds": self.timeout},
            ) from e
