"""Estimator error handling.

Custom exceptions and error codes for the estimate provisioning workflow.
"""

from typing import Optional, Dict, Any


# Error Codes
class ErrorCode:
    """Error code constants."""

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"

    # Remote API Errors
    REMOTE_ERROR = "REMOTE_ERROR"
    REMOTE_CONNECTION_ERROR = "REMOTE_CONNECTION_ERROR"
    AUTH_REFRESH_FAILED = "AUTH_REFRESH_FAILED"

    # Timeouts
    SURVEY_TIMEOUT = "SURVEY_TIMEOUT"
    DOCUMENT_TIMEOUT = "DOCUMENT_TIMEOUT"

    # Pipeline Errors
    SURVEY_CALCULATION_FAILED = "SURVEY_CALCULATION_FAILED"
    NO_DOCUMENT_TEMPLATES = "NO_DOCUMENT_TEMPLATES"
    DOCUMENT_CREATE_FAILED = "DOCUMENT_CREATE_FAILED"
    DOCUMENT_FAILED = "DOCUMENT_FAILED"
    DOCUMENT_URL_MISSING = "DOCUMENT_URL_MISSING"
    WORKFLOW_ALREADY_RUNNING = "WORKFLOW_ALREADY_RUNNING"
    WORKFLOW_FAILED = "WORKFLOW_FAILED"

    # AI Errors
    AI_GENERATION_ERROR = "AI_GENERATION_ERROR"
    AI_MALFORMED_RESPONSE = "AI_MALFORMED_RESPONSE"

    # Data Integrity Errors
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"


class EstimatorError(Exception):
    """Base exception for estimator errors.

    Provides structured error information for API responses.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response.

        Returns:
            Dictionary with code, message, and details.
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(EstimatorError):
    """Pre-flight form validation error. No remote call has been made."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )
        self.field = field


class RemoteError(EstimatorError):
    """Non-success response (or transport failure) from the resource API."""

    def __init__(
        self,
        message: str,
        stage: str,
        status_code: Optional[int] = None,
        body: Any = None,
        code: str = ErrorCode.REMOTE_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            details={"stage": stage, "status_code": status_code, "body": body}
        )
        self.stage = stage
        self.status_code = status_code
        self.body = body


class WorkflowTimeoutError(EstimatorError):
    """Bounded polling or a wall-clock budget was exhausted."""

    def __init__(
        self,
        code: str,
        message: str,
        stage: str,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "stage": stage}
        )
        self.stage = stage


class AIGenerationError(EstimatorError):
    """AI completion failed or returned no candidate text."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCode.AI_GENERATION_ERROR,
        details: Optional[Dict] = None
    ):
        super().__init__(code=code, message=message, details=details)


class DataIntegrityError(EstimatorError):
    """An answer references a question that is not in the active question set."""

    def __init__(self, message: str, slug: str, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.DATA_INTEGRITY_ERROR,
            message=message,
            details={**(details or {}), "slug": slug}
        )
        self.slug = slug


class PipelineError(EstimatorError):
    """Workflow-stage failure that is not an HTTP error."""

    def __init__(
        self,
        code: str,
        message: str,
        stage: Optional[str] = None,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "stage": stage}
        )
        self.stage = stage
