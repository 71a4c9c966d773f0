# app/core/errors.py
"""
Domain errors raised by the workshop services.

Every error carries a stable machine-readable code, a message that is safe to
show to the end user and the HTTP status the API layer answers with. Services
raise these; the exception handler registered in app.main turns them into
JSON responses of the shape {"code": ..., "message": ...}.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    VALIDATION = "validation"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    CONFLICT = "conflict"
    EXTERNAL_PROCESSOR_FAILURE = "external_processor_failure"
    NOT_FOUND = "not_found"
    NOT_ELIGIBLE = "not_eligible"
    ONBOARDING_REQUIRED = "onboarding_required"


class WorkshopError(Exception):
    """Base class for all workshop domain errors."""

    code: ErrorCode = ErrorCode.VALIDATION
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(WorkshopError):
    code = ErrorCode.VALIDATION
    status_code = 422


class OnboardingRequiredError(ValidationError):
    """Check-in attempted without insurance confirmation on file."""

    code = ErrorCode.ONBOARDING_REQUIRED


class CapacityExceededError(WorkshopError):
    code = ErrorCode.CAPACITY_EXCEEDED
    status_code = 409


class ConflictError(WorkshopError):
    code = ErrorCode.CONFLICT
    status_code = 409


class ExternalProcessorError(WorkshopError):
    code = ErrorCode.EXTERNAL_PROCESSOR_FAILURE
    status_code = 502

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.retryable = retryable
        super().__init__(message, details)


class NotFoundError(WorkshopError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class NotEligibleError(WorkshopError):
    code = ErrorCode.NOT_ELIGIBLE
    status_code = 422
