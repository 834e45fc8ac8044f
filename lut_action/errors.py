"""Error taxonomy shared by the API layer and the job pipeline.

Every error carries a stable ``code`` for clients and operators, a
``retryable`` hint, and optional structured ``details``. The API layer maps
them to HTTP responses; the job pipeline records them on the JobRecord.
"""

from typing import Any, Dict, List, Optional


class LUTActionError(Exception):
    """Base exception for all service failures."""

    code = "LUT_ACTION_ERROR"
    status_code = 500
    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


# Validation: bad input, never retried

class ValidationError(LUTActionError):
    code = "VALIDATION_ERROR"
    status_code = 400


class LUTValidationError(ValidationError):
    """A LUT file failed parsing or validation."""

    code = "INVALID_LUT"

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(
            f"Invalid LUT file: {', '.join(self.errors)}",
            details={"errors": self.errors, "warnings": self.warnings},
        )


class PayloadValidationError(ValidationError):
    """A trigger payload or request body is malformed."""

    code = "INVALID_PAYLOAD"


# Authenticity: rejected at the boundary, no job is created

class AuthenticityError(LUTActionError):
    code = "INVALID_SIGNATURE"
    status_code = 401

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


# Job-path failures

class TransientTransportError(LUTActionError):
    """Network or process-spawn failure. The caller may retry the job."""

    code = "TRANSPORT_ERROR"
    status_code = 502
    retryable = True


class RemoteStoreError(TransientTransportError):
    """A call to the remote asset store failed."""

    code = "REMOTE_STORE_ERROR"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status = status
        retryable = status is None or status == 429 or status >= 500
        super().__init__(
            message,
            details={**(details or {}), "status": status},
            retryable=retryable,
        )


class ProcessingError(LUTActionError):
    """The transform itself failed (bad exit code, unreadable media)."""

    code = "PROCESSING_ERROR"
    status_code = 422


class ResourceLimitError(LUTActionError):
    """A capacity limit was hit: asset too large or transcode too slow."""

    code = "RESOURCE_LIMIT"
    status_code = 413


class NotFoundError(LUTActionError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidStateTransitionError(LUTActionError):
    """Raised when a job is moved along an edge the state machine forbids."""

    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Invalid job state transition for {job_id}: {current} -> {target}")
