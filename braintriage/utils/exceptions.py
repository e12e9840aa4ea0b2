"""
Triage Exception Hierarchy

Each error carries an HTTP status so the API layer can turn it into an
``{"error": ...}`` response without knowing which stage raised it.
"""
from typing import Optional, Dict, Any


class TriageServiceError(Exception):
    """Base exception for all triage service errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the API error body."""
        return {"error": self.message}


class InvalidRequest(TriageServiceError):
    """Missing patient reference or image references."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code="INVALID_REQUEST",
            status_code=400,
            details=details
        )


class ClassificationUnavailable(TriageServiceError):
    """Classifier unreachable or still malformed after the retry.

    Recovered inside the classifier client; never reaches the caller.
    """

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="CLASSIFICATION_UNAVAILABLE",
            status_code=502,
            details={"attempts": attempts, **(details or {})}
        )
        self.attempts = attempts


class ClassificationParseError(ValueError):
    """Classifier reply is not valid classification JSON."""


class ArtifactGenerationFailed(TriageServiceError):
    """Overlay generation failed; the prediction is stored without it."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code="ARTIFACT_GENERATION_FAILED",
            status_code=502,
            details=details
        )


class PersistenceError(TriageServiceError):
    """Unknown patient reference or failed storage write."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="PERSISTENCE_ERROR",
            status_code=status_code,
            details=details
        )


class NotFoundError(TriageServiceError):
    """Requested record does not exist."""

    def __init__(self, message: str, resource: str = "unknown"):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource}
        )
        self.resource = resource


class DuplicateCaseError(TriageServiceError):
    """A patient with the same case ID already exists."""

    def __init__(self, case_id: str):
        super().__init__(
            message=f"Case ID already exists: {case_id}",
            code="DUPLICATE_CASE",
            status_code=409,
            details={"case_id": case_id}
        )
        self.case_id = case_id
