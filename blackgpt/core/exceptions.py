"""
Error taxonomy for the signal lifecycle.

Every error surfaced to HTTP callers carries a stable category and a status
code; the API layer renders them uniformly.
"""
from typing import Optional


class BlackGPTError(Exception):
    """Base class for errors surfaced to callers."""

    category = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BlackGPTError):
    """Malformed or disallowed input. Never retried automatically."""

    category = "validation_error"
    status_code = 400


class InvalidActionError(ValidationError):
    """Verification action outside accept/reject/followup."""

    category = "invalid_action"


class NotFoundError(BlackGPTError):
    category = "not_found"
    status_code = 404


class ConflictError(BlackGPTError):
    """A correlation job is already in progress for the signal."""

    category = "conflict"
    status_code = 409


class InvalidTransitionError(ConflictError):
    """The signal's current status does not allow the requested transition."""

    category = "invalid_transition"


class CorrelationError(BlackGPTError):
    """Correlation failed; the job has been recorded as FAILED."""

    category = "correlation_failed"
    status_code = 502

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


class PersistenceError(BlackGPTError):
    """The durable store is unavailable or a write failed."""

    category = "persistence_error"
    status_code = 503


class ConnectorError(Exception):
    """
    A single public-source query failed.
    Internal only: connectors convert it into a zero-confidence result.
    """

    def __init__(self, source_name: str, message: str):
        super().__init__(f"{source_name}: {message}")
        self.source_name = source_name
