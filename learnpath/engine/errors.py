"""
Error taxonomy for the progression and grading engine.

Configuration problems and persistence failures are exceptions. Access
decisions are not: they come back as ``AccessDecision`` / ``AttemptDecision``
values carrying a ``ReasonCode``.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    CONFIG_CYCLE = "CONFIG_CYCLE"
    CONFIG_INVALID_PREREQUISITE = "CONFIG_INVALID_PREREQUISITE"
    CONFIG_INVALID_QUESTION = "CONFIG_INVALID_QUESTION"
    CONFIG_INVALID_MODULE = "CONFIG_INVALID_MODULE"
    COURSE_NOT_PUBLISHABLE = "COURSE_NOT_PUBLISHABLE"
    # a per-question status, never raised
    REQUIRES_MANUAL_GRADING = "REQUIRES_MANUAL_GRADING"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    SAVE_CONFLICT = "SAVE_CONFLICT"
    ATTEMPT_IMMUTABLE = "ATTEMPT_IMMUTABLE"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


class ReasonCode(str, Enum):
    UNENROLLED = "UNENROLLED"
    ENROLLMENT_INACTIVE = "ENROLLMENT_INACTIVE"
    COURSE_UNAVAILABLE = "COURSE_UNAVAILABLE"
    MODULE_LOCKED = "MODULE_LOCKED"
    PREREQUISITE_INCOMPLETE = "PREREQUISITE_INCOMPLETE"
    UNLOCK_PENDING = "UNLOCK_PENDING"
    ALREADY_PASSED = "ALREADY_PASSED"
    ATTEMPTS_EXHAUSTED = "ATTEMPTS_EXHAUSTED"
    PRACTICE_UNAVAILABLE = "PRACTICE_UNAVAILABLE"
    ROLE_NOT_PERMITTED = "ROLE_NOT_PERMITTED"


class LearnPathError(Exception):
    """Base exception; carries what the HTTP layer needs to render it."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(LearnPathError):
    """Authored content is inconsistent (cycles, questions without a key...)."""

    status_code = 422

    def __init__(self, kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None):
        self.kind = kind
        super().__init__(message, code=kind.value, details=details)


class PersistenceFailure(LearnPathError):
    status_code = 500

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE,
                 details: Optional[Dict[str, Any]] = None):
        self.kind = kind
        super().__init__(message, code=kind.value, details=details)


class RecordNotFound(PersistenceFailure):
    status_code = 404

    def __init__(self, entity: str, record_id):
        super().__init__(
            f"{entity} {record_id} not found",
            kind=ErrorKind.RECORD_NOT_FOUND,
            details={"entity": entity, "id": str(record_id)},
        )


class SaveConflict(PersistenceFailure):
    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, kind=ErrorKind.SAVE_CONFLICT, details=details)


class AttemptImmutable(PersistenceFailure):
    status_code = 409

    def __init__(self, attempt_id):
        super().__init__(
            f"quiz attempt {attempt_id} is already completed",
            kind=ErrorKind.ATTEMPT_IMMUTABLE,
            details={"attempt_id": str(attempt_id)},
        )
