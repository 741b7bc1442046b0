"""
errors.py – typed failures raised by the attempt engine.

Each class carries the HTTP status and machine-readable code it maps to, so
the web layer can render any of them with a single exception handler.  The
service code never builds HTTP responses itself.
"""

from typing import Any, Optional


class AttemptError(Exception):
    """Base class for every caller-visible attempt failure."""

    status_code: int = 400
    code: str = "ATTEMPT_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class InvalidIdError(AttemptError):
    code = "INVALID_ID"

    def __init__(self, field: str, value: Any = None):
        super().__init__(f"Invalid {field}.", {"field": field, "value": value})


class NotFoundError(AttemptError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found."
        details = {"id": identifier} if identifier is not None else None
        super().__init__(message, details)


class EmptyPaperError(AttemptError):
    code = "EMPTY_PAPER"

    def __init__(self, paper_id: str):
        super().__init__("Paper has no questions.", {"paper_id": paper_id})


class ForbiddenError(AttemptError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden."):
        super().__init__(message)


class ConflictError(AttemptError):
    """An in-progress attempt already exists; the caller should resume it."""

    status_code = 409
    code = "ATTEMPT_IN_PROGRESS"

    def __init__(self, paper_id: str, attempt_id: Optional[str] = None):
        details = {"paper_id": paper_id}
        if attempt_id:
            details["attempt_id"] = attempt_id
        super().__init__("An attempt for this paper is already in progress.", details)


class InvalidStateError(AttemptError):
    code = "INVALID_STATE"

    def __init__(self, message: str = "Attempt is not in progress."):
        super().__init__(message)


class InvalidReferenceError(AttemptError):
    code = "INVALID_REFERENCE"

    def __init__(self, question_id: str):
        super().__init__(
            "Question does not belong to this attempt.", {"question_id": question_id}
        )


class OutOfRangeError(AttemptError):
    code = "OUT_OF_RANGE"

    def __init__(self, selected_index: int, option_count: int):
        super().__init__(
            f"selected_index must be between 0 and {option_count - 1}.",
            {"selected_index": selected_index, "option_count": option_count},
        )


class TimeLimitExceededError(AttemptError):
    """Raised after the forfeited attempt has already been persisted."""

    code = "TIME_LIMIT_EXCEEDED"

    def __init__(self, attempt_id: str, duration_sec: int, time_limit_sec: int):
        super().__init__(
            "Time limit exceeded; attempt submitted with score 0.",
            {
                "attempt_id":     attempt_id,
                "score":          0,
                "duration_sec":   duration_sec,
                "time_limit_sec": time_limit_sec,
            },
        )
