"""
Error taxonomy shared by the grading services and the HTTP layer.
"""
from typing import Iterable, List, Optional


class GradebookError(Exception):
    """Base class for every error raised by the grading core."""

    status_code = 400
    error_type = "gradebook_error"

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors: List[str] = list(errors) if errors else [message]

    def to_dict(self) -> dict:
        return {"message": self.message, "type": self.error_type, "errors": self.errors}


class ValidationError(GradebookError):
    """Input rejected before anything was persisted."""

    status_code = 422
    error_type = "validation_error"


class NotFoundError(GradebookError):
    status_code = 404
    error_type = "not_found"


class ConflictError(GradebookError):
    """Another redistribution holds or has changed the assignment's weights."""

    status_code = 409
    error_type = "conflict"


class GradingError(GradebookError):
    """Describes a malformed answer payload found while grading one attempt.

    Grading never raises it; the offending questions earn 0. It is logged as a
    warning, and re-grades report the attempt id in flagged_attempts.
    """

    error_type = "grading_error"

    def __init__(self, attempt_id: int, question_ids: Iterable[int], detail: str = "malformed answer payload"):
        self.attempt_id = attempt_id
        self.question_ids = sorted(set(question_ids))
        super().__init__(f"attempt {attempt_id}: {detail} for questions {self.question_ids}")
