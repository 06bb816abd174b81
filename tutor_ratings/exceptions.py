"""Error taxonomy for rating operations.

Every error carries a human-readable ``message`` and the HTTP status the
API layer reports it with. The facade raises these; ``main`` registers a
single handler that turns them into ``{"status": "error", "message": ...}``.
"""
from typing import Optional


class RatingError(Exception):
    """Base class for rating operation failures."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(RatingError):
    """Referenced match or rating does not exist."""

    status_code = 404


class Conflict(RatingError):
    """A rating already exists for the same match, author and role."""

    status_code = 409


class InvalidInput(RatingError):
    """Out-of-range score, oversized text or unknown user type."""

    status_code = 400


class DependencyWriteFailure(RatingError):
    """Propagation to the match or tutor profile failed after the rating was written.

    The rating itself stays persisted; ``rating_id`` identifies it so the
    caller can retry the whole operation.
    """

    status_code = 500

    def __init__(self, message: str, rating_id: Optional[str] = None):
        super().__init__(message)
        self.rating_id = rating_id
