"""
Domain errors raised by the scheduling engine.

Every failure is a per-request error returned to the caller; the HTTP layer
(middleware/errors.py) renders them into the standard error envelope using
the status_code and code carried on each instance.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    """Base class for all scheduling domain errors."""

    status_code = 400
    default_code = "SCHEDULING_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        err: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            err["details"] = self.details
        return err


class ValidationError(SchedulingError):
    """Malformed payload: bad date, missing field, duplicate rank/date, out of bounds."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class ForbiddenError(SchedulingError):
    """Caller is not a circle member, not the leader, or not an active traveler."""

    status_code = 403
    default_code = "FORBIDDEN"


class StageGuardError(SchedulingError):
    """Action is illegal in the trip's current status or funnel phase."""

    status_code = 409
    default_code = "STAGE_BLOCKED"


class NotFoundError(SchedulingError):
    """Trip, window or transfer absent (or not visible to the caller)."""

    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(SchedulingError):
    """Mutation collides with existing state."""

    status_code = 409
    default_code = "CONFLICT"
