"""Error taxonomy shared by the coordinator core and the HTTP layer."""

from __future__ import annotations


class CoordinatorError(Exception):
    """Base class for failures surfaced to callers.

    ``status_code`` is the HTTP status the API layer renders; ``retryable``
    tells clients whether backing off and trying again can succeed.
    """

    status_code = 500
    retryable = False
    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"detail": self.message, "error": self.kind, "retryable": self.retryable}


class ValidationError(CoordinatorError):
    status_code = 400
    kind = "validation_error"


class Unauthenticated(CoordinatorError):
    status_code = 401
    kind = "unauthenticated"


class Forbidden(CoordinatorError):
    status_code = 403
    kind = "forbidden"


class NotFound(CoordinatorError):
    status_code = 404
    kind = "not_found"


class NotAssigned(CoordinatorError):
    status_code = 403
    kind = "not_assigned"


class Conflict(CoordinatorError):
    status_code = 409
    retryable = True
    kind = "conflict"


class StoreUnavailable(CoordinatorError):
    status_code = 503
    retryable = True
    kind = "store_unavailable"
