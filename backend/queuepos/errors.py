# Overview: Typed, user-presentable failures raised by the queue services.

"""
Queue error taxonomy.

Every failure carries a human-readable message plus a `details` dict that
routes return verbatim, so callers can correct and resubmit. None of these
are retried by the services themselves.
"""


class QueueError(Exception):
    """Base class for queue workflow failures."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "details": self.details}


class ValidationError(QueueError):
    """Malformed or empty input, rejected before any write."""
    status_code = 400


class AuthorizationError(QueueError):
    """Actor lacks the capability for the requested operation."""
    status_code = 403


class NotFoundError(QueueError):
    """Token, shop or product does not exist or is outside the actor's shop scope."""
    status_code = 404


class CapacityConflict(QueueError):
    """Requested quantity exceeds what is available at acceptance time."""
    status_code = 409


class IllegalTransition(QueueError):
    """Requested status is not the profile's next step, or the token is frozen."""
    status_code = 409


class QueueDisabledError(QueueError):
    """The shop has the queue token feature switched off."""
    status_code = 409
