"""Error taxonomy shared by every service.

Routes translate these into HTTP status codes:
ValidationError -> 400, NotFoundError -> 404, ConflictError -> 409.
"""


class LeaseEngineError(Exception):
    """Base class for lease and payment engine errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LeaseEngineError, ValueError):
    """Bad input: rejected synchronously, never retried."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """Requested lease status change is not allowed from the current status."""


class NotFoundError(LeaseEngineError):
    """Unknown lease, unit or tenant reference."""

    status_code = 404


class ConflictError(LeaseEngineError):
    """Request collides with existing state (e.g. overlapping lease on a unit)."""

    status_code = 409


class DirectoryUnavailableError(LeaseEngineError):
    """Directory collaborator could not be reached."""

    status_code = 503


class GatewayError(LeaseEngineError):
    """Outbound payment gateway call failed."""

    status_code = 502
