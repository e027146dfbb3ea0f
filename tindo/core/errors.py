"""
Tindo API - Error taxonomy

Each error carries the HTTP status it maps to and a stable machine-readable
code. Handlers in app.main render them as {"detail": ..., "code": ...}.
"""


class TindoError(Exception):
    status_code: int = 500
    code: str = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(TindoError):
    """Missing or malformed input the client can correct."""
    status_code = 400
    code = "validation_error"


class InvalidLocationError(ValidationError):
    code = "invalid_location"


class ForbiddenError(TindoError):
    """Authenticated, but not a party allowed to act on this order."""
    status_code = 403
    code = "forbidden"


class NotFoundError(TindoError):
    status_code = 404
    code = "not_found"


class InvalidTransitionError(TindoError):
    """The order is not in the state the transition starts from."""
    status_code = 409
    code = "invalid_transition"


class ConflictError(TindoError):
    """A compare-and-swap write lost the race. Expected, not exceptional."""
    status_code = 409
    code = "already_assigned"


class StorageError(TindoError):
    status_code = 500
    code = "storage_error"


class AuthError(TindoError):
    status_code = 401
    code = "unauthorized"
