"""Engine error taxonomy.

Every error carries a stable machine-readable `code` and the HTTP status the
gateway renders it with. Messages are safe to show to the caller; storage
details never go into them.
"""


class EngineError(Exception):
    """Base class for all errors surfaced by the engine."""

    code = "engine_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code.replace("_", " "))
        self.message = str(self)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class Unauthorized(EngineError):
    code = "unauthorized"
    status_code = 401


class Forbidden(EngineError):
    code = "forbidden"
    status_code = 403


class NotFound(EngineError):
    code = "not_found"
    status_code = 404


class BadRequest(EngineError):
    code = "bad_request"
    status_code = 400


class ValidationError(EngineError):
    code = "validation_error"
    status_code = 422


class InvalidTransition(EngineError):
    """State-machine guard failed; stored state is untouched."""

    code = "invalid_transition"
    status_code = 409


class ConflictError(EngineError):
    """Optimistic write lost a race; re-read and retry."""

    code = "conflict"
    status_code = 409
    retryable = True


class InternalError(EngineError):
    """Collaborator failure (storage unavailable, timeout)."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable
        if retryable:
            self.status_code = 503
