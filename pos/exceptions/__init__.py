"""Custom exceptions for the POS application."""

class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class ValidationError(PosError):
    """Missing/invalid input detected before any write. Not retryable."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)

class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class UnauthorizedError(PosError):
    """Raised when the request has no valid tenant context."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 401)


# Client-side errors (edit sessions talking to the storage API)

class StorageAPIError(PosError):
    """A request to the Order Storage API failed (network or HTTP status)."""
    def __init__(self, message, status_code=502, method=None, url=None):
        super().__init__(message, status_code, {'method': method, 'url': url})
        self.method = method
        self.url = url

class PartialSaveError(PosError):
    """Some steps of a multi-step save completed before a later step failed.

    Completed steps are NOT rolled back; ``completed_steps`` lists them so the
    operator can be told exactly what was persisted.
    """
    def __init__(self, message, completed_steps=None, cause=None):
        super().__init__(message, 502, {'completed_steps': list(completed_steps or [])})
        self.completed_steps = list(completed_steps or [])
        self.cause = cause

class SaveCancelledError(PosError):
    """The save was cancelled between two network steps."""
    def __init__(self, message="Guardado cancelado", completed_steps=None):
        super().__init__(message, 499, {'completed_steps': list(completed_steps or [])})
        self.completed_steps = list(completed_steps or [])
