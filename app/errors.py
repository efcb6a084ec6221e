"""Error taxonomy shared by operations, storage and routers.

Every error carries the HTTP status and machine-readable code it maps to.
The mapping to responses lives in ``app.main``.
"""

from __future__ import annotations

from typing import Optional


class DocumentServiceError(Exception):
    """Base class for all errors the service reports to clients."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message

    def to_dict(self) -> dict:
        return {"error": self.user_message, "code": self.code}


class ValidationError(DocumentServiceError):
    """Malformed options, out-of-range pages, impossible geometry."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthError(DocumentServiceError):
    """Wrong or missing password for an encrypted document."""

    status_code = 401
    code = "AUTH_ERROR"


class NotFoundError(DocumentServiceError):
    status_code = 404
    code = "NOT_FOUND"


class ProcessingTimeoutError(DocumentServiceError):
    status_code = 408
    code = "PROCESSING_TIMEOUT"


class ResourceTooLargeError(DocumentServiceError):
    status_code = 413
    code = "FILE_TOO_LARGE"


class UnsupportedTypeError(DocumentServiceError):
    status_code = 415
    code = "UNSUPPORTED_FILE_TYPE"


class CorruptFormatError(DocumentServiceError):
    """Input bytes could not be parsed as the declared format."""

    status_code = 422
    code = "CORRUPTED_FILE"


class RateLimitError(DocumentServiceError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, *, retry_after: int, user_message: Optional[str] = None):
        super().__init__(message, user_message=user_message)
        self.retry_after = retry_after


class StorageUnavailableError(DocumentServiceError):
    """The artifact store could not read or write."""

    status_code = 503
    code = "STORAGE_UNAVAILABLE"
