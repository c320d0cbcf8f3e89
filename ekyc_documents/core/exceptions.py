"""
Error taxonomy of the document pipeline.

Every error carries a stable `code` string and the HTTP status the API
layer answers with. ProcessingDegraded and VerificationUnavailable are
never surfaced to callers: they are raised and handled inside the
pipeline.
"""


class DocumentServiceError(Exception):
    """Base error: message + stable code."""

    http_status: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(DocumentServiceError):
    """Missing or malformed request fields."""
    http_status = 400
    default_code = "VALIDATION_ERROR"


class FileRejected(DocumentServiceError):
    """The upload validator refused the file (size, type, integrity, security)."""

    http_status = 400
    CODES = {
        "size": "FILE_SIZE_INVALID",
        "type": "FILE_TYPE_NOT_ALLOWED",
        "integrity": "FILE_INTEGRITY_ERROR",
        "security": "FILE_SECURITY_VIOLATION",
    }

    def __init__(self, kind: str, message: str):
        super().__init__(message, self.CODES.get(kind, "FILE_VALIDATION_ERROR"))
        self.kind = kind


class Unauthorized(DocumentServiceError):
    http_status = 401
    default_code = "UNAUTHORIZED"


class Forbidden(DocumentServiceError):
    http_status = 403
    default_code = "FORBIDDEN"


class NotFound(DocumentServiceError):
    """Unknown document id, or one owned by someone else."""
    http_status = 404
    default_code = "DOCUMENT_NOT_FOUND"


class StorageFailure(DocumentServiceError):
    """Object store unreachable, or a read/write failed."""
    http_status = 502
    default_code = "STORAGE_ERROR"


class ProcessingDegraded(DocumentServiceError):
    """Content processing failed; the original bytes are kept."""
    default_code = "PROCESSING_DEGRADED"


class VerificationUnavailable(DocumentServiceError):
    """No verification tier could produce a result."""
    default_code = "VERIFICATION_UNAVAILABLE"


class DuplicateDocument(DocumentServiceError):
    """A record with the same id or storage key already exists."""
    http_status = 409
    default_code = "DUPLICATE_DOCUMENT"
