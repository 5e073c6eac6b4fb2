"""Error taxonomy shared by the services and mapped to HTTP by the app."""


class GrievanceError(Exception):
    """Base exception for complaint and identity operations."""

    status_code = 500
    public_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(GrievanceError):
    """Missing or malformed input."""

    status_code = 400
    public_message = "Invalid input"


class DuplicateKeyError(GrievanceError):
    """Race on a unique field. Retry with fresh input."""

    status_code = 400
    public_message = "Resource already exists"


class AuthenticationError(GrievanceError):
    """Credentials missing, invalid or expired."""

    status_code = 401
    public_message = "Authentication required"


class ForbiddenError(GrievanceError):
    """Role, capability or tenant does not permit the operation."""

    status_code = 403
    public_message = "Access denied"


class AccessDeniedError(ForbiddenError):
    """The caller does not own the tracking ID."""


class NotFoundError(GrievanceError):
    """No such tracking ID, complaint or mapping."""

    status_code = 404
    public_message = "Not found"


class ExhaustedRetriesError(GrievanceError):
    """Tracking ID generation kept colliding. Retryable by the caller."""

    status_code = 500
    public_message = "Could not allocate a tracking ID, please retry"


class DecryptionError(GrievanceError):
    """Ciphertext is malformed, tampered with, or was sealed under another key."""

    status_code = 500
    public_message = "Identity record could not be read"


class MappingStoreError(GrievanceError):
    """Unexpected failure in the identity mapping store."""

    status_code = 500
    public_message = "Identity store unavailable"


class MappingInconsistencyError(GrievanceError):
    """The complaint was written but its identity mapping was not."""

    status_code = 500
    public_message = "Complaint could not be filed, please retry"
