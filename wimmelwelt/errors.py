"""
Error taxonomy shared by the services and mapped to HTTP responses in the app.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors that carry an HTTP-equivalent status."""

    status_code = 500
    default_message = "Internal server error."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequestError(ServiceError):
    status_code = 400
    default_message = "Bad request."


class UnauthorizedError(ServiceError):
    status_code = 401
    default_message = "Invalid credentials."


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found."


class ConflictError(ServiceError):
    status_code = 409
    default_message = "Resource already exists."


class InternalError(ServiceError):
    status_code = 500


class StorageConfigurationError(InternalError):
    default_message = (
        "S3 bucket is not configured. Set AWS_S3_BUCKET or use STORAGE_MODE=local."
    )


class DuplicateRecordError(Exception):
    """Raised by a DbClient when a unique constraint rejects a write."""

    def __init__(self, role: str, field: str | None = None):
        self.role = role
        self.field = field
        super().__init__(f"duplicate {role} record" + (f" ({field})" if field else ""))
