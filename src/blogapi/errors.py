"""Typed API errors.

Every error carries the HTTP status it maps to and, optionally, field-level
messages. The application's exception handlers render them into the
standard response envelope.
"""

from typing import Dict, List, Optional


class BlogAPIError(Exception):
    """Base class for errors that are safe to show to API clients."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[Dict[str, List[str]]] = None,
    ):
        self.message = message or self.default_message
        self.errors = errors or {}
        super().__init__(self.message)


class ValidationFailed(BlogAPIError):
    """Raised when input is well-formed but violates a business rule."""

    status_code = 400
    default_message = "The given data was invalid."

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(errors={field: [message]})


class InvalidCredentials(BlogAPIError):
    status_code = 401
    default_message = "The provided credentials are incorrect."

    def __init__(self):
        super().__init__(errors={"email": [self.default_message]})


class Unauthenticated(BlogAPIError):
    status_code = 401
    default_message = "Unauthenticated."


class Forbidden(BlogAPIError):
    status_code = 403
    default_message = "Unauthorized"


class NotFound(BlogAPIError):
    status_code = 404
    default_message = "Resource not found"

    @classmethod
    def resource(cls, name: str) -> "NotFound":
        return cls(f"{name} not found")


class InternalError(BlogAPIError):
    """Unexpected failure; the message never includes the underlying cause."""

    status_code = 500
