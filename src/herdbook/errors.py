"""Exception types raised by Herdbook."""

from typing import Any

from pydantic import ValidationError


class HerdbookError(Exception):
    """Base exception for Herdbook errors."""


class FieldError(ValueError):
    """A cross-field rule failure attributed to one field.

    Raised from model validators so the message lands on ``field`` rather
    than on the model as a whole.
    """

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class ValidationFailed(HerdbookError):
    """Input did not satisfy a record's field constraints.

    ``field_errors`` maps the document field name (camelCase alias) to a
    human-readable message, suitable for showing inline next to a form field.
    """

    def __init__(self, field_errors: dict[str, str]):
        summary = "; ".join(f"{field}: {message}" for field, message in field_errors.items())
        super().__init__(f"Validation failed: {summary}")
        self.field_errors = field_errors

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailed":
        """Collapse a pydantic ValidationError to one message per field."""
        field_errors: dict[str, str] = {}
        for error in exc.errors():
            loc = ".".join(str(part) for part in error["loc"]) or "__root__"
            cause = (error.get("ctx") or {}).get("error")
            if isinstance(cause, FieldError):
                loc = cause.field
            message = error["msg"]
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            field_errors.setdefault(loc, message)
        return cls(field_errors)


class RemoteStoreError(HerdbookError):
    """The remote document store was unreachable or rejected a request."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class StoreAuthenticationError(RemoteStoreError):
    """The store rejected our credentials."""

    pass


class AdvisoryError(HerdbookError):
    """The advisory text service failed to produce a usable result."""

    pass
