"""
Domain errors raised by the service layer.

Each error carries the HTTP status the JSON API maps it to. Handlers never
need to inspect messages to pick a status code.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class CrmError(Exception):
    status_code = 500
    default_message = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(CrmError):
    status_code = 400
    default_message = "Validation error."

    def __init__(self, errors: list[FieldError], message: str | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors)

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "errors": [{"field": e.field, "message": e.message} for e in self.errors],
        }


class DuplicateEmailError(CrmError):
    status_code = 409
    default_message = "Customer email already exists."


class NotFoundError(CrmError):
    status_code = 404
    default_message = "Customer not found."


class EmptyInputError(CrmError):
    status_code = 400
    default_message = "No customers to export."


class AuthenticationError(CrmError):
    status_code = 401
    default_message = "Authentication required."


class PersistenceError(CrmError):
    status_code = 500
    default_message = "Database operation failed."
