"""
Domain error taxonomy.

Services raise ``AppError`` subclasses; ``main.py`` translates them into
structured HTTP responses. Nothing in this module knows about transport
status codes except ``ERROR_STATUS_CODES``, the boundary lookup table.
"""
from enum import Enum
from typing import Optional

from fastapi import status


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"


ERROR_STATUS_CODES = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
}

ERROR_TITLES = {
    ErrorKind.VALIDATION: "Validation Error",
    ErrorKind.NOT_FOUND: "Not Found",
    ErrorKind.CONFLICT: "Conflict",
    ErrorKind.FORBIDDEN: "Forbidden",
}


class AppError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION
    default_message = "Invalid request"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES[self.kind]

    @property
    def title(self) -> str:
        return ERROR_TITLES[self.kind]


class InvalidRequestError(AppError):
    kind = ErrorKind.VALIDATION


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    default_message = "The requested record was not found"


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT
    default_message = "A record with this value already exists"


class SchedulingConflictError(ConflictError):
    default_message = "This appointment conflicts with an existing appointment"


class PermissionDeniedError(AppError):
    kind = ErrorKind.FORBIDDEN
    default_message = "You do not have permission"


class InvalidTransitionError(InvalidRequestError):
    default_message = "This status change is not allowed"
