"""
Custom HTTP exceptions and global exception handlers for the task tracker.
All application-level errors are defined here for consistency.
"""
from __future__ import annotations

import logging
import traceback
from collections.abc import Iterable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tasktracker.core.config import settings

logger = logging.getLogger(__name__)


# ── Custom exception classes ──────────────────────────────────────────────────

class TaskTrackerException(Exception):
    """Base exception for all task tracker domain errors."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.error_code = error_code or "TASKTRACKER_ERROR"
        super().__init__(detail)


class ValidationException(TaskTrackerException):
    """Malformed or missing input. ``fields`` names every offending field."""

    def __init__(self, detail: str, fields: Iterable[str] = ()) -> None:
        self.fields = list(fields)
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="VALIDATION_ERROR",
        )

    @classmethod
    def for_fields(cls, fields: Iterable[str]) -> "ValidationException":
        names = list(dict.fromkeys(fields))
        return cls(f"Missing or invalid fields: {', '.join(names)}", fields=names)


class FileTooLargeException(ValidationException):
    def __init__(self, max_mb: int, filename: str | None = None) -> None:
        detail = f"File size too large. Maximum size is {max_mb}MB"
        if filename:
            detail = f"File '{filename}' is too large. Maximum size is {max_mb}MB"
        super().__init__(detail, fields=["attachments"])
        self.error_code = "FILE_TOO_LARGE"


class NotFoundException(TaskTrackerException):
    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND",
        )


class UnauthorizedException(TaskTrackerException):
    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
        )


class InvalidTokenException(TaskTrackerException):
    def __init__(self, detail: str = "Invalid or expired token") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="INVALID_TOKEN",
        )


class ForbiddenException(TaskTrackerException):
    def __init__(self, detail: str = "You do not have permission to perform this action") -> None:
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN",
        )


class ConflictException(TaskTrackerException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT",
        )


class StorageException(TaskTrackerException):
    """An attachment artifact could not be written or read."""

    def __init__(self, detail: str = "Attachment storage failure") -> None:
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="STORAGE_ERROR",
        )


# ── Exception handlers ────────────────────────────────────────────────────────

def _error_response(
    status_code: int,
    detail: str,
    error_code: str,
    **extra: object,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error_code,
            "message": detail,
            **extra,
        },
    )


async def tasktracker_exception_handler(
    request: Request, exc: TaskTrackerException
) -> JSONResponse:
    if isinstance(exc, ValidationException) and exc.fields:
        return _error_response(exc.status_code, exc.detail, exc.error_code, fields=exc.fields)
    return _error_response(exc.status_code, exc.detail, exc.error_code)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = []
    for error in exc.errors():
        # Drop the "body"/"query"/"path" prefix so the field reads as the client sent it
        loc = [str(part) for part in error["loc"][1:]] or [str(part) for part in error["loc"]]
        errors.append({"field": ".".join(loc), "message": error["msg"]})
    fields = list(dict.fromkeys(e["field"] for e in errors))
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        f"Missing or invalid fields: {', '.join(fields)}",
        "VALIDATION_ERROR",
        errors=errors,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    extra: dict[str, object] = {}
    if not settings.is_production:
        extra["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected internal server error occurred",
        "INTERNAL_SERVER_ERROR",
        **extra,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI application."""
    app.add_exception_handler(TaskTrackerException, tasktracker_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
