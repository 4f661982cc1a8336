"""Application error taxonomy and the FastAPI handlers that render it."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "APPLICATION_ERROR"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_content(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class InvalidTransition(ValidationFailed):
    code = "INVALID_TRANSITION"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class ResourceUnavailable(AppError):
    """The requested room or table already has an active booking in the window.

    Kept distinct from :class:`ValidationFailed` so callers can offer the
    ``alternatives`` instead of asking the guest to fix their input.
    """

    status_code = status.HTTP_409_CONFLICT
    code = "RESOURCE_UNAVAILABLE"

    def __init__(self, message: str, alternatives: Optional[List[int]] = None) -> None:
        super().__init__(message)
        self.alternatives = alternatives or []

    def to_content(self) -> Dict[str, Any]:
        content = super().to_content()
        content["alternatives"] = self.alternatives
        return content


def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Database unavailable", "code": "DATABASE_ERROR"},
    )


def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "SERVER_ERROR"},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach the domain, database and catch-all handlers to an app."""

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
