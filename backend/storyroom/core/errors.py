"""Typed service errors and the handlers that render them."""
from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .logging import get_logger

logger = get_logger(__name__)


class ServiceError(HTTPException):
    """Base class carrying its own HTTP status code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, error: str, *, detail: Any = None) -> None:
        super().__init__(status_code=type(self).status_code, detail=error)
        self.error = error
        self.extra = detail


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class ExpiredError(ServiceError):
    status_code = status.HTTP_410_GONE


class ConfigError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class StoreUnavailableError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def error_body(error: str, detail: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": error}
    if detail is not None:
        body["detail"] = detail
    return body


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.error)
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_body(exc.error, exc.extra)),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError("invalid request", detail=jsonable_encoder(exc.errors()))
    return await service_error_handler(request, error)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
