"""HTTP error mapping for service results."""

from __future__ import annotations

import logging
from typing import TypeVar

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from result import Ok, Result

from ccweb.errors import ErrorKind, ServiceError, http_status

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ApiError(Exception):
    """Raised by route handlers; rendered as ``{"error", "message"}``."""

    def __init__(self, status_code: int, error: str, message: str = "") -> None:
        super().__init__(message or error)
        self.status_code = status_code
        self.error = error
        self.message = message

    @classmethod
    def from_service_error(cls, err: ServiceError) -> ApiError:
        return cls(err.status_code, err.error or err.message, err.message)

    @classmethod
    def unavailable(cls, message: str) -> ApiError:
        return cls(http_status(ErrorKind.UNAVAILABLE), "Service unavailable", message)


def unwrap(result: Result[T, ServiceError]) -> T:
    """Return the Ok value or raise the matching ApiError."""
    if isinstance(result, Ok):
        return result.ok_value
    raise ApiError.from_service_error(result.err_value)


async def api_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ApiError)
    body = {"error": exc.error}
    if exc.message:
        body["message"] = exc.message
    return JSONResponse(body, status_code=exc.status_code)


async def validation_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    details = "; ".join(
        f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}" for e in exc.errors()
    )
    logger.debug("Rejected request: %s", details)
    return JSONResponse({"error": "Invalid request", "message": details}, status_code=400)
