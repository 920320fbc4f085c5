"""Exception handlers that give every failure the same ``{"error": ...}`` body."""
from __future__ import annotations

import logging
from typing import Any, Sequence

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

_VALUE_ERROR_PREFIX = "Value error, "
_TRANSPORT_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def describe_validation_errors(errors: Sequence[Any]) -> str:
    """Render the first pydantic error as a short client-facing message."""

    if not errors:
        return "Invalid request"
    error = errors[0]
    message = str(error.get("msg") or "Invalid request")
    if message.startswith(_VALUE_ERROR_PREFIX):
        return message[len(_VALUE_ERROR_PREFIX):]

    location = [str(part) for part in error.get("loc", ()) if part not in _TRANSPORT_LOCATIONS]
    if location:
        return f"{'.'.join(location)}: {message}"
    return message


def error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(exc.status_code, detail, headers=getattr(exc, "headers", None))


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, describe_validation_errors(exc.errors()))


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)


__all__ = ["describe_validation_errors", "error_response", "register_exception_handlers"]
