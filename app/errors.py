"""Request-level errors and their JSON rendering."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Type, TypeVar

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiError(Exception):
    """An error that maps directly onto an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationError(ApiError):
    """Payload failed field rules; ``details`` maps dotted field paths to messages."""

    status_code = status.HTTP_400_BAD_REQUEST


class ParseError(ApiError):
    """A query parameter could not be parsed."""

    status_code = status.HTTP_400_BAD_REQUEST


def error_details(exc: PydanticValidationError | RequestValidationError) -> Dict[str, str]:
    details: Dict[str, str] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        key = ".".join(loc) or "body"
        details.setdefault(key, error.get("msg", "invalid value"))
    return details


def validate_payload(model: Type[ModelT], payload: object, message: str) -> ModelT:
    """Validate ``payload`` against ``model`` or raise :class:`ValidationError`."""
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(message, details=error_details(exc)) from exc


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
        reason = ", ".join(sorted(exc.details)) if exc.details else None
        logger.warning(
            exc.message,
            extra={"path": request.url.path, "status": exc.status_code, "reason": reason},
        )
    content: Dict[str, object] = {"error": exc.message}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning(
        "invalid request body", extra={"path": request.url.path, "reason": str(exc)}
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "invalid request body", "details": error_details(exc)},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled error", exc_info=exc, extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal server error"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
