"""
Error normalization chain.

Every failure that reaches the client passes through three stages, in order:

1. ``NotFoundStage``     classifies missing resources reported by handlers.
2. ``ValidationStage``   flattens validation failures into field messages.
3. ``SerializationStage`` picks the status, logs the error, renders the body.

Stages may only add information to an ``ErrorRecord``. The last stage is the
single place where the wire shape ``{title, message, errors, stack}`` exists.
"""

import logging
import traceback
from typing import Protocol

import pydantic
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import Settings
from core.errors import (
    ApiError,
    ErrorRecord,
    NotFoundError,
    UnclassifiedError,
    ValidationError,
)
from models.schemas import ErrorResponse
from utils.logging import get_logger

NOT_FOUND_TITLE = "Resource Not Found"
NOT_FOUND_MESSAGE = "The requested resource couldn't be found."
VALIDATION_TITLE = "Validation error"
DEFAULT_TITLE = "Server Error"


class ErrorStage(Protocol):
    def applies(self, record: ErrorRecord) -> bool: ...

    def apply(self, record: ErrorRecord) -> None: ...


class NotFoundStage:
    def applies(self, record: ErrorRecord) -> bool:
        cause = record.cause
        if isinstance(cause, NotFoundError):
            return True
        return isinstance(cause, StarletteHTTPException) and cause.status_code == 404

    def apply(self, record: ErrorRecord) -> None:
        if record.status is None:
            record.status = 404
        if record.title is None:
            record.title = NOT_FOUND_TITLE
        if not record.errors:
            record.errors = [NOT_FOUND_MESSAGE]


class ValidationStage:
    def applies(self, record: ErrorRecord) -> bool:
        return isinstance(
            record.cause,
            (ValidationError, RequestValidationError, pydantic.ValidationError),
        )

    def apply(self, record: ErrorRecord) -> None:
        cause = record.cause
        if isinstance(cause, ValidationError):
            record.errors = list(cause.field_messages)
        else:
            record.errors = [_format_field_error(e) for e in cause.errors()]
            if isinstance(cause, RequestValidationError) and record.status is None:
                record.status = 422
        record.title = VALIDATION_TITLE


class SerializationStage:
    def __init__(self, settings: Settings, logger: logging.Logger | None = None) -> None:
        self.settings = settings
        self.logger = logger or get_logger(__name__)

    def render(self, request: Request, record: ErrorRecord) -> JSONResponse:
        status_code = record.status or 500
        cause = record.cause
        exc_info = (type(cause), cause, cause.__traceback__) if cause is not None else None
        self.logger.error(
            "request_failed",
            exc_info=exc_info,
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": status_code,
                "title": record.title,
            },
        )
        body = ErrorResponse(
            title=record.title or DEFAULT_TITLE,
            message=record.message,
            errors=record.errors,
            stack=None if self.settings.is_production else _format_stack(record),
        )
        return JSONResponse(
            status_code=status_code,
            content=body.model_dump(),
            headers=record.headers,
        )


class ErrorChain:
    """Runs the classifying stages, then serializes. Shared by handlers and middleware."""

    def __init__(self, settings: Settings, logger: logging.Logger | None = None) -> None:
        self.stages: list[ErrorStage] = [NotFoundStage(), ValidationStage()]
        self.serializer = SerializationStage(settings, logger)

    def normalize(self, exc: BaseException) -> ErrorRecord:
        record = build_record(exc)
        for stage in self.stages:
            if stage.applies(record):
                stage.apply(record)
        return record

    def respond(self, request: Request, exc: BaseException) -> JSONResponse:
        return self.serializer.render(request, self.normalize(exc))

    async def handle(self, request: Request, exc: Exception) -> JSONResponse:
        return self.respond(request, exc)


def build_record(exc: BaseException) -> ErrorRecord:
    if isinstance(exc, StarletteHTTPException):
        return ErrorRecord(
            message=str(exc.detail),
            status=exc.status_code,
            cause=exc,
            headers=dict(exc.headers) if exc.headers else None,
        )
    if isinstance(exc, (RequestValidationError, pydantic.ValidationError)):
        return ErrorRecord(message="Validation failed", cause=exc)
    if not isinstance(exc, ApiError):
        exc = UnclassifiedError(cause=exc)
    return ErrorRecord.from_exception(exc)


def install_error_handlers(app: FastAPI, chain: ErrorChain) -> None:
    """Route framework and application errors into the chain."""
    for exc_class in (
        ApiError,
        StarletteHTTPException,
        RequestValidationError,
        pydantic.ValidationError,
    ):
        app.add_exception_handler(exc_class, chain.handle)


def _format_field_error(error: dict) -> str:
    loc = ".".join(str(part) for part in error.get("loc", ()))
    msg = error.get("msg", "Invalid value")
    return f"{loc}: {msg}" if loc else msg


def _format_stack(record: ErrorRecord) -> str:
    if record.cause is None:
        return f"Error: {record.message}"
    return "".join(traceback.format_exception(record.cause))
