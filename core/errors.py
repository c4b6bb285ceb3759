"""
Error taxonomy. Handlers and middleware raise these; only the error chain
turns them into responses.
"""

from dataclasses import dataclass, field
from typing import Iterable


class ApiError(Exception):
    """Base for errors raised on purpose. Fields are copied into an ErrorRecord."""

    status: int | None = None
    title: str | None = None

    def __init__(
        self,
        message: str = "",
        *,
        status: int | None = None,
        title: str | None = None,
        errors: Iterable[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        if title is not None:
            self.title = title
        self.errors = list(errors) if errors is not None else []


class NotFoundError(ApiError):
    """A handler could not find the requested resource."""

    def __init__(self, message: str = "The requested resource couldn't be found.", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ValidationError(ApiError):
    """Input failed schema or business rules; carries one message per field."""

    def __init__(
        self,
        field_messages: Iterable[str],
        message: str = "Validation error",
        *,
        status: int | None = None,
    ) -> None:
        self.field_messages = list(field_messages)
        super().__init__(message, status=status)


class UnclassifiedError(ApiError):
    """Wraps an unexpected failure from a handler or the backing store."""

    def __init__(self, message: str = "", *, cause: BaseException | None = None, **kwargs) -> None:
        super().__init__(message or (str(cause) if cause else ""), **kwargs)
        if cause is not None:
            self.__cause__ = cause


class CsrfError(ApiError):
    status = 403
    title = "Invalid CSRF token"

    def __init__(self, message: str = "invalid csrf token") -> None:
        super().__init__(message)


@dataclass
class ErrorRecord:
    """An in-flight error. Chain stages only fill fields that are still unset."""

    message: str
    title: str | None = None
    errors: list[str] = field(default_factory=list)
    status: int | None = None
    cause: BaseException | None = None
    headers: dict[str, str] | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorRecord":
        if isinstance(exc, ApiError):
            return cls(
                message=exc.message,
                title=exc.title,
                errors=list(exc.errors),
                status=exc.status,
                cause=exc,
            )
        return cls(message=str(exc), cause=exc)
