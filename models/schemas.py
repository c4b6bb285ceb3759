"""
Pydantic schemas for the stable response contracts.
Routes and the error chain serialize through these; keeps API contracts explicit.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every normalized error response."""

    title: str
    message: str
    errors: list[str] = Field(default_factory=list)
    stack: str | None = None

    model_config = {"extra": "forbid"}


class PageNotFoundResponse(BaseModel):
    """Body of the catch-all responder for paths outside the API."""

    message: str = "Sorry! Page not found"

    model_config = {"extra": "forbid"}


class HealthResponse(BaseModel):
    """Liveness payload for health checks."""

    status: Literal["ok"] = "ok"
    service: str
    environment: str
    lifecycle: str


class ReadinessResponse(BaseModel):
    """Readiness: true only once the database handshake succeeded."""

    ready: bool
    checks: dict[str, str] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class CsrfTokenResponse(BaseModel):
    token: str = Field(serialization_alias="XSRF-Token")
