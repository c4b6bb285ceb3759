"""
FastAPI dependency injection: settings, lifecycle, request bodies, CSRF secret.
Everything is read from app state populated by create_app, never from globals.
"""

import json
from typing import Annotated, Any

from fastapi import Depends, Request, status

from core.config import Settings
from core.errors import ApiError
from core.lifecycle import ServerLifecycle

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_lifecycle(request: Request) -> ServerLifecycle:
    return request.app.state.lifecycle


def get_csrf_secret(request: Request) -> str:
    """Secret attached by CsrfMiddleware for the current request."""
    return request.state.csrf_secret


async def parse_body(request: Request) -> dict[str, Any]:
    """
    Parse a JSON or URL-encoded body. Runs inside the handler, so only after
    the security middleware let the request through.
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type == FORM_CONTENT_TYPE:
        form = await request.form()
        return dict(form)
    raw = await request.body()
    if not raw:
        return {}
    if content_type and content_type != JSON_CONTENT_TYPE and not content_type.endswith("+json"):
        raise ApiError(
            f"Unsupported content type: {content_type}",
            status=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            title="Unsupported Media Type",
        )
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ApiError(
            "Malformed JSON body",
            status=status.HTTP_400_BAD_REQUEST,
            title="Bad Request",
            errors=[str(exc)],
        ) from exc
    if not isinstance(data, dict):
        raise ApiError(
            "JSON body must be an object",
            status=status.HTTP_400_BAD_REQUEST,
            title="Bad Request",
        )
    return data


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
LifecycleDep = Annotated[ServerLifecycle, Depends(get_lifecycle)]
CsrfSecretDep = Annotated[str, Depends(get_csrf_secret)]
RequestBody = Annotated[dict[str, Any], Depends(parse_body)]
