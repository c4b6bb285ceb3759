"""
Middleware: request timing, CORS, resource policy, CSRF, error capture.

Order matters. From the outside in:
timing -> CORS (non-production) -> resource policy -> CSRF -> error capture -> router.
Bodies are parsed only by route handlers, i.e. after the CSRF check.
"""

import asyncio
import contextlib
import logging
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.config import Settings
from core.error_chain import ErrorChain
from core.errors import CsrfError
from core.security import (
    SAFE_METHODS,
    create_secret,
    extract_token,
    secret_cookie_options,
    verify_token,
)
from utils.logging import get_logger

logger = get_logger(__name__)

# Status reported when the client went away before a response started.
CLIENT_CLOSED_REQUEST = 499


class RequestTimer:
    """
    Scoped latency measurement for one request. Emits exactly one log record
    when the ``with`` block exits, however it exits.
    """

    def __init__(self, method: str, path: str, log: logging.Logger) -> None:
        self.method = method
        self.path = path
        self.log = log
        self.status_code: int | None = None
        self.start = 0.0
        self._emitted = False

    def __enter__(self) -> "RequestTimer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.status_code is None:
            if exc_type is not None and issubclass(exc_type, asyncio.CancelledError):
                self.status_code = CLIENT_CLOSED_REQUEST
            else:
                self.status_code = 500
        self.emit()
        return False

    def emit(self) -> None:
        if self._emitted:
            return
        self._emitted = True
        duration_ms = (time.perf_counter() - self.start) * 1000
        status = self.status_code or 500
        # The access log is a side channel; a broken sink must not fail the response.
        with contextlib.suppress(Exception):
            self.log.log(
                level_for_status(status),
                f"{self.method} {self.path} {status} - {duration_ms:.2f} ms",
                extra={
                    "method": self.method,
                    "path": self.path,
                    "status": status,
                    "duration_ms": round(duration_ms, 2),
                },
            )


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestTimingMiddleware:
    """
    Pure ASGI so it sees the final status of every response, including CORS
    preflights, CSRF rejections and error chain output.
    """

    def __init__(self, app: ASGIApp, log: logging.Logger | None = None) -> None:
        self.app = app
        self.log = log or get_logger("access")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        with RequestTimer(scope["method"], scope["path"], self.log) as timer:

            async def send_wrapper(message: Message) -> None:
                if message["type"] == "http.response.start":
                    timer.status_code = message["status"]
                await send(message)

            await self.app(scope, receive, send_wrapper)


class ResourcePolicyMiddleware(BaseHTTPMiddleware):
    """Sets Cross-Origin-Resource-Policy on every response, in every mode."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
        return response


class CsrfMiddleware(BaseHTTPMiddleware):
    """
    Double-submit anti-forgery check. The secret lives in an httponly cookie;
    unsafe methods must echo a token derived from it. Rejections go straight
    to the error chain and never reach the router.
    """

    def __init__(self, app: ASGIApp, settings: Settings, chain: ErrorChain) -> None:
        super().__init__(app)
        self.settings = settings
        self.chain = chain

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        cookie_name = self.settings.CSRF_COOKIE_NAME
        secret = request.cookies.get(cookie_name)
        issued = not secret
        if issued:
            secret = create_secret()
        request.state.csrf_secret = secret

        if request.method in SAFE_METHODS:
            response = await call_next(request)
        else:
            token = extract_token(request.headers, request.query_params)
            if verify_token(secret, token):
                response = await call_next(request)
            else:
                logger.warning(
                    "csrf_rejected",
                    extra={"path": request.url.path, "method": request.method},
                )
                response = self.chain.respond(request, CsrfError())

        if issued:
            response.set_cookie(cookie_name, secret, **secret_cookie_options(self.settings))
        return response


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """
    Innermost: turns exceptions no handler claimed into chain responses, so
    they still pass through the security middleware on the way out.
    """

    def __init__(self, app: ASGIApp, chain: ErrorChain) -> None:
        super().__init__(app)
        self.chain = chain

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return self.chain.respond(request, exc)


def install_middleware(
    app: FastAPI,
    settings: Settings,
    chain: ErrorChain,
    access_log: logging.Logger | None = None,
) -> None:
    """Register in reverse: the last middleware added runs first."""
    app.add_middleware(ErrorCaptureMiddleware, chain=chain)
    app.add_middleware(CsrfMiddleware, settings=settings, chain=chain)
    app.add_middleware(ResourcePolicyMiddleware)
    if not settings.is_production:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestTimingMiddleware, log=access_log)
