"""
Pytest fixtures: settings per deployment mode, test clients with a sample
router, recording loggers and CSRF headers.
"""

import asyncio
import logging
import uuid

import pytest
from fastapi import APIRouter, Request
from fastapi.testclient import TestClient
from pydantic import BaseModel

from api.routes import api_router
from core.config import Settings
from core.dependencies import RequestBody
from core.errors import ApiError, NotFoundError, ValidationError
from main import create_app

PRODUCTION_SECRET = "p" * 48


class RecordingHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class Item(BaseModel):
    name: str
    quantity: int


class CallCounter:
    def __init__(self) -> None:
        self.calls = 0


def build_sample_router(counter: CallCounter) -> APIRouter:
    """Stand-in for the application routes; counts every handler invocation."""
    router = APIRouter(prefix="/sample")

    @router.get("/ok")
    async def ok() -> dict:
        counter.calls += 1
        return {"ok": True}

    @router.post("/echo")
    async def echo(body: RequestBody) -> dict:
        counter.calls += 1
        return body

    @router.post("/items")
    async def create_item(item: Item) -> Item:
        counter.calls += 1
        return item

    @router.get("/boom")
    async def boom() -> None:
        counter.calls += 1
        raise RuntimeError("boom")

    @router.get("/invalid")
    async def invalid(request: Request) -> None:
        counter.calls += 1
        status = request.query_params.get("status")
        raise ValidationError(
            ["name cannot be empty", "email must be unique"],
            status=int(status) if status else None,
        )

    @router.get("/missing")
    async def missing() -> None:
        counter.calls += 1
        raise NotFoundError("Widget 7 does not exist")

    @router.get("/teapot")
    async def teapot() -> None:
        counter.calls += 1
        raise ApiError("short and stout", status=418, title="Teapot", errors=["no coffee"])

    return router


class FakeStore:
    def __init__(self, error: BaseException | None = None, hang: bool = False) -> None:
        self.error = error
        self.hang = hang
        self.authenticate_calls = 0
        self.closed = False

    async def authenticate(self) -> None:
        self.authenticate_calls += 1
        if self.hang:
            await asyncio.sleep(3600)
        if self.error is not None:
            raise self.error

    async def close(self) -> None:
        self.closed = True


class FakeListener:
    def __init__(self) -> None:
        self.bound = False

    async def serve(self, on_bound) -> None:
        self.bound = True
        on_bound()


def make_settings(environment: str = "testing", **overrides) -> Settings:
    values = {"ENVIRONMENT": environment}
    if environment == "production":
        values.update(
            JWT_ACCESS_TOKEN_SECRET=PRODUCTION_SECRET,
            JWT_REFRESH_TOKEN_SECRET=PRODUCTION_SECRET,
        )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _recording_logger(prefix: str) -> tuple[logging.Logger, RecordingHandler]:
    log = logging.getLogger(f"tests.{prefix}.{uuid.uuid4().hex}")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    handler = RecordingHandler()
    log.addHandler(handler)
    return log, handler


@pytest.fixture
def counter() -> CallCounter:
    return CallCounter()


@pytest.fixture
def access_log() -> tuple[logging.Logger, RecordingHandler]:
    return _recording_logger("access")


@pytest.fixture
def error_log() -> tuple[logging.Logger, RecordingHandler]:
    return _recording_logger("errors")


@pytest.fixture
def settings() -> Settings:
    return make_settings("testing")


def _client(settings: Settings, counter, access_log, error_log) -> TestClient:
    app = create_app(
        settings,
        routers=[api_router, build_sample_router(counter)],
        access_log=access_log[0],
        error_log=error_log[0],
    )
    return TestClient(app)


@pytest.fixture
def client(settings, counter, access_log, error_log) -> TestClient:
    """Non-production client: CORS enabled, stack traces exposed."""
    return _client(settings, counter, access_log, error_log)


@pytest.fixture
def production_client(counter, access_log, error_log) -> TestClient:
    return _client(make_settings("production"), counter, access_log, error_log)


@pytest.fixture
def csrf_headers(client: TestClient) -> dict[str, str]:
    """Fetch a token; the secret cookie stays in the client's cookie jar."""
    r = client.get("/api/csrf/restore")
    assert r.status_code == 200
    return {"X-CSRF-Token": r.json()["XSRF-Token"]}
