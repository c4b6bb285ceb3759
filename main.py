"""
Application entry point. FastAPI app with security middleware, error chain
and routers; the listener is bound only after the database answers.
Run: python main.py   (or the ``apiserver`` console script)
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import APIRouter, FastAPI

from api.routes import api_router, site_fallback_router
from core.config import Settings, get_settings
from core.database import SqlAlchemyStore
from core.error_chain import ErrorChain, install_error_handlers
from core.lifecycle import (
    LifecycleState,
    ServerLifecycle,
    StartupSequencer,
    UvicornListener,
)
from core.middleware import install_middleware
from utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info(
        "startup",
        extra={
            "app": settings.APP_NAME,
            "env": settings.ENVIRONMENT,
            "log_level": settings.LOG_LEVEL,
        },
    )
    yield
    logger.info("shutdown", extra={"app": settings.APP_NAME})


def create_app(
    settings: Settings | None = None,
    *,
    routers: Sequence[APIRouter] | None = None,
    lifecycle: ServerLifecycle | None = None,
    access_log: logging.Logger | None = None,
    error_log: logging.Logger | None = None,
) -> FastAPI:
    """
    Factory for the FastAPI app. Wiring is synchronous and independent of the
    database. ``routers`` are mounted under API_PREFIX ahead of the catch-all.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        docs_url=settings.DOCS_URL,
        redoc_url=None,
        openapi_url=f"{settings.DOCS_URL}/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.lifecycle = lifecycle or ServerLifecycle()

    chain = ErrorChain(settings, logger=error_log)
    app.state.error_chain = chain
    install_middleware(app, settings, chain, access_log=access_log)
    install_error_handlers(app, chain)

    for router in routers if routers is not None else (api_router,):
        app.include_router(router, prefix=settings.API_PREFIX)
    app.include_router(site_fallback_router)
    return app


def build_sequencer(settings: Settings) -> StartupSequencer:
    app = create_app(settings)
    return StartupSequencer(
        store=SqlAlchemyStore.from_settings(settings),
        listener=UvicornListener(app, settings),
        settings=settings,
        lifecycle=app.state.lifecycle,
    )


def main() -> None:
    sequencer = build_sequencer(get_settings())
    try:
        code = asyncio.run(sequencer.run())
    except KeyboardInterrupt:
        # Ctrl-C while idling after a failed handshake is still a failed start.
        unreachable = sequencer.lifecycle.state is LifecycleState.STORE_UNREACHABLE
        code = 1 if unreachable else 0
    sys.exit(code)


if __name__ == "__main__":
    main()
