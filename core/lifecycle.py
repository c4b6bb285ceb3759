"""
Startup sequencing: verify the backing store, then bind the listener.

State machine::

    initializing -> store-verifying -> listening
                                    -> store-unreachable (terminal)

The listener is only started from ``store-verifying`` after a successful
handshake. What happens after a failed handshake is the
``STARTUP_FAILURE_MODE`` setting: ``exit`` returns status 1 right away,
``idle`` keeps the process alive without a listener until stopped.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Protocol

import uvicorn

from core.config import Settings
from core.database import BackingStore
from utils.logging import get_logger


class LifecycleState(str, Enum):
    INITIALIZING = "initializing"
    STORE_VERIFYING = "store-verifying"
    LISTENING = "listening"
    STORE_UNREACHABLE = "store-unreachable"


_TRANSITIONS = {
    LifecycleState.INITIALIZING: {LifecycleState.STORE_VERIFYING},
    LifecycleState.STORE_VERIFYING: {LifecycleState.LISTENING, LifecycleState.STORE_UNREACHABLE},
    LifecycleState.LISTENING: set(),
    LifecycleState.STORE_UNREACHABLE: set(),
}


class StartupError(Exception):
    """The backing store could not be verified."""


class StoreUnavailableError(StartupError):
    """The store refused the connection or the credentials."""


class StoreTimeoutError(StartupError):
    """The store did not answer within DB_CONNECT_TIMEOUT_SECONDS."""


class ServerLifecycle:
    """Current lifecycle state, shared with the health routes via app state."""

    def __init__(self) -> None:
        self.state = LifecycleState.INITIALIZING
        self.failure: BaseException | None = None

    def transition(self, new_state: LifecycleState, failure: BaseException | None = None) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid lifecycle transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        if failure is not None:
            self.failure = failure

    @property
    def is_listening(self) -> bool:
        return self.state is LifecycleState.LISTENING


class Listener(Protocol):
    async def serve(self, on_bound: Callable[[], None]) -> None: ...


class _NotifyingServer(uvicorn.Server):
    def __init__(self, config: uvicorn.Config, on_bound: Callable[[], None]) -> None:
        super().__init__(config)
        self._on_bound = on_bound

    async def startup(self, sockets=None) -> None:
        await super().startup(sockets=sockets)
        if self.started:
            self._on_bound()


class UvicornListener:
    """Serves the ASGI app with uvicorn; reports once the socket is bound."""

    def __init__(self, app, settings: Settings) -> None:
        self.config = uvicorn.Config(
            app,
            host=settings.HOST,
            port=settings.PORT,
            log_level=settings.LOG_LEVEL.lower(),
            access_log=False,
        )

    async def serve(self, on_bound: Callable[[], None]) -> None:
        await _NotifyingServer(self.config, on_bound).serve()


class StartupSequencer:
    """Runs the store handshake once, then serves. ``run`` returns the exit status."""

    def __init__(
        self,
        store: BackingStore,
        listener: Listener,
        settings: Settings,
        lifecycle: ServerLifecycle | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.listener = listener
        self.settings = settings
        self.lifecycle = lifecycle or ServerLifecycle()
        self.log = log or get_logger(__name__)
        self._stop = asyncio.Event()

    async def verify_store(self) -> None:
        timeout = self.settings.DB_CONNECT_TIMEOUT_SECONDS
        try:
            await asyncio.wait_for(self.store.authenticate(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise StoreTimeoutError(f"Database handshake timed out after {timeout:g}s") from exc
        except Exception as exc:
            raise StoreUnavailableError(str(exc) or type(exc).__name__) from exc

    async def run(self) -> int:
        self.lifecycle.transition(LifecycleState.STORE_VERIFYING)
        try:
            try:
                await self.verify_store()
            except StartupError as exc:
                self.lifecycle.transition(LifecycleState.STORE_UNREACHABLE, exc)
                self.log.error(
                    "Unable to connect to the database",
                    exc_info=exc,
                    extra={"reason": str(exc), "failure_mode": self.settings.STARTUP_FAILURE_MODE},
                )
                if self.settings.STARTUP_FAILURE_MODE == "idle":
                    self.log.warning("No listener bound; idling until stopped")
                    await self._stop.wait()
                return 1

            self.log.info("Database connected successfully!")
            await self.listener.serve(self._on_bound)
            return 0
        finally:
            await self._close_store()

    def stop(self) -> None:
        """Release an idling sequencer."""
        self._stop.set()

    def _on_bound(self) -> None:
        self.lifecycle.transition(LifecycleState.LISTENING)
        self.log.info(f"Server is listening on port {self.settings.PORT}")

    async def _close_store(self) -> None:
        try:
            await self.store.close()
        except Exception:
            self.log.warning("store_close_failed", exc_info=True)
