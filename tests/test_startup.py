"""
Startup sequencing: the listener binds only after the database handshake.
"""

import asyncio
import logging

import pytest

from core.lifecycle import (
    LifecycleState,
    ServerLifecycle,
    StartupSequencer,
    StoreTimeoutError,
    StoreUnavailableError,
)

from conftest import FakeListener, FakeStore, make_settings


@pytest.fixture
def startup_log(error_log):
    return error_log


def _messages(handler) -> list[str]:
    return [r.getMessage() for r in handler.records]


def test_binds_after_successful_handshake(startup_log) -> None:
    log, handler = startup_log
    store, listener, lifecycle = FakeStore(), FakeListener(), ServerLifecycle()
    sequencer = StartupSequencer(store, listener, make_settings(PORT=9123), lifecycle, log)

    assert asyncio.run(sequencer.run()) == 0
    assert store.authenticate_calls == 1
    assert listener.bound
    assert lifecycle.state is LifecycleState.LISTENING
    assert _messages(handler) == [
        "Database connected successfully!",
        "Server is listening on port 9123",
    ]
    assert store.closed


def test_unreachable_store_never_binds(startup_log) -> None:
    log, handler = startup_log
    store = FakeStore(error=ConnectionRefusedError("connection refused"))
    listener, lifecycle = FakeListener(), ServerLifecycle()
    sequencer = StartupSequencer(store, listener, make_settings(), lifecycle, log)

    assert asyncio.run(sequencer.run()) == 1
    assert store.authenticate_calls == 1
    assert not listener.bound
    assert lifecycle.state is LifecycleState.STORE_UNREACHABLE
    assert isinstance(lifecycle.failure, StoreUnavailableError)
    assert isinstance(lifecycle.failure.__cause__, ConnectionRefusedError)
    assert "Database connected successfully!" not in _messages(handler)
    errors = [r for r in handler.records if r.levelno == logging.ERROR]
    assert [r.getMessage() for r in errors] == ["Unable to connect to the database"]
    assert store.closed


def test_handshake_timeout_is_distinct(startup_log) -> None:
    log, _ = startup_log
    store, listener, lifecycle = FakeStore(hang=True), FakeListener(), ServerLifecycle()
    settings = make_settings(DB_CONNECT_TIMEOUT_SECONDS=0.05)
    sequencer = StartupSequencer(store, listener, settings, lifecycle, log)

    assert asyncio.run(sequencer.run()) == 1
    assert isinstance(lifecycle.failure, StoreTimeoutError)
    assert not listener.bound


def test_idle_mode_stays_alive_unbound(startup_log) -> None:
    log, handler = startup_log
    store, listener, lifecycle = FakeStore(error=OSError("no route to host")), FakeListener(), ServerLifecycle()
    settings = make_settings(STARTUP_FAILURE_MODE="idle")
    sequencer = StartupSequencer(store, listener, settings, lifecycle, log)

    async def scenario() -> int:
        task = asyncio.create_task(sequencer.run())
        for _ in range(100):
            await asyncio.sleep(0.01)
            if lifecycle.state is LifecycleState.STORE_UNREACHABLE:
                break
        await asyncio.sleep(0.05)
        assert not task.done()
        assert not listener.bound
        sequencer.stop()
        return await task

    assert asyncio.run(scenario()) == 1
    assert store.closed
    assert "No listener bound; idling until stopped" in _messages(handler)


def test_handshake_runs_only_once(startup_log) -> None:
    log, _ = startup_log
    sequencer = StartupSequencer(FakeStore(), FakeListener(), make_settings(), ServerLifecycle(), log)
    asyncio.run(sequencer.run())
    with pytest.raises(RuntimeError):
        asyncio.run(sequencer.run())


def test_lifecycle_rejects_skipping_verification() -> None:
    lifecycle = ServerLifecycle()
    with pytest.raises(RuntimeError):
        lifecycle.transition(LifecycleState.LISTENING)
    lifecycle.transition(LifecycleState.STORE_VERIFYING)
    lifecycle.transition(LifecycleState.STORE_UNREACHABLE)
    with pytest.raises(RuntimeError):
        lifecycle.transition(LifecycleState.LISTENING)
