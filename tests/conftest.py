"""Shared test fixtures for vigil.

The fakes stand in for asyncpg at the two seams vigil injects it through:
``connect`` (the LISTEN session) and ``create_pool`` (snapshot queries).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import pytest

from vigil.config import VigilConfig
from vigil.relay.events import Action, ChangeEvent, Channel, make_event

LOGS_CHANNEL = "nginx_log_changes"
ALERTS_CHANNEL = "alert_changes"


# ---------------------------------------------------------------------------
# LISTEN session fakes
# ---------------------------------------------------------------------------


class FakeConnection:
    """The slice of ``asyncpg.Connection`` the connector uses."""

    def __init__(self) -> None:
        self.listeners: dict[str, Any] = {}
        self.termination_listeners: list[Any] = []
        self.closed = False
        self.terminated = False

    async def add_listener(self, channel: str, callback: Any) -> None:
        self.listeners[channel] = callback

    async def remove_listener(self, channel: str, callback: Any) -> None:
        self.listeners.pop(channel, None)

    def add_termination_listener(self, callback: Any) -> None:
        self.termination_listeners.append(callback)

    def remove_termination_listener(self, callback: Any) -> None:
        if callback in self.termination_listeners:
            self.termination_listeners.remove(callback)

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True

    def terminate(self) -> None:
        self.terminated = True
        self.closed = True

    # ----- test helpers -----

    def notify(self, channel: str, payload: str) -> None:
        """Deliver a NOTIFY the way asyncpg does."""
        self.listeners[channel](self, 4242, channel, payload)

    def drop(self) -> None:
        """Simulate the server closing the session."""
        self.closed = True
        for callback in list(self.termination_listeners):
            callback(self)


class FakeConnect:
    """Async callable with ``asyncpg.connect``'s keyword signature.

    Exceptions queued in ``failures`` are raised by successive calls
    before connections start being handed out.
    """

    def __init__(self, failures: list[BaseException] | None = None) -> None:
        self.failures = list(failures or [])
        self.calls: list[dict[str, Any]] = []
        self.connections: list[FakeConnection] = []

    async def __call__(self, **kwargs: Any) -> FakeConnection:
        self.calls.append(kwargs)
        if self.failures:
            raise self.failures.pop(0)
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


# ---------------------------------------------------------------------------
# Snapshot pool fakes
# ---------------------------------------------------------------------------


class FakeRecordConnection:
    """The slice of a pooled asyncpg connection the snapshot service uses."""

    def __init__(
        self,
        *,
        logs: list[dict[str, Any]] | None = None,
        alerts: list[dict[str, Any]] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.logs = logs or []
        self.alerts = alerts or []
        self.error = error
        self.queries: list[tuple[str, tuple[Any, ...]]] = []

    async def fetch(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        self.queries.append((sql, args))
        if self.error is not None:
            raise self.error
        rows = self.alerts if "public.alerts" in sql else self.logs
        return rows[: args[0]]

    async def fetchval(self, sql: str, *args: Any) -> int:
        self.queries.append((sql, args))
        if self.error is not None:
            raise self.error
        return len(self.alerts) if "public.alerts" in sql else len(self.logs)


class FakePool:
    def __init__(self, conn: FakeRecordConnection) -> None:
        self.conn = conn
        self.closed = False

    @asynccontextmanager
    async def acquire(self) -> Any:
        yield self.conn

    async def close(self) -> None:
        self.closed = True


class FakeCreatePool:
    """Async callable with ``asyncpg.create_pool``'s keyword signature."""

    def __init__(
        self,
        conn: FakeRecordConnection | None = None,
        failures: list[BaseException] | None = None,
    ) -> None:
        self.conn = conn or FakeRecordConnection()
        self.failures = list(failures or [])
        self.calls: list[dict[str, Any]] = []
        self.pools: list[FakePool] = []

    async def __call__(self, **kwargs: Any) -> FakePool:
        self.calls.append(kwargs)
        if self.failures:
            raise self.failures.pop(0)
        pool = FakePool(self.conn)
        self.pools.append(pool)
        return pool


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def fake_ssl_factory(ca_file: Path) -> object:
    """Stands in for create_ssl_context; the CA files in tests are not real PEM."""
    return object()


@pytest.fixture
def ca_file(tmp_path: Path) -> Path:
    path = tmp_path / "ca.pem"
    path.write_text("-----BEGIN CERTIFICATE-----\nnot-a-real-cert\n-----END CERTIFICATE-----\n")
    return path


@pytest.fixture
def config(tmp_path: Path, ca_file: Path) -> VigilConfig:
    """A complete configuration with a fast reconnect delay."""
    return VigilConfig(
        root=tmp_path,
        pg_host="db.internal",
        pg_user="vigil",
        pg_password="s3cret",
        pg_database="monitoring",
        pg_ssl_ca_path=ca_file.name,
        channel_logs=LOGS_CHANNEL,
        channel_alerts=ALERTS_CHANNEL,
        reconnect_delay=0.01,
        connect_timeout=1.0,
    )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def log_event(row_id: int = 1, action: Action = Action.INSERT, **extra: Any) -> ChangeEvent:
    row = {"id": row_id, "ip": "203.0.113.9", "path": "/login", "status": 200, **extra}
    return make_event(Channel.LOGS, action, row)


def alert_event(alert_id: int = 1, action: Action = Action.INSERT, **extra: Any) -> ChangeEvent:
    row = {"alert_id": alert_id, "severity": "high", "alert_type": "brute_force", **extra}
    return make_event(Channel.ALERTS, action, row)
