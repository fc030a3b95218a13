"""Change source connector — one LISTEN session on PostgreSQL.

Holds a single asyncpg connection, issues ``LISTEN`` for every configured
channel, and turns each NOTIFY into a ChangeEvent that is handed straight to
the broadcaster.  Malformed or unexpected notifications are logged,
recorded, and dropped; they never leave this module and never stop the
listener.

The connector does not retry.  Lifecycle decisions belong to the
ReconnectSupervisor, which learns about unexpected session loss through
the ``on_session_end`` callback.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import asyncpg

from vigil._errors import AuthError, ConfigError, NetworkError, ParseError, SessionEnd
from vigil.data.tls import create_ssl_context
from vigil.relay.events import Channel, ChangeEvent, RawNotification, parse_notification

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    from vigil.config import VigilConfig
    from vigil.observability.collector import RelayCollector
    from vigil.relay.broadcaster import Broadcaster

logger = logging.getLogger(__name__)

_AUTH_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.InvalidPasswordError,
    asyncpg.InvalidAuthorizationSpecificationError,
)

_NETWORK_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    ssl.SSLError,
    TimeoutError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
)


class ConnectorState(StrEnum):
    """Lifecycle of the listening session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    LISTENING = "listening"


class ChangeSourceConnector:
    """Listens on PostgreSQL NOTIFY channels and publishes ChangeEvents.

    Args:
        config: Connection settings and channel names.
        broadcaster: Receives every valid ChangeEvent, synchronously.
        collector: Optional observability sink.
        connect: Coroutine factory with ``asyncpg.connect``'s signature.
        ssl_factory: Builds the TLS context from the CA file path.
        on_session_end: Called with the cause when the session drops
            without ``disconnect()`` having been called.

    """

    def __init__(
        self,
        config: VigilConfig,
        broadcaster: Broadcaster,
        *,
        collector: RelayCollector | None = None,
        connect: Callable[..., Awaitable[Any]] | None = None,
        ssl_factory: Callable[[Path], Any] = create_ssl_context,
        on_session_end: Callable[[BaseException], None] | None = None,
    ) -> None:
        self._config = config
        self._broadcaster = broadcaster
        self._collector = collector
        self._connect = connect if connect is not None else asyncpg.connect
        self._ssl_factory = ssl_factory
        self.on_session_end = on_session_end

        self._state = ConnectorState.DISCONNECTED
        self._conn: Any = None
        # PostgreSQL channel name -> Channel
        self._channels: dict[str, Channel] = {
            name: channel for channel, name in config.channel_names().items()
        }

    @property
    def state(self) -> ConnectorState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state is ConnectorState.LISTENING

    @property
    def channels(self) -> dict[str, Channel]:
        """PostgreSQL channel name to Channel mapping (copy)."""
        return dict(self._channels)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> ConnectorState:
        """Open the session and LISTEN on every configured channel.

        A no-op returning the current state if a session is already
        connecting or listening, so at most one session ever exists.

        Raises:
            ConfigError: Required settings or the CA file are missing/invalid.
            AuthError: The server rejected the credentials.
            NetworkError: Socket, TLS, or timeout failure.

        """
        if self._state is not ConnectorState.DISCONNECTED:
            logger.debug("connect() ignored: already %s", self._state)
            return self._state

        ssl_context = self._trust_material()
        self._set_state(ConnectorState.CONNECTING, "connecting")

        try:
            self._conn = await self._connect(
                host=self._config.pg_host,
                port=self._config.pg_port,
                user=self._config.pg_user,
                password=self._config.pg_password,
                database=self._config.pg_database,
                ssl=ssl_context,
                timeout=self._config.connect_timeout,
            )
            for name in self._channels:
                await self._conn.add_listener(name, self._on_pg_notification)
            self._conn.add_termination_listener(self._on_pg_termination)
        except _AUTH_ERRORS as exc:
            await self._abandon(f"authentication failed: {exc}")
            msg = f"Database rejected credentials for {self._config.pg_user!r}: {exc}"
            raise AuthError(msg) from exc
        except _NETWORK_ERRORS as exc:
            await self._abandon(f"connection failed: {exc!r}")
            msg = (
                f"Could not listen on {self._config.pg_host}:{self._config.pg_port}: {exc!r}"
            )
            raise NetworkError(msg) from exc
        except BaseException:
            await self._abandon("connect interrupted")
            raise

        self._set_state(ConnectorState.LISTENING, "listening")
        logger.info(
            "Listening on %s at %s:%d",
            ", ".join(sorted(self._channels)),
            self._config.pg_host,
            self._config.pg_port,
        )
        return self._state

    async def disconnect(self) -> None:
        """Release the session.  Idempotent; never triggers ``on_session_end``."""
        conn, self._conn = self._conn, None
        if conn is not None:
            await self._release(conn)
        if self._state is not ConnectorState.DISCONNECTED:
            self._set_state(ConnectorState.DISCONNECTED, "disconnect requested")
            logger.info("Listener disconnected")

    # ------------------------------------------------------------------
    # Notification handling
    # ------------------------------------------------------------------

    def on_notification(self, raw: RawNotification) -> ChangeEvent | None:
        """Validate one NOTIFY and publish it.

        Returns the published ChangeEvent, or None if the message was
        dropped (unknown channel or malformed payload).  Never raises.

        """
        channel = self._channels.get(raw.channel)
        if channel is None:
            logger.warning("Dropping notification on unmapped channel %r", raw.channel)
            if self._collector is not None:
                self._collector.record_dropped(
                    raw.channel,
                    "channel",
                    detail="channel is not mapped to a monitored table",
                    raw_payload=raw.payload,
                )
            return None

        try:
            event = parse_notification(raw, channel)
        except ParseError as exc:
            logger.warning("Dropping malformed notification: %s", exc)
            if self._collector is not None:
                self._collector.record_dropped(
                    raw.channel, "parse", detail=str(exc), raw_payload=raw.payload
                )
            return None

        logger.debug("%s on %s", event.action, event.table_name)
        self._broadcaster.publish(event)
        return event

    # asyncpg callbacks ------------------------------------------------

    def _on_pg_notification(
        self, connection: Any, pid: int, channel: str, payload: str
    ) -> None:
        self.on_notification(RawNotification(channel=channel, payload=payload or ""))

    def _on_pg_termination(self, connection: Any) -> None:
        if connection is not self._conn:
            return
        self._conn = None
        self._set_state(ConnectorState.DISCONNECTED, "session ended")
        logger.warning("Listener session ended unexpectedly")
        if self.on_session_end is not None:
            self.on_session_end(SessionEnd("database closed the listening session"))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _trust_material(self) -> Any:
        missing = self._config.missing_connection_settings()
        if missing:
            msg = f"Missing connection settings: {', '.join(missing)}"
            raise ConfigError(msg)

        ca_file = self._config.ssl_ca_file
        if ca_file is None or not ca_file.is_file():
            msg = f"CA certificate file not found: {ca_file}"
            raise ConfigError(msg)

        try:
            return self._ssl_factory(ca_file)
        except (OSError, ssl.SSLError) as exc:
            msg = f"Invalid CA certificate {ca_file}: {exc}"
            raise ConfigError(msg) from exc

    async def _abandon(self, detail: str) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            await self._release(conn)
        self._set_state(ConnectorState.DISCONNECTED, detail)

    async def _release(self, conn: Any) -> None:
        conn.remove_termination_listener(self._on_pg_termination)
        if conn.is_closed():
            return
        for name in self._channels:
            try:
                await conn.remove_listener(name, self._on_pg_notification)
            except _NETWORK_ERRORS as exc:
                logger.debug("remove_listener(%s) failed: %r", name, exc)
                break
        try:
            await asyncio.wait_for(conn.close(), timeout=self._config.connect_timeout)
        except _NETWORK_ERRORS as exc:
            logger.debug("Closing listener connection failed: %r", exc)
            conn.terminate()

    def _set_state(self, state: ConnectorState, detail: str) -> None:
        previous, self._state = self._state, state
        if previous is state:
            return
        if self._collector is not None:
            self._collector.record_state_change(previous.value, state.value, detail=detail)
