"""Reconnect supervisor — keeps the change source connector alive.

State machine::

    DISCONNECTED ──attempt──▶ CONNECTING ──ok──▶ LISTENING
         ▲                        │                  │
         └──── error / halt ──────┘◀── session end ──┘

Transient failures (NetworkError, SessionEnd) arm a single retry after a
fixed delay, forever.  Operator-fixable failures (ConfigError, AuthError)
halt the supervisor until the process restarts.  While not LISTENING the
dashboard is degraded: streams stay open but carry no events.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from vigil._errors import AuthError, ConfigError, ConnectError, RelayError
from vigil.relay.connector import ConnectorState

if TYPE_CHECKING:
    from vigil.config import VigilConfig
    from vigil.observability.collector import RelayCollector
    from vigil.relay.connector import ChangeSourceConnector

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[ConnectorState, frozenset[ConnectorState]] = {
    ConnectorState.DISCONNECTED: frozenset({ConnectorState.CONNECTING}),
    ConnectorState.CONNECTING: frozenset(
        {ConnectorState.LISTENING, ConnectorState.DISCONNECTED}
    ),
    ConnectorState.LISTENING: frozenset({ConnectorState.DISCONNECTED}),
}


class ReconnectSupervisor:
    """Drives a ChangeSourceConnector through connect / retry / halt.

    Installs itself as the connector's ``on_session_end`` callback.

    Args:
        connector: The connector to supervise (exactly one per process).
        config: Supplies ``reconnect_delay`` and the completeness check.
        collector: Optional observability sink.

    """

    def __init__(
        self,
        connector: ChangeSourceConnector,
        config: VigilConfig,
        *,
        collector: RelayCollector | None = None,
    ) -> None:
        self._connector = connector
        self._config = config
        self._collector = collector
        self._delay = config.reconnect_delay

        self._state = ConnectorState.DISCONNECTED
        self._retry_task: asyncio.Task[None] | None = None
        # The retry task once its delay has elapsed and connect() is running.
        self._attempt_task: asyncio.Task[None] | None = None
        self._attempts = 0
        self._disabled = False
        self._stopped = False
        self._halted_reason: str | None = None

        connector.on_session_end = self._on_session_end

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectorState:
        return self._state

    @property
    def attempts(self) -> int:
        """Connection attempts made so far."""
        return self._attempts

    @property
    def pending_retry(self) -> bool:
        return self._retry_task is not None and not self._retry_task.done()

    @property
    def disabled(self) -> bool:
        """True when configuration was incomplete at startup."""
        return self._disabled

    @property
    def halted_reason(self) -> str | None:
        """Why retries stopped (config/auth error text), or None."""
        return self._halted_reason

    @property
    def degraded(self) -> bool:
        """True whenever live updates are not flowing."""
        return self._state is not ConnectorState.LISTENING

    def status(self) -> dict[str, object]:
        """JSON-ready summary for the status endpoint."""
        return {
            "state": self._state.value,
            "connector_state": self._connector.state.value,
            "attempts": self._attempts,
            "pending_retry": self.pending_retry,
            "disabled": self._disabled,
            "halted_reason": self._halted_reason,
            "reconnect_delay_s": self._delay,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Make the first connection attempt.

        With incomplete configuration this logs one warning and returns
        without ever connecting or retrying.

        """
        missing = self._config.missing_connection_settings()
        if missing:
            self._disabled = True
            logger.warning(
                "Live updates disabled: missing %s. Streams will stay idle "
                "until the process is restarted with these set.",
                ", ".join(missing),
            )
            return

        await self._attempt()

    async def stop(self) -> None:
        """Cancel any pending retry or in-flight attempt, then release the connector.

        Idempotent.  No listening session outlives this call.

        """
        self._stopped = True
        self._cancel_retry()
        await self._cancel_attempt()
        await self._connector.disconnect()
        self._settle_disconnected()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _attempt(self) -> None:
        if self._stopped or self._halted_reason is not None:
            return
        if self._state is not ConnectorState.DISCONNECTED:
            return

        self._transition(ConnectorState.CONNECTING)
        self._attempts += 1

        try:
            await self._connector.connect()
        except ConfigError as exc:
            self._settle_disconnected()
            self._halt("config", exc)
        except AuthError as exc:
            self._settle_disconnected()
            self._halt("auth", exc)
        except ConnectError as exc:
            self._settle_disconnected()
            logger.warning("Listener connection attempt %d failed: %s", self._attempts, exc)
            self._schedule_retry(exc)
        except BaseException:
            self._settle_disconnected()
            raise
        else:
            if self._stopped:
                # stop() ran while connect() was awaiting the server.
                await self._connector.disconnect()
                self._settle_disconnected()
                return
            self._transition(ConnectorState.LISTENING)
            self._cancel_retry()

    def _on_session_end(self, cause: BaseException) -> None:
        if self._state is ConnectorState.LISTENING:
            self._transition(ConnectorState.DISCONNECTED)
        if self._stopped:
            return
        logger.warning("Live updates paused: %s", cause)
        self._schedule_retry(cause)

    def _schedule_retry(self, cause: BaseException) -> None:
        """Arm the single pending retry, replacing any earlier one."""
        if self._stopped:
            return
        self._cancel_retry()
        self._retry_task = asyncio.get_running_loop().create_task(
            self._retry_after(self._delay),
            name="vigil-reconnect",
        )
        logger.info("Reconnecting in %.1fs", self._delay)
        if self._collector is not None:
            self._collector.record_reconnect(
                self._delay, self._attempts + 1, cause=str(cause)
            )

    async def _retry_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # From here on this task is the attempt itself, not a pending timer.
        self._retry_task = None
        self._attempt_task = asyncio.current_task()
        try:
            await self._attempt()
        finally:
            if self._attempt_task is asyncio.current_task():
                self._attempt_task = None

    def _cancel_retry(self) -> None:
        task, self._retry_task = self._retry_task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    async def _cancel_attempt(self) -> None:
        task, self._attempt_task = self._attempt_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.wait([task])
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Reconnect attempt failed during shutdown: %r", task.exception())

    def _settle_disconnected(self) -> None:
        if self._state is not ConnectorState.DISCONNECTED:
            self._transition(ConnectorState.DISCONNECTED)

    def _halt(self, reason: str, exc: BaseException) -> None:
        self._halted_reason = str(exc)
        self._cancel_retry()
        logger.error(
            "Live updates stopped (%s error, not retried until restart): %s", reason, exc
        )
        if self._collector is not None:
            self._collector.record_halt(reason, detail=str(exc))  # type: ignore[arg-type]

    def _transition(self, target: ConnectorState) -> None:
        if target not in _TRANSITIONS[self._state]:
            msg = f"illegal supervisor transition {self._state} -> {target}"
            raise RelayError(msg)
        self._state = target
