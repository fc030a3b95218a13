"""Relay collector — one recording surface for every relay component.

Implements Pounce's ``LifecycleCollector`` protocol (``record``) so server
connection events land in the same EventLog as connector, broadcaster,
and session events.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.
    Safe for concurrent use from multiple Pounce worker threads.

"""

from __future__ import annotations

from typing import Any, Literal

from vigil.observability.events import (
    ConnectorStateChanged,
    EventPublished,
    NotificationDropped,
    ReconnectScheduled,
    SerializationFailed,
    SessionClosed,
    SessionOpened,
    SubscriberRemoved,
    SupervisorHalted,
    now_ns,
)
from vigil.observability.log import EventLog

_MAX_RAW_PAYLOAD = 500


class RelayCollector:
    """Unified event collector for the relay.

    Args:
        log: The EventLog to store events in.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    # ----- Pounce LifecycleCollector protocol -----

    def record(self, event: Any) -> None:
        """Record a Pounce lifecycle event unchanged."""
        self._log.append(event)

    # ----- Change source -----

    def record_state_change(self, previous: str, current: str, *, detail: str = "") -> None:
        self._log.append(
            ConnectorStateChanged(
                previous=previous,
                current=current,
                detail=detail,
                timestamp_ns=now_ns(),
            )
        )

    def record_dropped(
        self,
        channel: str,
        reason: Literal["parse", "channel"],
        *,
        detail: str = "",
        raw_payload: str = "",
    ) -> None:
        """Record a discarded NOTIFY message (payload is truncated)."""
        self._log.append(
            NotificationDropped(
                channel=channel,
                reason=reason,
                detail=detail,
                raw_payload=raw_payload[:_MAX_RAW_PAYLOAD],
                timestamp_ns=now_ns(),
            )
        )

    def record_reconnect(self, delay_s: float, attempt: int, *, cause: str = "") -> None:
        self._log.append(
            ReconnectScheduled(
                delay_s=delay_s,
                attempt=attempt,
                cause=cause,
                timestamp_ns=now_ns(),
            )
        )

    def record_halt(self, reason: Literal["config", "auth"], *, detail: str = "") -> None:
        self._log.append(
            SupervisorHalted(reason=reason, detail=detail, timestamp_ns=now_ns())
        )

    # ----- Fan-out -----

    def record_publish(
        self,
        channel: str,
        action: str,
        *,
        delivered: int = 0,
        dropped: int = 0,
    ) -> None:
        self._log.append(
            EventPublished(
                channel=channel,
                action=action,
                delivered=delivered,
                dropped=dropped,
                timestamp_ns=now_ns(),
            )
        )

    def record_subscriber_removed(
        self, subscription_id: int, label: str, *, detail: str = ""
    ) -> None:
        self._log.append(
            SubscriberRemoved(
                subscription_id=subscription_id,
                label=label,
                detail=detail,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Sessions -----

    def record_session_opened(self, client_id: str, endpoint: str) -> None:
        self._log.append(
            SessionOpened(client_id=client_id, endpoint=endpoint, timestamp_ns=now_ns())
        )

    def record_session_closed(
        self,
        client_id: str,
        endpoint: str,
        *,
        events_sent: int = 0,
        duration_ms: float = 0.0,
    ) -> None:
        self._log.append(
            SessionClosed(
                client_id=client_id,
                endpoint=endpoint,
                events_sent=events_sent,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    def record_serialization_failure(
        self, client_id: str, channel: str, *, detail: str = ""
    ) -> None:
        self._log.append(
            SerializationFailed(
                client_id=client_id,
                channel=channel,
                detail=detail,
                timestamp_ns=now_ns(),
            )
        )
