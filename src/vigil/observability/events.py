"""Unified event model for relay observability.

Defines event types for the connector, supervisor, broadcaster, and
stream sessions.  Pounce lifecycle events are stored alongside them as-is.

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal


# ---------------------------------------------------------------------------
# Change source events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConnectorStateChanged:
    """The change source connector moved between states.

    Attributes:
        previous: State before the transition.
        current: State after the transition.
        detail: Why the transition happened (error text, "listening", ...).
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    previous: str
    current: str
    detail: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class NotificationDropped:
    """A NOTIFY message was discarded instead of being published.

    Attributes:
        channel: PostgreSQL channel the message arrived on.
        reason: ``parse`` for malformed payloads, ``channel`` for unknown channels.
        detail: Human-readable explanation.
        raw_payload: The payload text, truncated to 500 characters.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    channel: str
    reason: Literal["parse", "channel"]
    detail: str
    raw_payload: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ReconnectScheduled:
    """The supervisor armed its single pending retry.

    Attributes:
        delay_s: Seconds until the attempt.
        attempt: Attempt number the retry will make (1-based).
        cause: Error or event that triggered the retry.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    delay_s: float
    attempt: int
    cause: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SupervisorHalted:
    """The supervisor gave up until restart (config or auth problem).

    Attributes:
        reason: ``config`` or ``auth``.
        detail: Error message.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    reason: Literal["config", "auth"]
    detail: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Fan-out events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EventPublished:
    """A ChangeEvent went through the broadcaster.

    Attributes:
        channel: Stream the event belongs to.
        action: Row change kind.
        delivered: Number of sinks that accepted the event.
        dropped: Number of sinks that failed and were removed.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    channel: str
    action: str
    delivered: int
    dropped: int
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SubscriberRemoved:
    """The broadcaster evicted a subscriber whose sink failed.

    Attributes:
        subscription_id: Numeric id of the removed handle.
        label: Handle label (usually the client id).
        detail: The sink failure.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    subscription_id: int
    label: str
    detail: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Session events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SessionOpened:
    """An SSE client connected and was subscribed.

    Attributes:
        client_id: Session identifier.
        endpoint: Stream endpoint name (``logs`` / ``alerts``).
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    client_id: str
    endpoint: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SessionClosed:
    """An SSE client went away and its subscription was released.

    Attributes:
        client_id: Session identifier.
        endpoint: Stream endpoint name.
        events_sent: ChangeEvents written to the client.
        duration_ms: Session lifetime in milliseconds.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    client_id: str
    endpoint: str
    events_sent: int
    duration_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SerializationFailed:
    """One event could not be encoded for one client and was skipped.

    Attributes:
        client_id: Session identifier.
        channel: Stream the event belongs to.
        detail: Encoder error.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    client_id: str
    channel: str
    detail: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type RelayEvent = (
    ConnectorStateChanged
    | NotificationDropped
    | ReconnectScheduled
    | SupervisorHalted
    | EventPublished
    | SubscriberRemoved
    | SessionOpened
    | SessionClosed
    | SerializationFailed
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
