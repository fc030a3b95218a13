"""Relay observability — typed events plus the server log.

Two channels, used side by side:

- **Event log**: frozen dataclass events (connector transitions, dropped
  notifications, publishes, session open/close) in a bounded ring buffer,
  exposed on ``/api/relay/status``.
- **Logging**: module loggers (``logging.getLogger(__name__)``) for the
  operator, configured once by ``configure_logging``.

Quick Start:
    >>> from vigil.observability import EventLog, RelayCollector
    >>> collector = RelayCollector(EventLog())
    >>> collector.record_session_opened("c1", "logs")
    >>> len(collector.log)
    1

"""

from vigil.observability.collector import RelayCollector
from vigil.observability.events import (
    ConnectorStateChanged,
    EventPublished,
    NotificationDropped,
    ReconnectScheduled,
    RelayEvent,
    SerializationFailed,
    SessionClosed,
    SessionOpened,
    SubscriberRemoved,
    SupervisorHalted,
    now_ns,
)
from vigil.observability.log import EventLog
from vigil.observability.logconfig import configure_logging

__all__ = [
    "ConnectorStateChanged",
    "EventLog",
    "EventPublished",
    "NotificationDropped",
    "ReconnectScheduled",
    "RelayCollector",
    "RelayEvent",
    "SerializationFailed",
    "SessionClosed",
    "SessionOpened",
    "SubscriberRemoved",
    "SupervisorHalted",
    "configure_logging",
    "now_ns",
]
