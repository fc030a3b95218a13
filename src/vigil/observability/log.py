"""Relay event log — the recent history behind ``/api/relay/status``.

A bounded ring of relay events plus lifetime counters that survive
eviction, so the status route can report "12 notifications dropped since
start" even after those events have rotated out of the ring.

Thread Safety:
    Guarded by one ``threading.Lock``; Pounce workers and the relay's
    event loop may append concurrently.

"""

import threading
from collections import Counter, deque
from typing import Any

from vigil.observability.events import RelayEvent


class EventLog:
    """Bounded, queryable store of relay events.

    Args:
        max_events: Events retained for querying.  Older ones are discarded
            but still counted in ``stats()``.

    """

    __slots__ = ("_counts", "_lock", "_max_events", "_ring", "_seen")

    def __init__(self, max_events: int = 10_000) -> None:
        self._max_events = max_events
        self._ring: deque[RelayEvent] = deque(maxlen=max_events)
        self._counts: Counter[str] = Counter()
        self._seen = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._ring)

    def append(self, event: RelayEvent) -> None:
        with self._lock:
            self._ring.append(event)
            self._counts[type(event).__name__] += 1
            self._seen += 1

    def query(
        self,
        *,
        event_type: type | tuple[type, ...] | None = None,
        channel: str | None = None,
        client_id: str | None = None,
        since_ns: int = 0,
        limit: int = 100,
    ) -> list[RelayEvent]:
        """Retained events matching every given filter, newest first.

        ``channel`` and ``client_id`` compare against the attribute of the
        same name; events without it never match those filters.
        """
        with self._lock:
            candidates = list(self._ring)

        matched: list[RelayEvent] = []
        for event in reversed(candidates):
            if event_type is not None and not isinstance(event, event_type):
                continue
            if since_ns and getattr(event, "timestamp_ns", 0) < since_ns:
                continue
            if channel is not None and getattr(event, "channel", None) != channel:
                continue
            if client_id is not None and getattr(event, "client_id", None) != client_id:
                continue
            matched.append(event)
            if len(matched) == limit:
                break
        return matched

    def recent(self, n: int = 20) -> list[RelayEvent]:
        """The last ``n`` retained events, oldest first."""
        with self._lock:
            return list(self._ring)[-n:]

    def clear(self) -> int:
        """Drop retained events (lifetime counters are kept).  Returns how many."""
        with self._lock:
            dropped = len(self._ring)
            self._ring.clear()
            return dropped

    def stats(self) -> dict[str, Any]:
        """Counters for the status route."""
        with self._lock:
            return {
                "total": len(self._ring),
                "max_events": self._max_events,
                "recorded": self._seen,
                "by_type": dict(self._counts),
            }
