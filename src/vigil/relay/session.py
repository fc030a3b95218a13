"""Stream sessions — one SSE client bridged to one broadcaster subscription.

A session owns its subscription and its queue.  The broadcaster pushes
ChangeEvents into the queue without waiting; the session's async
generator drains it at whatever pace the client's socket allows, so a
slow client only ever stalls itself.

Termination is driven entirely by the transport: when the client goes
away Chirp closes (or cancels) the generator, whose ``finally`` calls
``close()`` and releases the subscription exactly once.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from chirp import SSEEvent

from vigil._errors import RelayError, SnapshotError
from vigil.relay.events import Action, Channel, ChangeEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from vigil._types import ClientID, SnapshotProvider
    from vigil.observability.collector import RelayCollector
    from vigil.relay.broadcaster import Broadcaster, SubscriptionHandle

logger = logging.getLogger(__name__)

CONNECTED_EVENT = "connected"
SNAPSHOT_EVENT = "snapshot"
ERROR_EVENT = "error"


@dataclass(frozen=True, slots=True)
class StreamEndpoint:
    """What one SSE route streams.

    Attributes:
        name: Short name used in logs (``logs`` / ``alerts``).
        channel: The only channel this endpoint forwards.
        actions: Actions forwarded; others are filtered out by the broadcaster.
        handshake: Message carried by the ``connected`` event.

    """

    name: str
    channel: Channel
    actions: frozenset[Action]
    handshake: str

    def accepts(self, event: ChangeEvent) -> bool:
        """Interest filter handed to the broadcaster."""
        return event.channel is self.channel and event.action in self.actions


LOGS_ENDPOINT = StreamEndpoint(
    name="logs",
    channel=Channel.LOGS,
    actions=frozenset(Action),
    handshake="SSE connection established",
)

ALERTS_ENDPOINT = StreamEndpoint(
    name="alerts",
    channel=Channel.ALERTS,
    actions=frozenset({Action.INSERT}),
    handshake="SSE Alerts connection established",
)


def format_sse(event: SSEEvent) -> str:
    """Render an SSEEvent as it appears on the wire.

    ``event: <name>\\ndata: <json>\\n\\n`` for named events,
    ``data: <json>\\n\\n`` for plain change events.
    """
    lines = []
    if event.event:
        lines.append(f"event: {event.event}")
    lines.extend(f"data: {line}" for line in str(event.data).split("\n"))
    return "\n".join(lines) + "\n\n"


class StreamSession:
    """One connected SSE client.

    Usage (inside a Chirp handler)::

        session = StreamSession(broadcaster, ALERTS_ENDPOINT)
        session.open()
        return EventStream(session.events())

    Args:
        broadcaster: Hub to subscribe to.
        endpoint: Which channel/actions to forward.
        collector: Optional observability sink.
        queue_size: Events buffered for this client before it is evicted.
        snapshot: Optional provider whose rows are sent once, after subscribing.
        client_id: Identifier for logs; a UUID4 when omitted.

    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        endpoint: StreamEndpoint,
        *,
        collector: RelayCollector | None = None,
        queue_size: int = 1000,
        snapshot: SnapshotProvider | None = None,
        client_id: ClientID | None = None,
    ) -> None:
        self._broadcaster = broadcaster
        self._endpoint = endpoint
        self._collector = collector
        self._snapshot = snapshot
        self.client_id: ClientID = client_id or str(uuid.uuid4())

        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=queue_size)
        self._handle: SubscriptionHandle | None = None
        self._opened = False
        self._closed = False
        self._evicted = False
        self._events_sent = 0
        self._t0 = 0.0

    @property
    def endpoint(self) -> StreamEndpoint:
        return self._endpoint

    @property
    def handle(self) -> SubscriptionHandle | None:
        return self._handle

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def evicted(self) -> bool:
        """True if the broadcaster dropped this session (queue overflow)."""
        return self._evicted

    @property
    def events_sent(self) -> int:
        return self._events_sent

    def open(self) -> SubscriptionHandle:
        """Register this session's single subscription.

        Raises:
            RelayError: If the session was already opened.

        """
        if self._opened:
            msg = f"session {self.client_id} is already open"
            raise RelayError(msg)
        self._opened = True
        self._t0 = time.perf_counter()
        self._handle = self._broadcaster.subscribe(
            self._endpoint.accepts,
            self._queue,
            label=self.client_id,
            on_evict=self._on_evict,
        )
        logger.info("SSE %s stream: client %s connected", self._endpoint.name, self.client_id)
        if self._collector is not None:
            self._collector.record_session_opened(self.client_id, self._endpoint.name)
        return self._handle

    def close(self) -> None:
        """Unsubscribe and mark the sink closed.  Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        if self._handle is not None:
            self._broadcaster.unsubscribe(self._handle)
        duration_ms = (time.perf_counter() - self._t0) * 1000 if self._t0 else 0.0
        logger.info(
            "SSE %s stream: client %s disconnected after %d events",
            self._endpoint.name,
            self.client_id,
            self._events_sent,
        )
        if self._collector is not None:
            self._collector.record_session_closed(
                self.client_id,
                self._endpoint.name,
                events_sent=self._events_sent,
                duration_ms=duration_ms,
            )

    async def events(self) -> AsyncIterator[SSEEvent]:
        """Yield the handshake, the optional snapshot, then live events.

        Used as the generator for Chirp's ``EventStream``.  Opens the
        session if the caller has not, and always closes it on exit.

        """
        if not self._opened:
            self.open()
        try:
            yield self._named(CONNECTED_EVENT, {"message": self._endpoint.handshake})

            if self._snapshot is not None:
                yield await self._snapshot_event()

            while not self._closed:
                if self._evicted and self._queue.empty():
                    logger.warning(
                        "SSE %s stream: ending client %s after falling behind",
                        self._endpoint.name,
                        self.client_id,
                    )
                    return
                change = await self._queue.get()
                sse = self._encode(change)
                if sse is None:
                    continue
                self._events_sent += 1
                yield sse
        except (asyncio.CancelledError, GeneratorExit):
            return
        finally:
            self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _snapshot_event(self) -> SSEEvent:
        assert self._snapshot is not None
        try:
            rows = await self._snapshot()
        except SnapshotError as exc:
            return self._named(ERROR_EVENT, {"error": exc.public_message})
        return self._named(SNAPSHOT_EVENT, {"table": self._endpoint.channel.table_name, "rows": rows})

    def _encode(self, change: ChangeEvent) -> SSEEvent | None:
        try:
            return SSEEvent(data=change.to_json())
        except (TypeError, ValueError) as exc:
            logger.error(
                "SSE %s stream: dropping unserializable %s event for client %s: %s",
                self._endpoint.name,
                change.action,
                self.client_id,
                exc,
            )
            if self._collector is not None:
                self._collector.record_serialization_failure(
                    self.client_id, change.channel.value, detail=str(exc)
                )
            return None

    def _named(self, name: str, body: dict[str, Any]) -> SSEEvent:
        return SSEEvent(data=json.dumps(body, default=str), event=name)

    def _on_evict(self, handle: SubscriptionHandle) -> None:
        self._evicted = True
