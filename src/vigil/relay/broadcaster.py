"""Broadcaster — fans ChangeEvents out to every interested SSE session.

The broadcaster is a routing table and nothing else.  Each registration
pairs an interest filter with a weak reference to the session's sink, so
the broadcaster never keeps a sink alive on its own: the session that
created the sink owns it and is responsible for unsubscribing.

Delivery is ``put_nowait`` only.  Buffering toward slow clients is the
session's job; a sink that refuses an item is evicted, the rest of the
publish carries on.
"""

from __future__ import annotations

import itertools
import logging
import threading
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from vigil._errors import SinkError

if TYPE_CHECKING:
    from collections.abc import Callable

    from vigil._types import InterestFilter
    from vigil.observability.collector import RelayCollector
    from vigil.relay.events import ChangeEvent

logger = logging.getLogger(__name__)


class Sink(Protocol):
    """Append-only, non-blocking output channel (``asyncio.Queue`` fits)."""

    def put_nowait(self, item: Any) -> None: ...


@dataclass(frozen=True, slots=True)
class SubscriptionHandle:
    """Opaque token returned by ``subscribe``.

    Attributes:
        id: Process-unique, never reused.
        label: Free-form tag for logs (usually the client id).

    """

    id: int
    label: str = ""


@dataclass(frozen=True, slots=True)
class _Registration:
    handle: SubscriptionHandle
    interest: InterestFilter
    sink_ref: weakref.ReferenceType[Sink]
    on_evict: Callable[[SubscriptionHandle], None] | None


class Broadcaster:
    """Process-wide publish/subscribe hub for ChangeEvents.

    Registrations are kept in insertion order, so every publish visits
    subscribers in the order they subscribed, and each subscriber sees
    events in publish order.

    Thread-safe: the registry is protected by a lock.  ``publish`` iterates
    over a snapshot taken under the lock, so subscribe/unsubscribe during a
    publish never disturbs the loop.

    """

    def __init__(self, *, collector: RelayCollector | None = None) -> None:
        self._registry: dict[SubscriptionHandle, _Registration] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._collector = collector

    @property
    def subscriber_count(self) -> int:
        """Number of live registrations."""
        with self._lock:
            return len(self._registry)

    def handles(self) -> tuple[SubscriptionHandle, ...]:
        """Registered handles in registration order (snapshot)."""
        with self._lock:
            return tuple(self._registry)

    def is_subscribed(self, handle: SubscriptionHandle) -> bool:
        with self._lock:
            return handle in self._registry

    def subscribe(
        self,
        interest: InterestFilter,
        sink: Sink,
        *,
        label: str = "",
        on_evict: Callable[[SubscriptionHandle], None] | None = None,
    ) -> SubscriptionHandle:
        """Register a sink for events matching ``interest``.

        Args:
            interest: Predicate evaluated once per published event.
            sink: Weak-referenceable object with ``put_nowait``.
            label: Tag used in logs and observability events.
            on_evict: Called (outside the lock) if the broadcaster removes
                this registration because its sink failed.

        Returns:
            Handle to pass to ``unsubscribe``.

        """
        handle = SubscriptionHandle(id=next(self._ids), label=label)
        registration = _Registration(
            handle=handle,
            interest=interest,
            sink_ref=weakref.ref(sink),
            on_evict=on_evict,
        )
        with self._lock:
            self._registry[handle] = registration
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Remove a registration.  Unknown or already-removed handles are a no-op.

        Returns:
            True if a registration was removed by this call.

        """
        with self._lock:
            return self._registry.pop(handle, None) is not None

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to every registration whose filter accepts it.

        Never blocks and never raises for a subscriber failure.  Failed
        subscribers are removed after the delivery loop completes.

        Returns:
            Number of sinks the event was delivered to.

        """
        with self._lock:
            registrations = tuple(self._registry.values())

        delivered = 0
        failed: list[tuple[_Registration, SinkError]] = []

        for registration in registrations:
            try:
                if self._deliver(registration, event):
                    delivered += 1
            except SinkError as exc:
                failed.append((registration, exc))

        for registration, exc in failed:
            self._evict(registration, exc)

        if self._collector is not None:
            self._collector.record_publish(
                event.channel.value,
                event.action.value,
                delivered=delivered,
                dropped=len(failed),
            )

        return delivered

    def _deliver(self, registration: _Registration, event: ChangeEvent) -> bool:
        """Hand one event to one sink.  Returns False if filtered out.

        Raises:
            SinkError: If the filter raises, the sink is gone, or it refuses the item.

        """
        sink = registration.sink_ref()
        if sink is None:
            msg = "sink was garbage-collected without unsubscribing"
            raise SinkError(msg)

        try:
            wanted = registration.interest(event)
        except Exception as exc:
            msg = f"interest filter failed: {exc!r}"
            raise SinkError(msg) from exc
        if not wanted:
            return False

        try:
            sink.put_nowait(event)
        except Exception as exc:
            msg = f"sink refused event: {exc!r}"
            raise SinkError(msg) from exc
        return True

    def _evict(self, registration: _Registration, exc: SinkError) -> None:
        if not self.unsubscribe(registration.handle):
            return  # the owner unsubscribed while we were publishing

        handle = registration.handle
        logger.warning(
            "Removing subscriber %d (%s): %s", handle.id, handle.label or "-", exc
        )
        if self._collector is not None:
            self._collector.record_subscriber_removed(handle.id, handle.label, detail=str(exc))
        if registration.on_evict is not None:
            registration.on_evict(handle)
