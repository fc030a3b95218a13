"""Shared type definitions for vigil."""

from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vigil.relay.events import ChangeEvent

# SSE client identifier
type ClientID = str

# PostgreSQL NOTIFY channel name (e.g. "nginx_log_changes")
type ChannelName = str

# One table row as delivered to clients
type Row = Mapping[str, Any]

# Subscription predicate evaluated by the broadcaster on every publish
type InterestFilter = Callable[[ChangeEvent], bool]

# Zero-argument coroutine returning the newest rows for a stream
type SnapshotProvider = Callable[[], Awaitable[list[dict[str, Any]]]]
