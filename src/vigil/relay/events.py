"""Change events — the typed form of a PostgreSQL NOTIFY message.

Database triggers publish JSON like::

    {"action": "INSERT", "table": "nginx_logs", "data": {...}}

on a per-table channel.  ``parse_notification`` validates one such message
against the channel it arrived on and returns an immutable ChangeEvent, or
raises ParseError.  Nothing downstream of this module ever sees raw JSON.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from vigil._errors import ParseError

if TYPE_CHECKING:
    from collections.abc import Mapping


class Channel(StrEnum):
    """Monitored entity streams, one NOTIFY channel each."""

    LOGS = "logs"
    ALERTS = "alerts"

    @property
    def table_name(self) -> str:
        """Table whose row changes this channel carries."""
        return _CHANNEL_TABLES[self]


class Action(StrEnum):
    """Row-level change kinds reported by the triggers."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


_CHANNEL_TABLES: dict[Channel, str] = {
    Channel.LOGS: "nginx_logs",
    Channel.ALERTS: "alerts",
}


@dataclass(frozen=True, slots=True)
class RawNotification:
    """A NOTIFY message as received off the wire.

    Attributes:
        channel: PostgreSQL channel name the message arrived on.
        payload: Unparsed JSON text.

    """

    channel: str
    payload: str


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One row-level change on a monitored table.

    Immutable once constructed: ``payload`` and ``old_payload`` are
    read-only mapping views.  Created by the connector, consumed by the
    broadcaster and every session without modification.

    Attributes:
        channel: Stream the event belongs to.
        action: INSERT, UPDATE or DELETE.
        table_name: Source table (always ``channel.table_name``).
        payload: The row as it is now (for DELETE, the removed row).
        old_payload: The row before an UPDATE or DELETE, when the trigger sends it.

    """

    channel: Channel
    action: Action
    table_name: str
    payload: Mapping[str, Any]
    old_payload: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Wire shape sent to SSE clients."""
        return {
            "action": self.action.value,
            "table": self.table_name,
            "data": dict(self.payload),
        }

    def to_json(self) -> str:
        """Serialize for an SSE ``data:`` line.

        Raises:
            TypeError: If the payload holds a value JSON cannot represent.
            ValueError: If the payload holds NaN or infinity.

        """
        return json.dumps(self.to_dict(), allow_nan=False, separators=(",", ":"))


def make_event(
    channel: Channel,
    action: Action,
    payload: Mapping[str, Any],
    *,
    old_payload: Mapping[str, Any] | None = None,
) -> ChangeEvent:
    """Build a ChangeEvent with frozen copies of the row mappings."""
    return ChangeEvent(
        channel=channel,
        action=action,
        table_name=channel.table_name,
        payload=MappingProxyType(dict(payload)),
        old_payload=MappingProxyType(dict(old_payload)) if old_payload is not None else None,
    )


def parse_notification(raw: RawNotification, channel: Channel) -> ChangeEvent:
    """Turn a raw notification on a known channel into a ChangeEvent.

    The row is taken from ``data``, falling back to ``new_data`` (or
    ``old_data`` for deletes) for triggers that use the generic
    ``{action, table, new_data, old_data}`` shape.

    Raises:
        ParseError: If the payload is not JSON, is not an object, names an
            unknown action, targets a different table, or carries no row.

    """
    if not raw.payload:
        msg = f"empty payload on channel {raw.channel!r}"
        raise ParseError(msg)

    try:
        message = json.loads(raw.payload)
    except json.JSONDecodeError as exc:
        msg = f"payload on channel {raw.channel!r} is not valid JSON: {exc.msg}"
        raise ParseError(msg) from exc

    if not isinstance(message, dict):
        msg = f"payload on channel {raw.channel!r} is {type(message).__name__}, expected object"
        raise ParseError(msg)

    try:
        action = Action(message.get("action"))
    except ValueError as exc:
        msg = f"unknown action {message.get('action')!r} on channel {raw.channel!r}"
        raise ParseError(msg) from exc

    table = message.get("table")
    if table != channel.table_name:
        msg = (
            f"table {table!r} on channel {raw.channel!r} does not match "
            f"expected {channel.table_name!r}"
        )
        raise ParseError(msg)

    old_row = message.get("old_data")
    row = message.get("data")
    if row is None:
        row = old_row if action is Action.DELETE else message.get("new_data")

    if not isinstance(row, dict):
        msg = f"{action.value} on {table!r} carries no row object"
        raise ParseError(msg)
    if old_row is not None and not isinstance(old_row, dict):
        msg = f"old_data on {table!r} must be an object"
        raise ParseError(msg)

    return make_event(channel, action, row, old_payload=old_row)
