"""``vigil watch`` — follow one stream in the terminal, without HTTP.

Runs the same connector, supervisor, and broadcaster the server uses,
subscribes before loading the snapshot, and keeps a RowWindow current
exactly the way a dashboard table does.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from vigil._errors import ConfigError, SnapshotError
from vigil.relay.session import ALERTS_ENDPOINT, LOGS_ENDPOINT
from vigil.relay.view import RowWindow

if TYPE_CHECKING:
    from collections.abc import Callable

    from vigil._types import SnapshotProvider
    from vigil.config import VigilConfig
    from vigil.relay.broadcaster import Broadcaster
    from vigil.relay.events import ChangeEvent
    from vigil.relay.session import StreamEndpoint

logger = logging.getLogger(__name__)

_ENDPOINTS = {"logs": LOGS_ENDPOINT, "alerts": ALERTS_ENDPOINT}
_KEYS = {"logs": "id", "alerts": "alert_id"}
_COLUMNS = {
    "logs": ("log_time", "ip", "method", "path", "status"),
    "alerts": ("created_at", "severity", "alert_type", "offender_ip", "reason"),
}


async def follow(
    broadcaster: Broadcaster,
    endpoint: StreamEndpoint,
    window: RowWindow,
    *,
    snapshot: SnapshotProvider | None = None,
    on_change: Callable[[ChangeEvent, RowWindow], None] | None = None,
    max_events: int | None = None,
) -> int:
    """Seed ``window`` and apply live events to it until cancelled.

    Subscribes first, then loads the snapshot, so changes committed while
    the snapshot query runs are queued rather than lost.

    Returns:
        Number of events applied (when stopped by ``max_events``).

    """
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
    handle = broadcaster.subscribe(endpoint.accepts, queue, label=f"watch:{endpoint.name}")
    applied = 0
    try:
        if snapshot is not None:
            try:
                window.seed(await snapshot())
            except SnapshotError as exc:
                logger.warning("Starting without snapshot: %s", exc)
        while max_events is None or applied < max_events:
            event = await queue.get()
            window.apply(event)
            applied += 1
            if on_change is not None:
                on_change(event, window)
    finally:
        broadcaster.unsubscribe(handle)
    return applied


def format_rows(rows: tuple[dict[str, Any], ...], columns: tuple[str, ...]) -> str:
    """Render rows as fixed-width text columns."""
    lines = []
    for row in rows:
        cells = [str(row.get(col, ""))[:40] for col in columns]
        lines.append("  ".join(cells))
    return "\n".join(lines)


async def _watch(config: VigilConfig, stream: str, rows: int) -> None:
    from vigil.app import build_relay

    relay = build_relay(config)
    endpoint = _ENDPOINTS[stream]
    window = RowWindow(_KEYS[stream], limit=rows)
    provider = relay.snapshots.recent_alerts if stream == "alerts" else relay.snapshots.recent_logs
    columns = _COLUMNS[stream]

    def _print(event: ChangeEvent, win: RowWindow) -> None:
        print(f"-- {event.action} on {event.table_name}", file=sys.stderr)
        print(format_rows(win.rows(), columns))

    await relay.supervisor.start()
    try:
        await follow(
            relay.broadcaster, endpoint, window, snapshot=provider, on_change=_print
        )
    finally:
        await relay.supervisor.stop()
        await relay.pool.close()


def run_watch(root: str, *, stream: str = "logs", rows: int = 10) -> int:
    """CLI wrapper: returns the process exit code."""
    from vigil.config_loader import load_config
    from vigil.observability import configure_logging

    try:
        config = load_config(Path(root))
    except ConfigError as exc:
        print(f"config error: {exc}", file=sys.stderr)
        return 1
    configure_logging(config.log_level)

    missing = config.missing_connection_settings()
    if missing:
        print(f"cannot watch, missing: {', '.join(missing)}", file=sys.stderr)
        return 1

    try:
        asyncio.run(_watch(config, stream, rows))
    except KeyboardInterrupt:
        pass
    return 0
