"""Snapshot queries — the newest rows a dashboard loads before streaming.

Independent of the live path: a snapshot failure never touches the
listener, and the listener being down never blocks a snapshot.  Errors
surface as SnapshotError carrying a message that is safe to show users;
the database's own error text is only logged.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

import asyncpg

from vigil._errors import SnapshotError

if TYPE_CHECKING:
    from vigil.config import VigilConfig
    from vigil.data.pool import DatabasePool

logger = logging.getLogger(__name__)

_RECENT_LOGS_SQL = (
    "SELECT id, ip, log_time, method, path, http_ver, status, bytes, user_agent "
    "FROM public.nginx_logs ORDER BY log_time DESC LIMIT $1"
)
_RECENT_ALERTS_SQL = (
    "SELECT alert_id, alert_type, severity, offender_ip, reason, explanation, created_at "
    "FROM public.alerts ORDER BY created_at DESC LIMIT $1"
)
_COUNT_LOGS_SQL = "SELECT COUNT(*) FROM public.nginx_logs"
_COUNT_ALERTS_SQL = "SELECT COUNT(*) FROM public.alerts"

_PERMISSION_DENIED = "42501"


def public_message(exc: BaseException, subject: str) -> str:
    """Pick the user-facing message for a failed query about ``subject``."""
    if getattr(exc, "sqlstate", None) == _PERMISSION_DENIED:
        return f"Database permission denied for fetching {subject}."
    if "certificate" in str(exc).lower():
        return "Database SSL certificate issue."
    return f"Failed to fetch {subject} from database."


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    # inet, Decimal, UUID and friends
    return str(value)


def _row_to_dict(record: Any) -> dict[str, Any]:
    return {key: _jsonable(value) for key, value in dict(record).items()}


class SnapshotService:
    """Recent-rows and count queries over the shared pool.

    Args:
        pool: Opened (or lazily openable) DatabasePool.
        config: Supplies default and maximum row limits.

    """

    def __init__(self, pool: DatabasePool, config: VigilConfig) -> None:
        self._pool = pool
        self._config = config

    def clamp_limit(self, limit: int | None, default: int) -> int:
        """Bound a client-supplied limit to ``1..snapshot_max_limit``."""
        if limit is None:
            limit = default
        return max(1, min(limit, self._config.snapshot_max_limit))

    async def recent_logs(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Newest nginx log rows first."""
        n = self.clamp_limit(limit, self._config.logs_snapshot_limit)
        return await self._fetch(_RECENT_LOGS_SQL, n, subject="logs")

    async def recent_alerts(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Newest alerts first."""
        n = self.clamp_limit(limit, self._config.alerts_snapshot_limit)
        return await self._fetch(_RECENT_ALERTS_SQL, n, subject="alerts")

    async def table_counts(self) -> dict[str, int]:
        """Row counts for the summary cards."""
        try:
            async with self._pool.acquire() as conn:
                logs = await conn.fetchval(_COUNT_LOGS_SQL)
                alerts = await conn.fetchval(_COUNT_ALERTS_SQL)
        except SnapshotError:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError) as exc:
            logger.error("Table count query failed: %r", exc)
            msg = "Failed to fetch table row counts."
            raise SnapshotError(msg) from exc
        return {"nginxLogsCount": int(logs or 0), "alertsCount": int(alerts or 0)}

    async def _fetch(self, sql: str, limit: int, *, subject: str) -> list[dict[str, Any]]:
        try:
            async with self._pool.acquire() as conn:
                records = await conn.fetch(sql, limit)
        except SnapshotError:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError) as exc:
            logger.error("Snapshot query for %s failed: %r", subject, exc)
            raise SnapshotError(public_message(exc, f"initial {subject}")) from exc
        return [_row_to_dict(r) for r in records]
