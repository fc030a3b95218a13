"""Database pool — the one asyncpg pool snapshot queries run on.

Constructed explicitly from VigilConfig and opened once, in the app's
startup hook.  Nothing module-global: whoever builds the app owns the
pool and passes it to the SnapshotService.

If the database is unreachable at startup the pool stays closed and the
next ``acquire()`` retries the open; once a pool exists it is never
replaced.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import asyncpg

from vigil._errors import ConfigError, RelayError, SnapshotError
from vigil.data.tls import create_ssl_context

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from pathlib import Path

    from vigil.config import VigilConfig

logger = logging.getLogger(__name__)


class DatabasePool:
    """Single-initialization wrapper around ``asyncpg.create_pool``.

    Args:
        config: Connection settings.
        create_pool: Factory with ``asyncpg.create_pool``'s signature.
        ssl_factory: Builds the TLS context from the CA file path.

    """

    def __init__(
        self,
        config: VigilConfig,
        *,
        create_pool: Callable[..., Awaitable[Any]] | None = None,
        ssl_factory: Callable[[Path], Any] = create_ssl_context,
    ) -> None:
        self._config = config
        self._create_pool = create_pool if create_pool is not None else asyncpg.create_pool
        self._ssl_factory = ssl_factory
        self._pool: Any = None
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def open(self) -> None:
        """Create the pool.

        Raises:
            RelayError: If the pool is already open or was closed for good.
            ConfigError: If connection settings are incomplete.
            SnapshotError: If the database cannot be reached.

        """
        async with self._lock:
            if self._pool is not None:
                msg = "database pool is already open"
                raise RelayError(msg)
            await self._open_locked()

    async def close(self) -> None:
        """Close the pool.  Idempotent; the pool cannot be reopened afterwards."""
        self._closed = True
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()
            logger.info("Database pool closed")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        """Borrow a connection, opening the pool first if startup could not.

        Raises:
            SnapshotError: If the pool is closed or cannot be opened.

        """
        if self._pool is None:
            async with self._lock:
                if self._pool is None:
                    try:
                        await self._open_locked()
                    except ConfigError as exc:
                        msg = "Server configuration error for database."
                        raise SnapshotError(msg) from exc
        async with self._pool.acquire() as conn:
            yield conn

    async def _open_locked(self) -> None:
        if self._closed:
            msg = "Database pool has been shut down."
            raise SnapshotError(msg)

        cfg = self._config
        missing = [
            name for name in cfg.missing_connection_settings()
            if not name.startswith("PG_CHANNEL_")
        ]
        if missing:
            msg = f"Missing database settings: {', '.join(missing)}"
            raise ConfigError(msg)

        ca_file = cfg.ssl_ca_file
        try:
            ssl_context = self._ssl_factory(ca_file) if ca_file is not None else None
        except (OSError, ValueError) as exc:
            msg = f"Invalid CA certificate {ca_file}: {exc}"
            raise ConfigError(msg) from exc

        try:
            self._pool = await self._create_pool(
                host=cfg.pg_host,
                port=cfg.pg_port,
                user=cfg.pg_user,
                password=cfg.pg_password,
                database=cfg.pg_database,
                ssl=ssl_context,
                min_size=1,
                max_size=cfg.effective_pool_size,
                timeout=cfg.connect_timeout,
                command_timeout=cfg.connect_timeout,
            )
        except (OSError, TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            logger.error("Could not open database pool: %r", exc)
            msg = "Failed to connect to database."
            raise SnapshotError(msg) from exc

        logger.info(
            "Database pool open (%s:%d/%s, max %d)",
            cfg.pg_host,
            cfg.pg_port,
            cfg.pg_database,
            cfg.effective_pool_size,
        )
