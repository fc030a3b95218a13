"""Vigil configuration.

VigilConfig is the central configuration object, frozen after creation.
It is built once at startup by ``vigil.config_loader.load_config`` and
passed explicitly to every component that needs it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from vigil._errors import ConfigError

if TYPE_CHECKING:
    from vigil._types import ChannelName
    from vigil.relay.events import Channel


# Settings without which the listener can never connect, keyed by the
# environment variable operators set them through.
_REQUIRED_CONNECTION_SETTINGS: tuple[tuple[str, str], ...] = (
    ("pg_host", "PG_HOST"),
    ("pg_user", "PG_USER"),
    ("pg_password", "PG_PASSWORD"),
    ("pg_database", "PG_DATABASE"),
    ("pg_ssl_ca_path", "PG_SSL_CA_PATH"),
    ("channel_logs", "PG_CHANNEL_LOGS"),
    ("channel_alerts", "PG_CHANNEL_ALERTS"),
)


@dataclass(frozen=True, slots=True)
class VigilConfig:
    """Configuration for a Vigil relay process.

    Attributes:
        root: Directory relative paths (CA file, config file) resolve against.
              Always resolved to an absolute path on construction.
        host: Bind address for the HTTP server.
        port: Bind port for the HTTP server.
        workers: Number of Pounce workers. Each worker runs its own relay.
        debug: Enable Chirp debug mode and a smaller connection pool.
        pg_host: PostgreSQL host.
        pg_port: PostgreSQL port.
        pg_user: PostgreSQL role.
        pg_password: Password for ``pg_user``.
        pg_database: Database name.
        pg_ssl_ca_path: PEM file with the CA that signed the server certificate.
        channel_logs: NOTIFY channel carrying nginx log rows.
        channel_alerts: NOTIFY channel carrying alert rows.
        reconnect_delay: Seconds between a lost session and the next attempt.
        connect_timeout: Seconds allowed for connecting and for each query.
        session_queue_size: Per-client buffer between broadcaster and socket.
        logs_snapshot_limit: Default row count for the logs snapshot.
        alerts_snapshot_limit: Default row count for the alerts snapshot.
        snapshot_max_limit: Upper bound for a client-supplied ``limit``.
        pool_max_size: Snapshot pool size (0 = 5 in debug, 20 otherwise).
        log_level: Root log level name.

    """

    root: Path = field(default_factory=Path.cwd)
    host: str = "127.0.0.1"
    port: int = 8000
    workers: int = 1
    debug: bool = False
    pg_host: str | None = None
    pg_port: int = 5432
    pg_user: str | None = None
    pg_password: str | None = None
    pg_database: str | None = None
    pg_ssl_ca_path: str | None = None
    channel_logs: str | None = None
    channel_alerts: str | None = None
    reconnect_delay: float = 5.0
    connect_timeout: float = 5.0
    session_queue_size: int = 1000
    logs_snapshot_limit: int = 100
    alerts_snapshot_limit: int = 50
    snapshot_max_limit: int = 500
    pool_max_size: int = 0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())

        if not 0 < self.port < 65536:
            msg = f"port must be between 1 and 65535, got {self.port}"
            raise ConfigError(msg)
        if not 0 < self.pg_port < 65536:
            msg = f"pg_port must be between 1 and 65535, got {self.pg_port}"
            raise ConfigError(msg)
        if self.reconnect_delay < 0:
            msg = f"reconnect_delay must not be negative, got {self.reconnect_delay}"
            raise ConfigError(msg)
        if self.connect_timeout <= 0:
            msg = f"connect_timeout must be positive, got {self.connect_timeout}"
            raise ConfigError(msg)
        if self.session_queue_size <= 0:
            msg = f"session_queue_size must be positive, got {self.session_queue_size}"
            raise ConfigError(msg)
        if self.snapshot_max_limit <= 0:
            msg = f"snapshot_max_limit must be positive, got {self.snapshot_max_limit}"
            raise ConfigError(msg)
        if self.workers < 1:
            msg = f"workers must be at least 1, got {self.workers}"
            raise ConfigError(msg)

    @property
    def ssl_ca_file(self) -> Path | None:
        """Absolute path to the CA file, or None when unset."""
        if not self.pg_ssl_ca_path:
            return None
        path = Path(self.pg_ssl_ca_path)
        if path.is_absolute():
            return path
        return self.root / path

    @property
    def effective_pool_size(self) -> int:
        """Snapshot pool size after applying the debug/production default."""
        if self.pool_max_size > 0:
            return self.pool_max_size
        return 5 if self.debug else 20

    def missing_connection_settings(self) -> tuple[str, ...]:
        """Environment variable names of required settings that are unset."""
        return tuple(
            env_name
            for attr, env_name in _REQUIRED_CONNECTION_SETTINGS
            if not getattr(self, attr)
        )

    def channel_names(self) -> dict[Channel, ChannelName]:
        """Map each configured Channel to its PostgreSQL channel name."""
        from vigil.relay.events import Channel

        names: dict[Channel, ChannelName] = {}
        if self.channel_logs:
            names[Channel.LOGS] = self.channel_logs
        if self.channel_alerts:
            names[Channel.ALERTS] = self.channel_alerts
        return names
