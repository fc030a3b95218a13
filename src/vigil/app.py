"""Vigil application — wires the relay, snapshots, and routes into a Chirp app.

``create_app`` builds everything from a VigilConfig with no global state:
one Broadcaster, one connector under one supervisor, one database pool.
``serve`` runs the result on Pounce.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from vigil._errors import SnapshotError
from vigil.config_loader import load_config

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chirp import App

    from vigil.config import VigilConfig
    from vigil.data.pool import DatabasePool
    from vigil.data.snapshot import SnapshotService
    from vigil.observability.collector import RelayCollector
    from vigil.relay.broadcaster import Broadcaster
    from vigil.relay.connector import ChangeSourceConnector
    from vigil.relay.supervisor import ReconnectSupervisor
    from vigil.server.routes import StreamRouter

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Relay:
    """Every long-lived object of one vigil process, built once at startup.

    Attributes:
        config: The resolved configuration.
        collector: Observability sink shared by all components.
        broadcaster: The fan-out hub.
        connector: The LISTEN session.
        supervisor: Owner of the connector's lifecycle.
        pool: Snapshot connection pool.
        snapshots: Snapshot query service.

    """

    config: VigilConfig
    collector: RelayCollector
    broadcaster: Broadcaster
    connector: ChangeSourceConnector
    supervisor: ReconnectSupervisor
    pool: DatabasePool
    snapshots: SnapshotService


def build_relay(
    config: VigilConfig,
    *,
    connect: Callable[..., Awaitable[Any]] | None = None,
    create_pool: Callable[..., Awaitable[Any]] | None = None,
    ssl_factory: Callable[[Path], Any] | None = None,
) -> Relay:
    """Construct (but do not start) the relay components.

    Args:
        config: Resolved configuration.
        connect: Override for ``asyncpg.connect`` (tests).
        create_pool: Override for ``asyncpg.create_pool`` (tests).
        ssl_factory: Override for the TLS context builder (tests).

    """
    from vigil.data.pool import DatabasePool
    from vigil.data.snapshot import SnapshotService
    from vigil.data.tls import create_ssl_context
    from vigil.observability import EventLog, RelayCollector
    from vigil.relay.broadcaster import Broadcaster
    from vigil.relay.connector import ChangeSourceConnector
    from vigil.relay.supervisor import ReconnectSupervisor

    if ssl_factory is None:
        ssl_factory = create_ssl_context

    collector = RelayCollector(EventLog())
    broadcaster = Broadcaster(collector=collector)
    connector = ChangeSourceConnector(
        config, broadcaster, collector=collector, connect=connect, ssl_factory=ssl_factory
    )
    supervisor = ReconnectSupervisor(connector, config, collector=collector)
    pool = DatabasePool(config, create_pool=create_pool, ssl_factory=ssl_factory)
    snapshots = SnapshotService(pool, config)

    return Relay(
        config=config,
        collector=collector,
        broadcaster=broadcaster,
        connector=connector,
        supervisor=supervisor,
        pool=pool,
        snapshots=snapshots,
    )


def _create_chirp_app(config: VigilConfig) -> App:
    """Create the Chirp App.  Vigil renders no templates, only JSON and SSE."""
    from chirp import App, AppConfig

    app_config = AppConfig(
        debug=config.debug,
        host=config.host,
        port=config.port,
    )
    return App(config=app_config)


def _wire_routes(app: App, relay: Relay) -> StreamRouter:
    from vigil.server.routes import StreamRouter

    router = StreamRouter(
        app,
        relay.broadcaster,
        relay.config,
        snapshots=relay.snapshots,
        supervisor=relay.supervisor,
        collector=relay.collector,
    )
    router.register_all()
    return router


def _wire_lifecycle(app: App, relay: Relay) -> None:
    """Start the pool and supervisor with the server, stop them with it.

    Registers ``on_startup`` / ``on_shutdown`` hooks on *app* so the
    listener lives inside the event loop managed by Pounce.

    Flow:
        on_startup  → open pool (failure is logged; snapshots retry lazily)
                    → supervisor.start() (first connect, or disabled warning)
        on_shutdown → supervisor.stop() → pool.close()

    """

    @app.on_startup
    async def _start_relay() -> None:
        if not relay.config.missing_connection_settings():
            try:
                await relay.pool.open()
            except SnapshotError as exc:
                logger.warning("Snapshot pool unavailable at startup: %s", exc)
        await relay.supervisor.start()

    @app.on_shutdown
    async def _stop_relay() -> None:
        await relay.supervisor.stop()
        await relay.pool.close()


def create_app(
    config: VigilConfig,
    *,
    connect: Callable[..., Awaitable[Any]] | None = None,
    create_pool: Callable[..., Awaitable[Any]] | None = None,
    ssl_factory: Callable[[Path], Any] | None = None,
) -> tuple[App, Relay, StreamRouter]:
    """Build the Chirp app with every vigil route and lifecycle hook registered."""
    relay = build_relay(
        config, connect=connect, create_pool=create_pool, ssl_factory=ssl_factory
    )
    app = _create_chirp_app(config)
    router = _wire_routes(app, relay)
    _wire_lifecycle(app, relay)
    return app, relay, router


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def serve(root: str | Path = ".", **kwargs: object) -> None:
    """Run the relay as a Pounce server.

    Args:
        root: Directory holding vigil.yaml / vigil.toml (and relative CA paths).
        **kwargs: Override VigilConfig fields.

    """
    from pounce.config import ServerConfig
    from pounce.server import Server

    from vigil.banner import print_banner
    from vigil.observability import configure_logging

    config = load_config(Path(root), **kwargs)
    configure_logging(config.log_level)
    t0 = time.perf_counter()

    app, relay, router = create_app(config)

    load_ms = (time.perf_counter() - t0) * 1000
    print_banner(
        config,
        route_count=router.route_count,
        load_ms=load_ms,
        warnings=_startup_warnings(config),
    )

    server_config = ServerConfig(
        host=config.host,
        port=config.port,
        workers=config.workers,
    )
    server = Server(server_config, app, lifecycle_collector=relay.collector)
    server.run()


def _startup_warnings(config: VigilConfig) -> list[str]:
    missing = config.missing_connection_settings()
    if not missing:
        return []
    return [f"live updates disabled, missing: {', '.join(missing)}"]
