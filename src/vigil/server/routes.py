"""Stream router — exposes the relay and snapshots as Chirp routes.

SSE routes hand each client a StreamSession wrapped in Chirp's
``EventStream``; JSON routes answer snapshot and status queries.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from chirp import EventStream
from chirp.http.response import Response

from vigil._errors import SnapshotError
from vigil.relay.session import ALERTS_ENDPOINT, LOGS_ENDPOINT, StreamSession

if TYPE_CHECKING:
    from chirp import App, Request

    from vigil._types import SnapshotProvider
    from vigil.config import VigilConfig
    from vigil.data.snapshot import SnapshotService
    from vigil.observability.collector import RelayCollector
    from vigil.relay.broadcaster import Broadcaster
    from vigil.relay.session import StreamEndpoint
    from vigil.relay.supervisor import ReconnectSupervisor

logger = logging.getLogger(__name__)

LOGS_STREAM = "/api/nginx-log-stream"
ALERTS_STREAM = "/api/alerts-stream"
LOGS_INITIAL = "/api/nginx-log-stream/initial"
ALERTS_INITIAL = "/api/alerts-stream/initial"
SUMMARY = "/api/summary"
RELAY_STATUS = "/api/relay/status"

_TRUTHY = frozenset({"1", "true", "yes"})


def json_response(body: Any, status: int = 200) -> Response:
    """A Chirp response with a JSON body."""
    return Response(
        body=json.dumps(body, default=str),
        status=status,
        content_type="application/json",
    )


def _query_int(request: Request, name: str) -> int | None:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class StreamRouter:
    """Registers vigil's HTTP surface on a Chirp app.

    Args:
        app: The Chirp application.
        broadcaster: Hub the SSE sessions subscribe to.
        config: Supplies per-session queue size.
        snapshots: Snapshot service for the JSON routes and ``?snapshot=1``.
        supervisor: Reported by the status route.
        collector: Observability sink shared with the relay.

    """

    def __init__(
        self,
        app: App,
        broadcaster: Broadcaster,
        config: VigilConfig,
        *,
        snapshots: SnapshotService | None = None,
        supervisor: ReconnectSupervisor | None = None,
        collector: RelayCollector | None = None,
    ) -> None:
        self._app = app
        self._broadcaster = broadcaster
        self._config = config
        self._snapshots = snapshots
        self._supervisor = supervisor
        self._collector = collector
        self._route_count = 0

    @property
    def route_count(self) -> int:
        return self._route_count

    def register_all(self) -> None:
        """Register every stream, snapshot, and status route."""
        self.register_stream(LOGS_STREAM, LOGS_ENDPOINT, name="vigil:logs-stream")
        self.register_stream(ALERTS_STREAM, ALERTS_ENDPOINT, name="vigil:alerts-stream")
        if self._snapshots is not None:
            self.register_snapshot_endpoints(self._snapshots)
        self.register_status_endpoint()

    def register_stream(self, path: str, endpoint: StreamEndpoint, *, name: str) -> None:
        """Register an SSE route streaming ``endpoint``'s events.

        ``?snapshot=1`` makes the stream send the recent rows as a
        ``snapshot`` event right after the handshake.  The subscription is
        taken before that query runs, so no change is lost in between.

        """
        broadcaster = self._broadcaster
        collector = self._collector
        queue_size = self._config.session_queue_size
        provider_for = self._snapshot_provider

        async def stream_handler(request: Request) -> Any:
            wants_snapshot = (request.query.get("snapshot") or "").lower() in _TRUTHY
            session = StreamSession(
                broadcaster,
                endpoint,
                collector=collector,
                queue_size=queue_size,
                snapshot=provider_for(endpoint) if wants_snapshot else None,
            )
            session.open()
            return EventStream(session.events())

        stream_handler.__name__ = f"{endpoint.name}_stream"
        stream_handler.__qualname__ = f"StreamRouter.{endpoint.name}_stream"

        self._app.route(path, name=name)(stream_handler)
        self._route_count += 1

    def register_snapshot_endpoints(self, snapshots: SnapshotService) -> None:
        """Register the ``/initial`` JSON routes and the summary route."""

        async def initial_logs(request: Request) -> Any:
            return await self._snapshot_response(
                snapshots.recent_logs(_query_int(request, "limit"))
            )

        async def initial_alerts(request: Request) -> Any:
            return await self._snapshot_response(
                snapshots.recent_alerts(_query_int(request, "limit"))
            )

        async def summary(request: Request) -> Any:
            return await self._snapshot_response(snapshots.table_counts())

        self._app.route(LOGS_INITIAL, name="vigil:logs-initial")(initial_logs)
        self._app.route(ALERTS_INITIAL, name="vigil:alerts-initial")(initial_alerts)
        self._app.route(SUMMARY, name="vigil:summary")(summary)
        self._route_count += 3

    def register_status_endpoint(self) -> None:
        """Register ``/api/relay/status``: relay health plus event-log stats."""

        async def relay_status(request: Request) -> Any:
            return json_response(self.status())

        self._app.route(RELAY_STATUS, name="vigil:relay-status")(relay_status)
        self._route_count += 1

    def status(self) -> dict[str, Any]:
        """Status document served by the status route."""
        body: dict[str, Any] = {
            "subscribers": self._broadcaster.subscriber_count,
            "supervisor": self._supervisor.status() if self._supervisor is not None else None,
        }
        if self._collector is not None:
            body["event_log"] = self._collector.log.stats()
        return body

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _snapshot_provider(self, endpoint: StreamEndpoint) -> SnapshotProvider | None:
        snapshots = self._snapshots
        if snapshots is None:
            return None
        if endpoint is ALERTS_ENDPOINT:
            return snapshots.recent_alerts
        return snapshots.recent_logs

    async def _snapshot_response(self, query: Any) -> Response:
        try:
            rows = await query
        except SnapshotError as exc:
            # Detail was logged by the service; clients get the sanitized text.
            return json_response({"error": exc.public_message}, status=500)
        return json_response(rows)
