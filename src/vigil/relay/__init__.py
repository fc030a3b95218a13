"""Relay layer — database change notifications to browser event streams.

ChangeSourceConnector -> Broadcaster -> StreamSession (one per client),
with the ReconnectSupervisor owning the connector's lifecycle.
"""

from vigil.relay.broadcaster import Broadcaster, SubscriptionHandle
from vigil.relay.connector import ChangeSourceConnector, ConnectorState
from vigil.relay.events import Action, ChangeEvent, Channel, RawNotification, make_event
from vigil.relay.session import ALERTS_ENDPOINT, LOGS_ENDPOINT, StreamEndpoint, StreamSession
from vigil.relay.supervisor import ReconnectSupervisor
from vigil.relay.view import RowWindow

__all__ = [
    "ALERTS_ENDPOINT",
    "LOGS_ENDPOINT",
    "Action",
    "Broadcaster",
    "ChangeEvent",
    "ChangeSourceConnector",
    "Channel",
    "ConnectorState",
    "RawNotification",
    "ReconnectSupervisor",
    "RowWindow",
    "StreamEndpoint",
    "StreamSession",
    "SubscriptionHandle",
    "make_event",
]
