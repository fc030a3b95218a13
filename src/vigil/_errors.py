"""Vigil error hierarchy.

All vigil-specific errors inherit from VigilError for easy catching.
Connection failures share ConnectError so the supervisor can tell the
retryable ones (NetworkError, SessionEnd) from the operator-fixable ones
(AuthError, and ConfigError outside this branch).
"""


class VigilError(Exception):
    """Base error for all vigil operations."""


class ConfigError(VigilError):
    """Invalid or missing configuration."""


class RelayError(VigilError):
    """Misuse of a relay component (illegal state transition, double open)."""


class ConnectError(VigilError):
    """The change source could not be reached or kept alive."""


class AuthError(ConnectError):
    """The database rejected the configured credentials."""


class NetworkError(ConnectError):
    """Socket, TLS, or timeout failure while talking to the database."""


class SessionEnd(ConnectError):
    """The listening session ended without being asked to."""


class ParseError(VigilError):
    """A notification payload could not be turned into a ChangeEvent."""


class SinkError(VigilError):
    """Delivery to one subscriber's sink failed."""


class SnapshotError(VigilError):
    """A snapshot query failed.

    ``public_message`` is safe to return to HTTP clients; the raw database
    detail stays on the chained ``__cause__`` and in the server log.
    """

    def __init__(self, public_message: str) -> None:
        super().__init__(public_message)
        self.public_message = public_message
