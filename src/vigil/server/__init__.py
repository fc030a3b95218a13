"""HTTP surface — Chirp routes for streams, snapshots, and status."""

from vigil.server.routes import StreamRouter, json_response

__all__ = ["StreamRouter", "json_response"]
