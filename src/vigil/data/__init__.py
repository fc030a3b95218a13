"""Data access — the snapshot side of the dashboard, off the live path."""

from vigil.data.pool import DatabasePool
from vigil.data.snapshot import SnapshotService

__all__ = ["DatabasePool", "SnapshotService"]
