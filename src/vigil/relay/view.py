"""Row window — the newest-first list a dashboard table shows.

Seeded from a snapshot, then kept current by applying stream events:

- INSERT prepends.
- UPDATE replaces the row with the same key in place, or prepends it when
  the key is unknown (a row that changed before the snapshot saw it).
- DELETE removes by key.

Rows with a key already present are never duplicated, which makes it safe
to apply events that overlap the snapshot.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from vigil.relay.events import Action

if TYPE_CHECKING:
    from collections.abc import Iterable

    from vigil._types import Row
    from vigil.relay.events import ChangeEvent


class RowWindow:
    """Bounded, keyed, newest-first row list.

    Args:
        key: Primary-key column (``id`` for logs, ``alert_id`` for alerts).
        limit: Maximum rows retained; the oldest fall off the end.

    """

    __slots__ = ("_key", "_limit", "_rows")

    def __init__(self, key: str, limit: int = 100) -> None:
        if limit <= 0:
            msg = f"limit must be positive, got {limit}"
            raise ValueError(msg)
        self._key = key
        self._limit = limit
        self._rows: list[dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self._rows)

    def rows(self) -> tuple[dict[str, Any], ...]:
        """Current rows, newest first (shallow copies)."""
        return tuple(dict(r) for r in self._rows)

    def seed(self, rows: Iterable[Row]) -> None:
        """Replace the window with snapshot rows (already newest first)."""
        self._rows = []
        seen: set[Any] = set()
        for row in rows:
            k = row.get(self._key)
            if k in seen:
                continue
            seen.add(k)
            self._rows.append(dict(row))
        del self._rows[self._limit :]

    def apply(self, event: ChangeEvent) -> bool:
        """Merge one change into the window.

        Returns:
            True if the window changed.

        """
        row = dict(event.payload)
        k = row.get(self._key)
        index = self._index_of(k)

        if event.action is Action.DELETE:
            if index is None:
                return False
            del self._rows[index]
            return True

        if index is not None:
            self._rows[index] = row
            return True

        self._rows.insert(0, row)
        del self._rows[self._limit :]
        return True

    def _index_of(self, k: Any) -> int | None:
        if k is None:
            return None
        for i, existing in enumerate(self._rows):
            if existing.get(self._key) == k:
                return i
        return None
