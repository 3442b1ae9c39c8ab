"""Watched-entity subscription table."""

from __future__ import annotations


class SubscriptionTable:
    """Entity ids a consumer has expressed interest in.

    Checked centrally by the delta engine when it produces records, so
    there are no per-entity listener lists to attach or detach.
    """

    def __init__(self, entity_ids: set[str] | None = None) -> None:
        self._ids: set[str] = set(entity_ids or ())

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._ids

    def watch(self, entity_id: str) -> None:
        self._ids.add(entity_id)

    def unwatch(self, entity_id: str) -> None:
        self._ids.discard(entity_id)

    def toggle(self, entity_id: str) -> bool:
        """Flip interest in *entity_id* and return the new state."""
        if entity_id in self._ids:
            self._ids.discard(entity_id)
            return False
        self._ids.add(entity_id)
        return True

    def ids(self) -> frozenset[str]:
        return frozenset(self._ids)
