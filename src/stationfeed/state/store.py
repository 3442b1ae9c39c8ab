"""In-memory snapshot store.

Mutated only by :class:`~stationfeed.state.delta.DeltaEngine`.
"""

from __future__ import annotations

from collections.abc import Iterator

from stationfeed.models.record import EntityRecord


class SnapshotStore:
    """Last-observed raw record per entity id.

    Records are stored with ``change_magnitude == 0`` and ``watched`` unset;
    annotations only live on the copies handed to consumers.
    """

    def __init__(self) -> None:
        self._records: dict[str, EntityRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def get(self, entity_id: str) -> EntityRecord | None:
        return self._records.get(entity_id)

    def put(self, record: EntityRecord) -> None:
        if record.change_magnitude != 0 or record.watched:
            record = record.model_copy(update={"change_magnitude": 0, "watched": False})
        self._records[record.id] = record

    def snapshot(self) -> dict[str, EntityRecord]:
        """Shallow copy of the current contents (records are immutable)."""
        return dict(self._records)

    def clear(self) -> None:
        self._records.clear()
