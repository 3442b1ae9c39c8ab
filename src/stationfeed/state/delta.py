"""Snapshot diffing.

Compares a freshly fetched snapshot against the :class:`SnapshotStore`,
classifies every entity as new, unchanged or changed, and updates the
store as it goes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from stationfeed.config import FeedConfig
from stationfeed.models.record import EntityRecord
from stationfeed.state.store import SnapshotStore
from stationfeed.state.subscriptions import SubscriptionTable

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation cycle.

    ``changes`` and ``new_entities`` keep the order of the input snapshot.
    """

    changes: tuple[EntityRecord, ...] = ()
    new_entities: tuple[EntityRecord, ...] = ()
    unchanged: int = 0

    @property
    def total_change(self) -> int:
        """Sum of ``change_magnitude`` across ``changes``."""
        return sum(record.change_magnitude for record in self.changes)


class DeltaEngine:
    """Diff snapshots against a store.

    Parameters
    ----------
    store : SnapshotStore
        Store owned by the current session; updated in snapshot order.
    primary_gauges : tuple of str
        Any difference in one of these gauges produces a change record.
    magnitude_gauges : tuple of str
        Gauges whose deltas are summed into ``change_magnitude``.
    subscriptions : SubscriptionTable, optional
        Ids whose records are marked ``watched``.
    """

    def __init__(
        self,
        store: SnapshotStore,
        *,
        primary_gauges: tuple[str, ...],
        magnitude_gauges: tuple[str, ...],
        subscriptions: SubscriptionTable | None = None,
    ) -> None:
        self._store = store
        self._primary_gauges = primary_gauges
        self._magnitude_gauges = magnitude_gauges
        self._subscriptions = subscriptions if subscriptions is not None else SubscriptionTable()

    @classmethod
    def from_config(
        cls,
        store: SnapshotStore,
        config: FeedConfig,
        subscriptions: SubscriptionTable | None = None,
    ) -> DeltaEngine:
        return cls(
            store,
            primary_gauges=config.primary_gauges,
            magnitude_gauges=config.magnitude_gauges,
            subscriptions=subscriptions,
        )

    def reconcile(self, snapshot: Iterable[EntityRecord]) -> ReconcileResult:
        """Diff *snapshot* against the store and update it.

        Entities missing from the snapshot are left in the store untouched.
        """
        changes: list[EntityRecord] = []
        new_entities: list[EntityRecord] = []
        unchanged = 0

        for record in snapshot:
            previous = self._store.get(record.id)
            if previous is None:
                self._store.put(record)
                new_entities.append(self._annotate(record, 0))
                continue

            # The first observed location is kept for the whole session.
            if previous.location is not None and record.location != previous.location:
                record = record.model_copy(update={"location": previous.location})

            if all(record.gauge(name) == previous.gauge(name) for name in self._primary_gauges):
                unchanged += 1
                self._store.put(record)
                continue

            magnitude = sum(record.gauge(name) - previous.gauge(name) for name in self._magnitude_gauges)
            self._store.put(record)
            changes.append(self._annotate(record, magnitude))

        result = ReconcileResult(
            changes=tuple(changes),
            new_entities=tuple(new_entities),
            unchanged=unchanged,
        )
        _logger.debug(
            "Reconciled snapshot: %d new, %d changed, %d unchanged, total change %d",
            len(result.new_entities),
            len(result.changes),
            result.unchanged,
            result.total_change,
        )
        return result

    def _annotate(self, record: EntityRecord, magnitude: int) -> EntityRecord:
        return record.model_copy(
            update={
                "change_magnitude": magnitude,
                "watched": record.id in self._subscriptions,
            }
        )
