"""Feed session state.

A session binds one Snapshot Store, one pending delivery queue and the
counters derived from them to a single connection of a feed. Switching
targets builds a new session instead of mutating the old one.
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from stationfeed.config import FeedConfig
from stationfeed.models.record import EntityRecord
from stationfeed.pacing import PacingScheduler
from stationfeed.state.delta import DeltaEngine
from stationfeed.state.inventory import InventoryTally
from stationfeed.state.store import SnapshotStore
from stationfeed.state.subscriptions import SubscriptionTable

_generations = itertools.count(1)


@dataclass
class FeedSession:
    """Mutable per-connection state.

    Parameters
    ----------
    target : str
        Label of the resource being polled (usually its URL).
    generation : int
        Unique, increasing token. Results of a fetch started under one
        generation are discarded if the feed has moved on.
    store : SnapshotStore
        Last-observed record per entity.
    engine : DeltaEngine
        Diffs snapshots against ``store``.
    pacer : PacingScheduler or None
        Pending delivery queue; ``None`` when pacing is disabled.
    tally : InventoryTally
        Running availability totals.
    """

    target: str
    generation: int
    store: SnapshotStore
    engine: DeltaEngine
    pacer: PacingScheduler | None = None
    tally: InventoryTally = field(default_factory=InventoryTally)
    active: bool = True
    created_at: float = field(default_factory=time.monotonic)

    @classmethod
    def create(
        cls,
        target: str,
        config: FeedConfig,
        *,
        subscriptions: SubscriptionTable,
        deliver: Callable[[EntityRecord], None],
    ) -> FeedSession:
        store = SnapshotStore()
        pacer = PacingScheduler(deliver, interval=config.poll_interval) if config.pacing_enabled else None
        return cls(
            target=target,
            generation=next(_generations),
            store=store,
            engine=DeltaEngine.from_config(store, config, subscriptions),
            pacer=pacer,
        )

    @property
    def age(self) -> float:
        """Seconds since the session was created."""
        return time.monotonic() - self.created_at

    @property
    def pending(self) -> int:
        return self.pacer.pending if self.pacer is not None else 0

    def close(self) -> None:
        """Drop all state; nothing survives into a later session."""
        self.active = False
        if self.pacer is not None:
            self.pacer.clear()
        self.store.clear()
        self.tally.reset()
