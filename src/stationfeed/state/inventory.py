"""Running inventory totals for a feed session."""

from __future__ import annotations

from dataclasses import dataclass

from stationfeed.models.record import EntityRecord


@dataclass
class InventoryTally:
    """Aggregate availability across every entity seen in a session.

    Capacity is fixed when an entity is first seen (free capacity plus
    everything available); later change records only move ``available``.
    """

    total_capacity: int = 0
    available: int = 0

    @property
    def out(self) -> int:
        return self.total_capacity - self.available

    @property
    def percent_available(self) -> float:
        if self.total_capacity <= 0:
            return 0.0
        return self.available / self.total_capacity

    def add_entity(self, record: EntityRecord, primary_gauges: tuple[str, ...], capacity_gauge: str) -> None:
        available = sum(record.gauge(name) for name in primary_gauges)
        self.total_capacity += record.gauge(capacity_gauge) + available
        self.available += available

    def apply_change(self, record: EntityRecord) -> None:
        self.available += record.change_magnitude

    def reset(self) -> None:
        self.total_capacity = 0
        self.available = 0
