"""Snapshot sources.

A source fetches the full current state of every entity the upstream
resource reports. The feed only depends on :class:`SnapshotSource`.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from stationfeed.models.record import EntityRecord


class SnapshotSource(Protocol):
    """Structural interface the feed polls.

    ``open`` is the one-time handshake run while connecting and ``close``
    releases whatever ``open`` acquired. ``fetch_snapshot`` raises
    :class:`~stationfeed.exceptions.FeedFetchError` or
    :class:`~stationfeed.exceptions.FeedParseError` on failure.
    """

    @property
    def target(self) -> str:
        ...

    async def open(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def fetch_snapshot(self) -> Sequence[EntityRecord]:
        ...


__all__ = ["SnapshotSource"]
