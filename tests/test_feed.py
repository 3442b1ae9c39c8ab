from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from stationfeed.config import FeedConfig, FirstSightingPolicy
from stationfeed.exceptions import (
    FeedConfigError,
    FeedConnectionError,
    FeedError,
    FeedFetchError,
    FeedParseError,
    FeedStateError,
)
from stationfeed.feed import ConnectionState, StationFeed
from stationfeed.models.record import EntityRecord
from stationfeed.state.delta import ReconcileResult


def _snapshot(**available: int) -> list[EntityRecord]:
    return [EntityRecord(id=entity_id, gauges={"available": count}) for entity_id, count in available.items()]


@dataclass
class FakeSource:
    snapshots: list[Any] = field(default_factory=list)
    target: str = "fake://paris"
    fail_open: bool = False
    fetch_delay: float = 0.0
    open_delay: float = 0.0
    close_delay: float = 0.0
    is_open: bool = False
    opened: int = 0
    closed: int = 0
    fetches: int = 0

    async def open(self) -> None:
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_open:
            raise RuntimeError("handshake refused")
        self.opened += 1
        self.is_open = True

    async def close(self) -> None:
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed += 1
        self.is_open = False

    async def fetch_snapshot(self) -> list[EntityRecord]:
        if not self.is_open:
            raise FeedError("Source not opened")
        index = min(self.fetches, len(self.snapshots) - 1)
        self.fetches += 1
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        item = self.snapshots[index]
        if isinstance(item, Exception):
            raise item
        return list(item)


@dataclass
class Recorder:
    changes: list[EntityRecord] = field(default_factory=list)
    new: list[EntityRecord] = field(default_factory=list)
    states: list[ConnectionState] = field(default_factory=list)
    cycles: list[ReconcileResult] = field(default_factory=list)
    watched: list[EntityRecord] = field(default_factory=list)

    def feed(self, source: FakeSource, config: FeedConfig | None = None, **kwargs: Any) -> StationFeed:
        options: dict[str, Any] = {
            "on_change": self.changes.append,
            "on_new_entity": self.new.append,
            "on_connection_state": self.states.append,
            "on_cycle": self.cycles.append,
            "on_watched_change": self.watched.append,
        }
        options.update(kwargs)
        return StationFeed(source, config or FeedConfig(poll_interval=60.0), **options)

    @property
    def change_ids(self) -> list[str]:
        return [r.id for r in self.changes]


async def _settle() -> None:
    await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_connect_polls_immediately_and_reports_new_entities() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=5, b=2)])
    feed = rec.feed(source)

    await feed.connect()
    await _settle()

    assert rec.states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    assert feed.is_connected
    assert source.opened == 1
    assert [r.id for r in rec.new] == ["a", "b"]
    assert rec.changes == []
    assert set(feed.snapshot()) == {"a", "b"}

    await feed.disconnect()


@pytest.mark.asyncio
async def test_changes_are_delivered_immediately_in_snapshot_order() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=5, b=2, c=0), _snapshot(c=1, b=2, a=3)])
    feed = rec.feed(source)

    await feed.connect()
    await _settle()
    assert await feed.poll_now() is True

    assert rec.change_ids == ["c", "a"]
    assert [r.change_magnitude for r in rec.changes] == [1, -2]
    assert rec.cycles[-1].total_change == -1

    await feed.disconnect()


@pytest.mark.asyncio
async def test_connect_while_connected_is_a_noop() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1)])
    feed = rec.feed(source)

    await feed.connect()
    await feed.connect()
    await _settle()

    assert source.opened == 1
    assert rec.states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    assert source.fetches == 1

    await feed.disconnect()


@pytest.mark.asyncio
async def test_disconnect_clears_state_and_reconnect_starts_from_scratch() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=5, b=2), _snapshot(a=1, b=9)])
    feed = rec.feed(source)

    await feed.connect()
    await _settle()
    first_session = feed.session
    await feed.disconnect()

    assert feed.state is ConnectionState.DISCONNECTED
    assert feed.snapshot() == {}
    assert first_session is not None
    assert len(first_session.store) == 0
    assert source.closed == 1

    await feed.connect()
    await _settle()

    assert feed.session is not first_session
    assert [r.id for r in rec.new] == ["a", "b", "a", "b"]
    assert rec.changes == []

    await feed.disconnect()


@pytest.mark.asyncio
async def test_disconnect_is_idempotent() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1)])
    feed = rec.feed(source)

    await feed.disconnect()
    await feed.connect()
    await feed.disconnect()
    await feed.disconnect()

    assert rec.states.count(ConnectionState.DISCONNECTED) == 1
    assert source.closed == 1


@pytest.mark.asyncio
async def test_fetch_failure_leaves_store_and_queue_untouched() -> None:
    rec = Recorder()
    source = FakeSource(
        [
            _snapshot(a=5, b=2, c=1),
            _snapshot(a=4, b=3, c=0),
            FeedFetchError("HTTP 503", status_code=503),
            FeedParseError("garbage"),
            _snapshot(a=4, b=3, c=7),
        ]
    )
    feed = rec.feed(source, FeedConfig(poll_interval=60.0, pacing_enabled=True))

    await feed.connect()
    await _settle()
    await feed.poll_now()

    session = feed.session
    assert session is not None and session.pacer is not None
    store_before = feed.snapshot()
    queue_before = session.pacer.pending_records()
    assert [r.id for r in queue_before] == ["a", "b", "c"]

    await feed.poll_now()
    await feed.poll_now()

    assert feed.snapshot() == store_before
    assert session.pacer.pending_records() == queue_before
    assert rec.changes == []
    assert feed.is_connected

    await feed.poll_now()

    # Leftovers from the earlier cycle were flushed before the new diff.
    assert rec.change_ids == ["a", "b", "c"]
    assert [r.id for r in session.pacer.pending_records()] == ["c"]

    await feed.disconnect()


@pytest.mark.asyncio
async def test_leftovers_are_flushed_before_next_cycle_is_diffed() -> None:
    rec = Recorder()
    first = {f"s{i}": 0 for i in range(50)}
    second = {f"s{i}": 1 for i in range(50)}
    third = {f"s{i}": 2 for i in range(50)}
    source = FakeSource([_snapshot(**first), _snapshot(**second), _snapshot(**third)])
    delivered_at_cycle: list[int] = []
    feed = rec.feed(
        source,
        FeedConfig(poll_interval=5.0, pacing_enabled=True),
        on_cycle=lambda result: delivered_at_cycle.append(len(rec.changes)),
    )

    await feed.connect()
    await _settle()
    await feed.poll_now()
    assert feed.pending == 50

    await feed.poll_now()

    assert delivered_at_cycle[-1] == 50
    assert rec.change_ids == [f"s{i}" for i in range(50)]
    assert feed.pending == 50
    assert all(record.gauge("available") == 2 for record in feed.snapshot().values())

    await feed.disconnect()
    assert feed.pending == 0


@pytest.mark.asyncio
async def test_paced_records_are_all_delivered_once_before_next_poll() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1, b=1), _snapshot(a=2, b=0)])
    feed = rec.feed(source, FeedConfig(poll_interval=0.3, pacing_enabled=True))

    await feed.connect()
    await asyncio.sleep(0.32)
    assert rec.change_ids == []
    await asyncio.sleep(0.33)

    assert rec.change_ids == ["a", "b"]

    await asyncio.sleep(0.35)
    assert rec.change_ids == ["a", "b"]

    await feed.disconnect()


@pytest.mark.asyncio
async def test_disconnect_drops_pending_paced_records() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1), _snapshot(a=2)])
    feed = rec.feed(source, FeedConfig(poll_interval=60.0, pacing_enabled=True))

    await feed.connect()
    await _settle()
    await feed.poll_now()
    assert feed.pending == 1

    await feed.disconnect()
    await asyncio.sleep(1.1)

    assert rec.changes == []


@pytest.mark.asyncio
async def test_fetch_completing_after_disconnect_is_discarded() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1), _snapshot(a=5)])
    feed = rec.feed(source)

    await feed.connect()
    await _settle()

    source.fetch_delay = 0.05
    pending_poll = asyncio.create_task(feed.poll_now())
    await _settle()
    await feed.disconnect()
    await pending_poll

    assert rec.changes == []
    assert rec.cycles[-1].new_entities[0].id == "a"
    assert len(rec.cycles) == 1
    assert feed.snapshot() == {}


@pytest.mark.asyncio
async def test_failing_consumer_does_not_stop_future_cycles() -> None:
    delivered: list[str] = []

    def on_change(record: EntityRecord) -> None:
        delivered.append(record.id)
        raise RuntimeError("consumer bug")

    source = FakeSource([_snapshot(a=1, b=1), _snapshot(a=2, b=2), _snapshot(a=3, b=3)])
    feed = StationFeed(source, FeedConfig(poll_interval=60.0), on_change=on_change)

    await feed.connect()
    await _settle()
    await feed.poll_now()
    await feed.poll_now()

    assert delivered == ["a", "b", "a", "b"]
    assert feed.is_connected

    await feed.disconnect()


@pytest.mark.asyncio
async def test_watched_changes_are_reported_separately() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1, b=1), _snapshot(a=2, b=2)])
    feed = rec.feed(source, watched=["b"])

    assert feed.is_watched("b")
    assert feed.toggle_watch("a") is True
    assert feed.toggle_watch("a") is False

    await feed.connect()
    await _settle()
    await feed.poll_now()

    assert rec.change_ids == ["a", "b"]
    assert [r.id for r in rec.watched] == ["b"]

    await feed.disconnect()


@pytest.mark.asyncio
async def test_switch_target_does_not_leak_previous_store() -> None:
    rec = Recorder()
    paris = FakeSource([_snapshot(a=1, shared=4)], target="fake://paris")
    milan = FakeSource([_snapshot(shared=9, m=2)], target="fake://milan")
    feed = rec.feed(paris)

    await feed.connect()
    await _settle()
    await feed.switch_target(milan)
    await _settle()

    assert feed.source is milan
    assert paris.closed == 1
    assert set(feed.snapshot()) == {"shared", "m"}
    assert rec.changes == []
    assert [r.id for r in rec.new] == ["a", "shared", "shared", "m"]
    assert rec.states == [
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
    ]

    await feed.disconnect()


@pytest.mark.asyncio
async def test_baseline_policy_seeds_silently() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1), _snapshot(a=2)])
    feed = rec.feed(source, FeedConfig(poll_interval=60.0, first_sighting=FirstSightingPolicy.BASELINE))

    await feed.connect()
    await _settle()
    await feed.poll_now()

    assert rec.new == []
    assert rec.change_ids == ["a"]

    await feed.disconnect()


@pytest.mark.asyncio
async def test_inventory_tally_follows_changes() -> None:
    rec = Recorder()
    source = FakeSource(
        [
            [
                EntityRecord(id="a", gauges={"available": 3, "available_secondary": 1, "empty_capacity": 6}),
                EntityRecord(id="b", gauges={"available": 0, "empty_capacity": 10}),
            ],
            [
                EntityRecord(id="a", gauges={"available": 1, "available_secondary": 1, "empty_capacity": 8}),
                EntityRecord(id="b", gauges={"available": 0, "empty_capacity": 10}),
            ],
        ]
    )
    feed = rec.feed(source)

    await feed.connect()
    await _settle()

    assert feed.inventory.total_capacity == 20
    assert feed.inventory.available == 4

    await feed.poll_now()

    assert feed.inventory.available == 2
    assert feed.inventory.out == 18
    assert feed.inventory.percent_available == pytest.approx(0.1)

    await feed.disconnect()
    assert feed.inventory.total_capacity == 0


@pytest.mark.asyncio
async def test_failed_handshake_leaves_feed_disconnected() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1)], fail_open=True)
    feed = rec.feed(source)

    with pytest.raises(FeedConnectionError):
        await feed.connect()

    assert feed.state is ConnectionState.DISCONNECTED
    assert feed.session is None
    assert rec.states == [ConnectionState.CONNECTING, ConnectionState.DISCONNECTED]
    assert source.fetches == 0


@pytest.mark.asyncio
async def test_connect_waits_for_teardown_to_finish() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1)], close_delay=0.05)
    feed = rec.feed(source)

    await feed.connect()
    await _settle()

    teardown = asyncio.create_task(feed.disconnect())
    await asyncio.sleep(0)
    await feed.connect()
    await teardown
    await _settle()

    # The reconnected session's source must not be closed by the old teardown.
    assert feed.is_connected
    assert feed.session is not None
    assert source.is_open
    assert source.opened == 2
    assert source.closed == 1
    assert rec.states == [
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
    ]

    assert await feed.poll_now() is True
    assert [r.id for r in rec.new] == ["a", "a"]
    assert len(rec.cycles) >= 3

    await feed.disconnect()
    assert source.closed == 2


@pytest.mark.asyncio
async def test_disconnect_during_failed_handshake_reports_state_once() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1)], fail_open=True, open_delay=0.05)
    feed = rec.feed(source)

    connecting = asyncio.create_task(feed.connect())
    await asyncio.sleep(0)
    await feed.disconnect()

    with pytest.raises(FeedConnectionError):
        await connecting

    assert feed.state is ConnectionState.DISCONNECTED
    assert rec.states == [ConnectionState.CONNECTING, ConnectionState.DISCONNECTED]
    assert source.closed == 0


@pytest.mark.asyncio
async def test_disconnect_during_handshake_tears_down_new_session() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1)], open_delay=0.05)
    feed = rec.feed(source)

    connecting = asyncio.create_task(feed.connect())
    await asyncio.sleep(0)
    await feed.disconnect()
    await connecting

    assert feed.state is ConnectionState.DISCONNECTED
    assert feed.session is None
    assert not source.is_open
    assert source.closed == 1
    assert rec.states == [
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
    ]


@pytest.mark.asyncio
async def test_poll_now_requires_connection() -> None:
    feed = StationFeed(FakeSource([_snapshot(a=1)]))

    with pytest.raises(FeedStateError):
        await feed.poll_now()


@pytest.mark.asyncio
async def test_async_context_manager_connects_and_disconnects() -> None:
    rec = Recorder()
    source = FakeSource([_snapshot(a=1)])

    async with rec.feed(source) as feed:
        await _settle()
        assert feed.is_connected
        assert len(rec.new) == 1

    assert feed.state is ConnectionState.DISCONNECTED
    assert source.closed == 1


def test_invalid_config_is_rejected() -> None:
    with pytest.raises(FeedConfigError):
        StationFeed(FakeSource([]), config={"poll_interval": 5})  # type: ignore[arg-type]
