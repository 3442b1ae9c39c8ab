"""High-level station feed: connect, poll, diff, deliver."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from enum import StrEnum
from typing import Any

from stationfeed._dispatch import invoke_callback
from stationfeed.config import FeedConfig, FirstSightingPolicy
from stationfeed.exceptions import FeedConfigError, FeedConnectionError, FeedStateError
from stationfeed.models.record import EntityRecord
from stationfeed.poller import FeedPoller
from stationfeed.session import FeedSession
from stationfeed.sources import SnapshotSource
from stationfeed.state.delta import ReconcileResult
from stationfeed.state.inventory import InventoryTally
from stationfeed.state.subscriptions import SubscriptionTable

_logger = logging.getLogger(__name__)

RecordCallback = Callable[[EntityRecord], None]


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class StationFeed:
    """Poll a snapshot source and report what changed.

    Usage::

        async with StationFeed(source, FeedConfig(pacing_enabled=True), on_change=print) as feed:
            await asyncio.sleep(600)

    Every connection gets a fresh :class:`FeedSession`; nothing learned
    about entities survives :meth:`disconnect`. Lifecycle transitions run one
    at a time; calling :meth:`connect` once connected is a no-op.

    Parameters
    ----------
    source : SnapshotSource
        Where snapshots come from.
    config : FeedConfig, optional
        Poll interval, pacing and gauge selection.
    on_change : callable, optional
        Called once per delivered change record.
    on_new_entity : callable, optional
        Called once per first-seen entity when
        ``config.first_sighting`` is ``EMIT``.
    on_connection_state : callable, optional
        Called with the new :class:`ConnectionState` on every transition.
    on_cycle : callable, optional
        Called with the :class:`ReconcileResult` of each successful cycle.
    on_watched_change : callable, optional
        Called (after ``on_change``) for delivered records of watched ids.
    watched : iterable of str, optional
        Initial contents of the subscription table.
    """

    def __init__(
        self,
        source: SnapshotSource,
        config: FeedConfig | None = None,
        *,
        on_change: RecordCallback | None = None,
        on_new_entity: RecordCallback | None = None,
        on_connection_state: Callable[[ConnectionState], None] | None = None,
        on_cycle: Callable[[ReconcileResult], None] | None = None,
        on_watched_change: RecordCallback | None = None,
        watched: Iterable[str] | None = None,
    ) -> None:
        if config is None:
            config = FeedConfig()
        if not isinstance(config, FeedConfig):
            raise FeedConfigError(f"config must be a FeedConfig, got {type(config).__name__}")
        self._config = config
        self._source = source
        self._on_change = on_change
        self._on_new_entity = on_new_entity
        self._on_connection_state = on_connection_state
        self._on_cycle = on_cycle
        self._on_watched_change = on_watched_change
        self._subscriptions = SubscriptionTable(set(watched or ()))
        self._state = ConnectionState.DISCONNECTED
        self._session: FeedSession | None = None
        self._poller: FeedPoller | None = None
        self._transition = asyncio.Lock()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> StationFeed:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def config(self) -> FeedConfig:
        return self._config

    @property
    def source(self) -> SnapshotSource:
        return self._source

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def session(self) -> FeedSession | None:
        return self._session

    @property
    def pending(self) -> int:
        """Change records waiting for paced delivery."""
        return self._session.pending if self._session is not None else 0

    @property
    def inventory(self) -> InventoryTally:
        if self._session is None:
            return InventoryTally()
        return self._session.tally

    def snapshot(self) -> dict[str, EntityRecord]:
        """Last-observed record per entity id for the current session."""
        if self._session is None:
            return {}
        return self._session.store.snapshot()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the source, create a session and start polling.

        Waits for any transition already in progress to finish first.
        """
        async with self._transition:
            await self._connect()

    async def disconnect(self) -> None:
        """Stop polling and pacing and drop all session state. Idempotent."""
        async with self._transition:
            await self._disconnect()

    async def switch_target(self, source: SnapshotSource) -> None:
        """Tear down the current session and connect to *source*."""
        async with self._transition:
            await self._disconnect()
            self._source = source
            await self._connect()

    async def _connect(self) -> None:
        if self._state is not ConnectionState.DISCONNECTED:
            _logger.debug("connect() ignored; feed is %s", self._state)
            return

        source = self._source
        self._set_state(ConnectionState.CONNECTING)
        try:
            await source.open()
        except asyncio.CancelledError:
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        except FeedConnectionError:
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        except Exception as exc:
            self._set_state(ConnectionState.DISCONNECTED)
            raise FeedConnectionError(f"Could not connect to {source.target}: {exc}") from exc

        self._session = FeedSession.create(
            source.target,
            self._config,
            subscriptions=self._subscriptions,
            deliver=self._deliver_change,
        )
        self._poller = FeedPoller(self._run_cycle, interval=self._config.poll_interval)
        _logger.debug("Session %d started for %s", self._session.generation, self._session.target)
        self._set_state(ConnectionState.CONNECTED)
        self._poller.start()

    async def _disconnect(self) -> None:
        if self._state is ConnectionState.DISCONNECTED:
            return

        source = self._source
        poller, session = self._poller, self._session
        self._poller = None
        self._session = None

        if poller is not None:
            await poller.stop()
        if session is not None:
            session.active = False
            dropped = session.pending
            if session.pacer is not None:
                await session.pacer.stop()
            session.close()
            _logger.debug("Session %d closed (%d paced records dropped)", session.generation, dropped)
        await self._close_source(source)

        self._set_state(ConnectionState.DISCONNECTED)

    async def poll_now(self) -> bool:
        """Run a reconciliation cycle now.

        Returns ``False`` if a cycle was already in flight.
        """
        if self._poller is None or self._state is not ConnectionState.CONNECTED:
            raise FeedStateError("Feed is not connected")
        return await self._poller.poll_now()

    # ------------------------------------------------------------------
    # Watched entities
    # ------------------------------------------------------------------

    def watch(self, entity_id: str) -> None:
        self._subscriptions.watch(entity_id)

    def unwatch(self, entity_id: str) -> None:
        self._subscriptions.unwatch(entity_id)

    def toggle_watch(self, entity_id: str) -> bool:
        return self._subscriptions.toggle(entity_id)

    def is_watched(self, entity_id: str) -> bool:
        return entity_id in self._subscriptions

    @property
    def watched(self) -> frozenset[str]:
        return self._subscriptions.ids()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        invoke_callback(self._on_connection_state, state, name="on_connection_state")

    async def _close_source(self, source: SnapshotSource) -> None:
        try:
            await source.close()
        except Exception:
            _logger.warning("Closing source %s failed", source.target, exc_info=True)

    async def _run_cycle(self) -> None:
        session = self._session
        if session is None or not session.active:
            return
        generation = session.generation

        records = await self._source.fetch_snapshot()

        current = self._session
        if current is None or current.generation != generation or not current.active:
            _logger.debug("Discarding snapshot fetched for closed session %d", generation)
            return

        # Leftovers from the previous cycle go out before the new diff.
        if session.pacer is not None:
            session.pacer.flush()

        result = session.engine.reconcile(records)
        self._apply_result(session, result)

    def _apply_result(self, session: FeedSession, result: ReconcileResult) -> None:
        for record in result.new_entities:
            session.tally.add_entity(record, self._config.primary_gauges, self._config.capacity_gauge)
            if self._config.first_sighting is FirstSightingPolicy.EMIT:
                invoke_callback(self._on_new_entity, record, name="on_new_entity")
        for record in result.changes:
            session.tally.apply_change(record)

        if session.pacer is not None:
            session.pacer.enqueue(result.changes)
        else:
            for record in result.changes:
                self._deliver_change(record)

        _logger.debug("Total inventory change: %d", result.total_change)
        invoke_callback(self._on_cycle, result, name="on_cycle")

    def _deliver_change(self, record: EntityRecord) -> None:
        invoke_callback(self._on_change, record, name="on_change")
        if record.watched:
            invoke_callback(self._on_watched_change, record, name="on_watched_change")
