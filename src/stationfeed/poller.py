"""Fixed-interval poll loop with a single-flight guard."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from stationfeed.exceptions import FeedError

_logger = logging.getLogger(__name__)


class FeedPoller:
    """Run a fetch-and-reconcile cycle every ``interval`` seconds.

    The first cycle runs immediately on :meth:`start`. Ticks are anchored
    to the start time; a cycle that overruns one or more ticks causes those
    ticks to be skipped rather than queued, so at most one cycle is ever
    in flight.

    A cycle that raises is logged and abandoned; the next tick runs as
    scheduled.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[None]],
        *,
        interval: float,
    ) -> None:
        self._cycle = cycle
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._in_flight = False
        self._cycles_run = 0
        self._ticks_skipped = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def cycles_run(self) -> int:
        return self._cycles_run

    @property
    def ticks_skipped(self) -> int:
        return self._ticks_skipped

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Cancel the loop, including any in-flight fetch.

        Safe to call repeatedly and from inside a cycle.
        """
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def poll_now(self) -> bool:
        """Run one cycle immediately unless one is already in flight."""
        if self._in_flight:
            _logger.debug("Cycle already in flight; manual poll skipped")
            return False
        await self._run_cycle()
        return True

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            if self._in_flight:
                self._ticks_skipped += 1
                _logger.debug("Cycle still in flight; tick skipped")
            else:
                await self._run_cycle()

            next_tick += self._interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // self._interval) + 1
                next_tick += missed * self._interval
                self._ticks_skipped += missed
                _logger.debug("Cycle overran the poll interval; skipped %d tick(s)", missed)
            await asyncio.sleep(next_tick - now)

    async def _run_cycle(self) -> None:
        self._in_flight = True
        try:
            await self._cycle()
        except FeedError as exc:
            _logger.warning("Reconciliation cycle abandoned: %s", exc)
        except Exception:
            _logger.warning("Reconciliation cycle failed", exc_info=True)
        finally:
            self._in_flight = False
            self._cycles_run += 1
