"""Paced delivery of change records.

A reconciliation cycle can produce a burst of change records. When pacing
is enabled they are queued here and released one at a time, spread evenly
across the poll interval, instead of all at once.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections import deque
from collections.abc import Callable, Iterable

from stationfeed._dispatch import invoke_callback
from stationfeed.models.record import EntityRecord

_logger = logging.getLogger(__name__)


def delivery_rate(count: int, interval: float) -> int:
    """Deliveries per second needed to drain *count* records within *interval* seconds."""
    if count <= 0:
        return 0
    return max(1, math.ceil(count / interval))


def delivery_spacing(count: int, interval: float) -> float:
    """Seconds between two deliveries for a batch of *count* records.

    ``count * spacing`` never exceeds *interval*.
    """
    rate = delivery_rate(count, interval)
    if rate == 0:
        return 0.0
    return 1.0 / rate


class PacingScheduler:
    """FIFO queue drained by a timer task at a computed rate.

    Every enqueued record is delivered exactly once, either by the timer
    or by :meth:`flush`, unless the queue is discarded with :meth:`clear`.
    Must be used from within a running event loop.
    """

    def __init__(
        self,
        deliver: Callable[[EntityRecord], None],
        *,
        interval: float,
    ) -> None:
        self._deliver = deliver
        self._interval = interval
        self._queue: deque[EntityRecord] = deque()
        self._task: asyncio.Task[None] | None = None
        self._spacing: float = 0.0

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def spacing(self) -> float:
        """Spacing of the current (or last) delivery timer, in seconds."""
        return self._spacing

    def pending_records(self) -> tuple[EntityRecord, ...]:
        return tuple(self._queue)

    def enqueue(self, records: Iterable[EntityRecord]) -> None:
        """Append *records* and (re)start the delivery timer."""
        self._queue.extend(records)
        if not self._queue:
            return
        self._spacing = delivery_spacing(len(self._queue), self._interval)
        self._cancel_timer()
        self._task = asyncio.get_running_loop().create_task(self._drain(self._spacing))
        _logger.debug(
            "Pacing %d records at %.3fs spacing (%d/s)",
            len(self._queue),
            self._spacing,
            delivery_rate(len(self._queue), self._interval),
        )

    def flush(self) -> int:
        """Stop the timer and deliver every pending record now, in order."""
        self._cancel_timer()
        delivered = 0
        while self._queue:
            invoke_callback(self._deliver, self._queue.popleft(), name="delivery")
            delivered += 1
        if delivered:
            _logger.debug("Flushed %d paced records", delivered)
        return delivered

    def clear(self) -> int:
        """Stop the timer and drop every pending record."""
        self._cancel_timer()
        dropped = len(self._queue)
        self._queue.clear()
        return dropped

    async def stop(self) -> None:
        """Cancel the delivery timer and wait for it to finish."""
        task = self._task
        self._cancel_timer()
        if task is not None and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _cancel_timer(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def _drain(self, spacing: float) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        ticks = 0
        try:
            while self._queue:
                ticks += 1
                # Deadlines are anchored to the start so callback time does not drift the schedule.
                delay = started + ticks * spacing - loop.time()
                await asyncio.sleep(max(delay, 0.0))
                if not self._queue:
                    break
                invoke_callback(self._deliver, self._queue.popleft(), name="delivery")
        finally:
            if self._task is asyncio.current_task():
                self._task = None
