"""Debounced refresh scheduling."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from dev_report.models import RepositorySelection

logger = logging.getLogger(__name__)

DEFAULT_QUIET_INTERVAL = 0.5


def prune_selection(selection: RepositorySelection, known_ids: list[str]) -> RepositorySelection:
    """Drop selected ids whose repository has been removed."""
    pruned = selection.pruned(known_ids)
    if len(pruned) != len(selection):
        dropped = [i for i in selection.ids if i not in pruned.ids]
        logger.debug("Pruned unknown repositories from selection: %s", dropped)
    return pruned


class RefreshScheduler:
    """Collapses bursts of triggers into a single callback run.

    Each :meth:`trigger` cancels the pending timer and starts a new one;
    the callback runs once ``quiet_interval`` seconds pass without another
    trigger. A callback that is already running is left alone.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        quiet_interval: float = DEFAULT_QUIET_INTERVAL,
    ) -> None:
        self._callback = callback
        self.quiet_interval = quiet_interval
        self._handle: Optional[asyncio.TimerHandle] = None
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.quiet_interval, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.get_running_loop().create_task(self._callback())
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def drain(self) -> None:
        """Wait for any callback runs that have already fired."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    async def close(self) -> None:
        self.cancel()
        for task in list(self._running):
            task.cancel()
        await self.drain()
