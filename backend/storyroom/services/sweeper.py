"""Background task that keeps the live-room index tidy."""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from ..core.errors import StoreUnavailableError
from ..core.logging import get_logger
from .rooms import RoomCoordinator

logger = get_logger(__name__)


class RoomIndexSweeper:
    """Periodically drops expired room codes from the live index.

    Reads already purge stale codes lazily, so the sweeper only matters for
    rooms nobody looks at anymore.
    """

    def __init__(
        self,
        coordinator_factory: Callable[[], RoomCoordinator],
        *,
        interval: float = 300.0,
    ) -> None:
        self._coordinator_factory = coordinator_factory
        self._interval = interval
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info("Room index sweeper started (every %.0fs)", self._interval)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
            logger.info("Room index sweeper stopped")

    async def sweep_once(self) -> int:
        return await self._coordinator_factory().purge_expired()

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.sweep_once()
            except StoreUnavailableError:
                logger.warning("Store unavailable, skipping this sweep")
            except Exception:
                logger.exception("Room index sweep failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue


@asynccontextmanager
async def run_sweeper(
    coordinator_factory: Callable[[], RoomCoordinator], *, interval: float
) -> AsyncIterator[RoomIndexSweeper]:
    sweeper = RoomIndexSweeper(coordinator_factory, interval=interval)
    await sweeper.start()
    try:
        yield sweeper
    finally:
        await sweeper.stop()
