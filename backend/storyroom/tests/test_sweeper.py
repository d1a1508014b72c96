import asyncio

from ..core.errors import StoreUnavailableError
from ..services.rooms import RoomCoordinator
from ..services.sweeper import RoomIndexSweeper, run_sweeper
from .conftest import FakeClock


def test_sweep_once_drops_expired_codes(coordinator: RoomCoordinator, clock: FakeClock) -> None:
    asyncio.run(coordinator.create_room(ttl_h=1))
    live = asyncio.run(coordinator.create_room(ttl_h=6))
    clock.advance(hours=3)
    sweeper = RoomIndexSweeper(lambda: coordinator, interval=60)

    assert asyncio.run(sweeper.sweep_once()) == 1
    assert asyncio.run(coordinator._store.list_live()) == [live.room.room_code]


def test_sweeper_runs_until_stopped(coordinator: RoomCoordinator, clock: FakeClock) -> None:
    asyncio.run(coordinator.create_room(ttl_h=1))
    clock.advance(hours=2)

    async def scenario() -> bool:
        async with run_sweeper(lambda: coordinator, interval=0.01) as sweeper:
            await asyncio.sleep(0.05)
            running = sweeper.running
        return running and not sweeper.running

    assert asyncio.run(scenario()) is True
    assert asyncio.run(coordinator._store.list_live()) == []


def test_sweeper_survives_store_outage() -> None:
    calls = 0

    class _Unavailable:
        async def purge_expired(self) -> int:
            nonlocal calls
            calls += 1
            raise StoreUnavailableError("store unavailable")

    async def scenario() -> None:
        sweeper = RoomIndexSweeper(lambda: _Unavailable(), interval=0.01)  # type: ignore[arg-type, return-value]
        await sweeper.start()
        await asyncio.sleep(0.05)
        assert sweeper.running
        await sweeper.stop()

    asyncio.run(scenario())

    assert calls >= 2


def test_sweeper_keeps_running_after_unexpected_error() -> None:
    calls = 0

    class _Corrupt:
        async def purge_expired(self) -> int:
            nonlocal calls
            calls += 1
            raise ValueError("corrupt record")

    async def scenario() -> bool:
        sweeper = RoomIndexSweeper(lambda: _Corrupt(), interval=0.01)  # type: ignore[arg-type, return-value]
        await sweeper.start()
        await asyncio.sleep(0.1)
        running = sweeper.running
        await sweeper.stop()
        return running

    assert asyncio.run(scenario()) is True
    assert calls >= 2
