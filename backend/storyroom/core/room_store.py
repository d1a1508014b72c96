"""Room persistence on top of the shared key-value store."""
from __future__ import annotations

import json
from collections.abc import Callable

from ..models import RoomState, utc_now_ms
from fastapi import Depends

from .config import AppSettings, get_settings
from .errors import ExpiredError, NotFoundError
from .logging import get_logger
from .store import KeyValueStore, get_kv_store

logger = get_logger(__name__)


class RoomStore:
    """CRUD and TTL over one ``RoomState`` document per room code.

    Alongside the documents the store keeps a set of live room codes. The set
    may briefly hold codes whose rooms have already expired; every read path
    prunes such codes when it meets them.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        key_prefix: str = "storyroom",
        floor_ttl_seconds: int = 60,
        clock: Callable[[], int] = utc_now_ms,
    ) -> None:
        self._kv = kv
        self._prefix = key_prefix
        self._floor_ttl_ms = floor_ttl_seconds * 1000
        self._clock = clock

    @property
    def index_key(self) -> str:
        return f"{self._prefix}:rooms:live"

    def room_key(self, room_code: str) -> str:
        return f"{self._prefix}:room:{room_code}"

    def _ttl_ms(self, state: RoomState) -> int:
        # The record outlives expires_at by the floor so a late read can report it expired.
        return max(0, state.expires_at - self._clock()) + self._floor_ttl_ms

    @staticmethod
    def _encode(state: RoomState) -> str:
        return json.dumps(state.to_dict(), separators=(",", ":"), ensure_ascii=False)

    async def get(self, room_code: str) -> RoomState:
        key = self.room_key(room_code)
        raw = await self._kv.get(key)
        if raw is None:
            await self.forget(room_code)
            raise NotFoundError("room not found")

        state = RoomState.from_dict(json.loads(raw))
        if state.is_expired(self._clock()):
            logger.info("Room %s expired, purging", room_code)
            await self._kv.delete(key)
            await self.forget(room_code)
            raise ExpiredError("room expired")
        return state

    async def create(self, state: RoomState) -> bool:
        """Store a brand new room; False when the code is already taken."""
        created = await self._kv.set_if_absent(
            self.room_key(state.room_code), self._encode(state), ttl_ms=self._ttl_ms(state)
        )
        if created:
            await self._kv.add_member(self.index_key, state.room_code)
        return created

    async def save(self, state: RoomState, *, expected_version: int | None = None) -> bool:
        """Write ``state``; with ``expected_version`` only if nobody else did first."""
        key = self.room_key(state.room_code)
        encoded = self._encode(state)
        ttl_ms = self._ttl_ms(state)
        if expected_version is None:
            await self._kv.set(key, encoded, ttl_ms=ttl_ms)
        elif not await self._kv.set_if_version(key, expected_version, encoded, ttl_ms=ttl_ms):
            return False
        await self._kv.add_member(self.index_key, state.room_code)
        return True

    async def list_live(self) -> list[str]:
        return sorted(await self._kv.members(self.index_key))

    async def forget(self, room_code: str) -> None:
        await self._kv.remove_member(self.index_key, room_code)


def build_room_store(settings: AppSettings, kv: KeyValueStore) -> RoomStore:
    return RoomStore(
        kv,
        key_prefix=settings.store_key_prefix,
        floor_ttl_seconds=settings.room_floor_ttl_seconds,
    )


def get_room_store(
    settings: AppSettings = Depends(get_settings),
    kv: KeyValueStore = Depends(get_kv_store),
) -> RoomStore:
    return build_room_store(settings, kv)
