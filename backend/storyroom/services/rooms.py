"""Room coordinator: the turn state machine behind the room actions."""
from __future__ import annotations

import math
import secrets
from collections.abc import Callable
from dataclasses import dataclass, replace
from urllib.parse import quote

from fastapi import Depends

from ..core.config import AppSettings, get_settings
from ..core.errors import AuthError, ConflictError, ExpiredError, ForbiddenError, NotFoundError
from ..core.logging import get_logger
from ..core.room_store import RoomStore, get_room_store
from ..core.security import sign_invite_token, verify_invite_token
from ..models import RoomInvite, RoomMode, RoomState, TurnPhase, utc_now_ms
from ..schemas.rooms import RoomSummarySchema

logger = get_logger(__name__)

TTL_HOURS_DEFAULT = 4
TTL_HOURS_MIN = 1
TTL_HOURS_MAX = 24
TURN_SECONDS_DEFAULT = 60
TURN_SECONDS_MIN = 15
TURN_SECONDS_MAX = 600
ROOM_CODE_ATTEMPTS = 5

Mutation = Callable[[RoomState, int], None]


def clamp_number(value: float | None, fallback: int, minimum: int, maximum: int) -> int:
    if value is None or not math.isfinite(value):
        return fallback
    return int(min(max(math.floor(value), minimum), maximum))


def generate_room_code() -> str:
    """Six uppercase hex characters, e.g. ``A1B2C3``."""
    return secrets.token_hex(3).upper()


@dataclass(frozen=True)
class CreatedRoom:
    room: RoomState
    invite: RoomInvite
    token: str
    link: str


@dataclass(frozen=True)
class JoinResult:
    room: RoomState
    writer_id: str
    writer_index: int


def summarize(room: RoomState) -> RoomSummarySchema:
    return RoomSummarySchema(
        room_code=room.room_code,
        room_name=room.room_name,
        activity_title=room.activity_title,
        room_mode=room.room_mode,
        writer_count=len(room.writers),
        current_writer=room.current_writer,
        turn_ends_at=room.turn_ends_at,
        turn_paused=room.turn_paused,
        turn_remaining_ms=room.turn_remaining_ms,
        phase=str(room.phase),
        version=room.version,
        updated_at=room.updated_at,
        expires_at=room.expires_at,
    )


class RoomCoordinator:
    """Drives room lifecycles against the room store.

    Every mutating operation runs through :meth:`_mutate`, which re-reads the
    room, applies the change to a copy, and writes it back only if the stored
    ``version`` is unchanged. Turn deadlines are compared with the clock on
    each call; nothing fires when a turn lapses.
    """

    def __init__(
        self,
        store: RoomStore,
        *,
        settings: AppSettings,
        clock: Callable[[], int] = utc_now_ms,
        code_factory: Callable[[], str] = generate_room_code,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock
        self._code_factory = code_factory
        self._max_retries = settings.room_cas_max_retries

    def now(self) -> int:
        return self._clock()

    async def _mutate(self, room_code: str, mutation: Mutation, *, action: str) -> RoomState:
        for attempt in range(1, self._max_retries + 1):
            current = await self._store.get(room_code)
            now = self._clock()
            updated = replace(current, writers=list(current.writers))
            mutation(updated, now)
            updated.version = current.version + 1
            updated.updated_at = now
            if await self._store.save(updated, expected_version=current.version):
                logger.info(
                    "Room %s %s -> version %d (%s)",
                    room_code,
                    action,
                    updated.version,
                    updated.phase,
                )
                return updated
            logger.warning(
                "Room %s %s lost a concurrent update (attempt %d/%d)",
                room_code,
                action,
                attempt,
                self._max_retries,
            )
        raise ConflictError("concurrent update, retry", detail={"room": room_code})

    def _build_invite(self, room: RoomState) -> tuple[RoomInvite, str, str]:
        ttl_h = max(TTL_HOURS_MIN, round((room.expires_at - room.created_at) / 3_600_000))
        invite = RoomInvite(
            room=room.room_code,
            ttl_h=ttl_h,
            turn_s=room.turn_s,
            issued_at=room.created_at,
            expires_at=room.expires_at,
            room_name=room.room_name if room.room_name != room.room_code else None,
        )
        token = sign_invite_token(invite, self._settings.room_session_secret)
        base_url = self._settings.public_base_url.rstrip("/")
        link = f"{base_url}/join/{quote(room.room_code, safe='')}?token={quote(token, safe='')}"
        return invite, token, link

    async def create_room(
        self,
        *,
        ttl_h: float | None = None,
        turn_s: float | None = None,
        room_mode: RoomMode = RoomMode.CONTINUA_TU,
        room_name: str | None = None,
        activity_title: str | None = None,
    ) -> CreatedRoom:
        hours = clamp_number(ttl_h, TTL_HOURS_DEFAULT, TTL_HOURS_MIN, TTL_HOURS_MAX)
        turn_seconds = clamp_number(turn_s, TURN_SECONDS_DEFAULT, TURN_SECONDS_MIN, TURN_SECONDS_MAX)
        now = self._clock()

        for _ in range(ROOM_CODE_ATTEMPTS):
            code = self._code_factory()
            name = (room_name or "").strip() or code
            room = RoomState(
                room_code=code,
                room_name=name,
                activity_title=(activity_title or "").strip() or name,
                room_mode=room_mode,
                turn_s=turn_seconds,
                expires_at=now + hours * 3_600_000,
                created_at=now,
                updated_at=now,
            )
            invite, token, link = self._build_invite(room)
            if await self._store.create(room):
                logger.info("Room %s created (ttl %dh, turn %ds)", code, hours, turn_seconds)
                return CreatedRoom(room=room, invite=invite, token=token, link=link)
            logger.warning("Room code %s already taken, regenerating", code)
        raise ConflictError("could not allocate a room code")

    async def join(self, room_code: str, *, token: str | None = None) -> JoinResult:
        if self._settings.join_requires_invite:
            if not token:
                raise AuthError("invite token required")
            verify_invite_token(
                token, self._settings.room_session_secret, room=room_code, now=self._clock()
            )

        def add_writer(room: RoomState, now: int) -> None:
            room.writers.append(f"Writer {len(room.writers) + 1}")

        room = await self._mutate(room_code, add_writer, action="join")
        return JoinResult(room=room, writer_id=room.writers[-1], writer_index=len(room.writers) - 1)

    async def next_turn(self, room_code: str, *, turn_s: float | None = None) -> RoomState:
        def advance(room: RoomState, now: int) -> None:
            if not room.writers:
                raise ConflictError("no writers yet")
            seconds = clamp_number(turn_s, room.turn_s, TURN_SECONDS_MIN, TURN_SECONDS_MAX)
            room.current_writer_index = (room.current_writer_index + 1) % len(room.writers)
            room.turn_paused = False
            room.turn_remaining_ms = None
            room.turn_ends_at = now + seconds * 1000

        return await self._mutate(room_code, advance, action="next_turn")

    async def pause_turn(self, room_code: str) -> RoomState:
        def pause(room: RoomState, now: int) -> None:
            if room.phase is TurnPhase.PAUSED:
                raise ConflictError("already paused")
            if room.phase is TurnPhase.IDLE:
                raise ConflictError("no active turn")
            assert room.turn_ends_at is not None
            room.turn_remaining_ms = max(0, room.turn_ends_at - now)
            room.turn_ends_at = None
            room.turn_paused = True

        return await self._mutate(room_code, pause, action="pause_turn")

    async def resume_turn(self, room_code: str) -> RoomState:
        def resume(room: RoomState, now: int) -> None:
            if room.phase is not TurnPhase.PAUSED or room.turn_remaining_ms is None:
                raise ConflictError("not paused")
            room.turn_ends_at = now + max(0, room.turn_remaining_ms)
            room.turn_paused = False
            room.turn_remaining_ms = None

        return await self._mutate(room_code, resume, action="resume_turn")

    async def stop_turn(self, room_code: str) -> RoomState:
        def stop(room: RoomState, now: int) -> None:
            room.clear_turn()

        return await self._mutate(room_code, stop, action="stop_turn")

    async def submit_text(self, room_code: str, *, writer_id: str, text: str) -> RoomState:
        # The turn closes after a submission; the next one needs an explicit next_turn.
        def append(room: RoomState, now: int) -> None:
            if room.phase is TurnPhase.PAUSED:
                raise ConflictError("turn paused")
            if room.phase is TurnPhase.IDLE:
                raise ConflictError("no active turn")
            assert room.turn_ends_at is not None
            if room.turn_ends_at <= now:
                raise ConflictError("turn expired")
            if writer_id != room.current_writer:
                raise ForbiddenError("not your turn")
            room.story_so_far = f"{room.story_so_far}\n{text}" if room.story_so_far else text
            room.clear_turn()

        return await self._mutate(room_code, append, action="submit_text")

    async def patch_room(self, room_code: str, *, prompt_seed: str) -> RoomState:
        def patch(room: RoomState, now: int) -> None:
            room.prompt_seed = prompt_seed

        return await self._mutate(room_code, patch, action="room_patch")

    async def get_state(self, room_code: str) -> RoomState:
        return await self._store.get(room_code)

    async def _live_rooms(self) -> tuple[list[RoomState], int]:
        rooms: list[RoomState] = []
        purged = 0
        for code in await self._store.list_live():
            try:
                rooms.append(await self._store.get(code))
            except (NotFoundError, ExpiredError):
                purged += 1
        return rooms, purged

    async def list_rooms(self) -> list[RoomSummarySchema]:
        rooms, _ = await self._live_rooms()
        rooms.sort(key=lambda room: room.expires_at)
        return [summarize(room) for room in rooms]

    async def purge_expired(self) -> int:
        """Drop index entries whose rooms are gone; returns how many were dropped."""
        _, purged = await self._live_rooms()
        if purged:
            logger.info("Purged %d stale room codes from the live index", purged)
        return purged

    async def delete_room(self, room_code: str) -> bool:
        """Expire a room now. Returns False when it was already gone."""

        def expire(room: RoomState, now: int) -> None:
            room.expires_at = now - 1
            room.clear_turn()

        try:
            await self._mutate(room_code, expire, action="delete_room")
        except (NotFoundError, ExpiredError):
            logger.info("Room %s already gone, nothing to delete", room_code)
            return False
        return True

    async def claim_invite(self, token: str, *, room: str | None = None) -> tuple[RoomInvite, RoomState]:
        invite = verify_invite_token(
            token, self._settings.room_session_secret, room=room, now=self._clock()
        )
        return invite, await self._store.get(invite.room)


def get_room_coordinator(
    store: RoomStore = Depends(get_room_store),
    settings: AppSettings = Depends(get_settings),
) -> RoomCoordinator:
    return RoomCoordinator(store, settings=settings)
