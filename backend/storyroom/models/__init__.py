"""Domain models for the story room service."""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, fields
from enum import StrEnum
from typing import Any


def utc_now_ms() -> int:
    return int(time.time() * 1000)


class RoomMode(StrEnum):
    CONTINUA_TU = "CONTINUA_TU"
    CAMPBELL = "CAMPBELL"
    PROPP = "PROPP"


class TurnPhase(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"


class AdminRole(StrEnum):
    ADMIN = "ADMIN"
    SUPERUSER = "SUPERUSER"


@dataclass
class RoomState:
    room_code: str
    room_name: str
    activity_title: str
    expires_at: int
    room_mode: RoomMode = RoomMode.CONTINUA_TU
    prompt_seed: str = ""
    story_so_far: str = ""
    writers: list[str] = field(default_factory=list)
    current_writer_index: int = 0
    turn_ends_at: int | None = None
    turn_paused: bool = False
    turn_remaining_ms: int | None = None
    turn_s: int = 60
    version: int = 1
    created_at: int = field(default_factory=utc_now_ms)
    updated_at: int = field(default_factory=utc_now_ms)

    @property
    def phase(self) -> TurnPhase:
        if self.turn_paused:
            return TurnPhase.PAUSED
        if self.turn_ends_at is not None:
            return TurnPhase.ACTIVE
        return TurnPhase.IDLE

    @property
    def current_writer(self) -> str | None:
        if not self.writers:
            return None
        return self.writers[self.current_writer_index]

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at

    def clear_turn(self) -> None:
        self.turn_ends_at = None
        self.turn_paused = False
        self.turn_remaining_ms = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["room_mode"] = str(self.room_mode)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RoomState":
        known = {item.name for item in fields(cls)}
        data = {key: value for key, value in payload.items() if key in known}
        data["room_mode"] = RoomMode(data.get("room_mode", RoomMode.CONTINUA_TU))
        data["writers"] = [str(writer) for writer in data.get("writers") or []]
        return cls(**data)


@dataclass(frozen=True)
class AdminSession:
    role: AdminRole
    issued_at: int
    expires_at: int
    su_name: str | None = None


@dataclass(frozen=True)
class RoomInvite:
    room: str
    ttl_h: int
    turn_s: int
    issued_at: int
    expires_at: int
    room_name: str | None = None
    version: int = 1

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "v": self.version,
            "type": "PUBLIC_ROOM",
            "room": self.room,
            "ttl_h": self.ttl_h,
            "iat": self.issued_at,
            "exp": self.expires_at,
            "turn_s": self.turn_s,
        }
        if self.room_name:
            payload["room_name"] = self.room_name
        return payload
