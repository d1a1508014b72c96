"""Schemas for the room action endpoint and invite flows."""
from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, RootModel, StringConstraints, field_validator
from pydantic.config import ConfigDict

from ..models import RoomMode

MAX_PROMPT_SEED = 600
MAX_SUBMIT_TEXT = 4000
MAX_LABEL = 80

RoomCode = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=32)]
WriterId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]


class _Action(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _RoomAction(_Action):
    room: RoomCode


class StatusAction(_Action):
    action: Literal["status"]


class CreateRoomAction(_Action):
    action: Literal["create"]
    room_name: Optional[str] = Field(default=None, max_length=MAX_LABEL)
    activity_title: Optional[str] = Field(default=None, max_length=MAX_LABEL)
    room_mode: RoomMode = RoomMode.CONTINUA_TU
    ttl_h: Optional[float] = Field(default=None, description="Room lifetime in hours, clamped 1..24")
    turn_s: Optional[float] = Field(default=None, description="Default turn length, clamped 15..600")


class JoinAction(_RoomAction):
    action: Literal["join"]
    token: Optional[str] = Field(default=None, description="Signed room invite")


class NextTurnAction(_RoomAction):
    action: Literal["next_turn"]
    turn_s: Optional[float] = None


class PauseTurnAction(_RoomAction):
    action: Literal["pause_turn"]


class ResumeTurnAction(_RoomAction):
    action: Literal["resume_turn"]


class StopTurnAction(_RoomAction):
    action: Literal["stop_turn"]


class SubmitTextAction(_RoomAction):
    action: Literal["submit_text"]
    writer_id: WriterId
    text: str = Field(min_length=1, max_length=MAX_SUBMIT_TEXT)

    @field_validator("text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value


class RoomPatchAction(_RoomAction):
    action: Literal["room_patch"]
    prompt_seed: str = Field(max_length=MAX_PROMPT_SEED)


class GetStateAction(_RoomAction):
    action: Literal["get_state"]


class ListRoomsAction(_Action):
    action: Literal["list_rooms"]


class DeleteRoomAction(_RoomAction):
    action: Literal["delete_room"]


RoomAction = Annotated[
    Union[
        StatusAction,
        CreateRoomAction,
        JoinAction,
        NextTurnAction,
        PauseTurnAction,
        ResumeTurnAction,
        StopTurnAction,
        SubmitTextAction,
        RoomPatchAction,
        GetStateAction,
        ListRoomsAction,
        DeleteRoomAction,
    ],
    Field(discriminator="action"),
]


class RoomActionRequest(RootModel[RoomAction]):
    """Body of the room endpoint: exactly one of the action variants."""


ADMIN_ACTIONS: frozenset[type[BaseModel]] = frozenset(
    {
        StatusAction,
        CreateRoomAction,
        NextTurnAction,
        PauseTurnAction,
        ResumeTurnAction,
        StopTurnAction,
        RoomPatchAction,
        ListRoomsAction,
        DeleteRoomAction,
    }
)


class RoomStateSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_code: str
    room_name: str
    activity_title: str
    room_mode: RoomMode
    prompt_seed: str
    story_so_far: str
    writers: List[str]
    current_writer_index: int
    turn_ends_at: Optional[int]
    turn_paused: bool
    turn_remaining_ms: Optional[int]
    turn_s: int
    version: int
    created_at: int
    updated_at: int
    expires_at: int
    phase: str


class RoomSummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_code: str
    room_name: str
    activity_title: str
    room_mode: RoomMode
    writer_count: int
    current_writer: Optional[str]
    turn_ends_at: Optional[int]
    turn_paused: bool
    turn_remaining_ms: Optional[int]
    phase: str
    version: int
    updated_at: int
    expires_at: int


class InviteCreatePayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    ttl_h: Optional[float] = None
    room_name: Optional[str] = Field(default=None, max_length=MAX_LABEL)
    activity_title: Optional[str] = Field(default=None, max_length=MAX_LABEL)
    room_mode: RoomMode = RoomMode.CONTINUA_TU
    turn_s: Optional[float] = None


class InviteCreateResponse(BaseModel):
    ok: bool = True
    room: str
    ttl_h: int
    expires_at: str
    token: str
    link: str


class InviteClaimPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1)
    room: Optional[str] = None


class RoomSessionSchema(BaseModel):
    role: Literal["NSU_SESSION"] = "NSU_SESSION"
    room: str
    expires_at: str
    turn_s: int


class InviteClaimResponse(BaseModel):
    ok: bool = True
    session: RoomSessionSchema
