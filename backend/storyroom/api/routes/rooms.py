"""Room action endpoint: one POST body, one action per request."""
from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel

from ...core.config import AppSettings, get_settings
from ...core.logging import get_logger
from ...core.security import authenticate_admin, bearer_scheme
from ...models import RoomState
from ...schemas.rooms import (
    ADMIN_ACTIONS,
    CreateRoomAction,
    DeleteRoomAction,
    GetStateAction,
    JoinAction,
    ListRoomsAction,
    NextTurnAction,
    PauseTurnAction,
    ResumeTurnAction,
    RoomActionRequest,
    RoomPatchAction,
    RoomStateSchema,
    StatusAction,
    StopTurnAction,
    SubmitTextAction,
)
from ...services.rooms import RoomCoordinator, get_room_coordinator

logger = get_logger(__name__)

router = APIRouter(prefix="/rooms", tags=["rooms"])

Handler = Callable[[RoomCoordinator, Any], Awaitable[dict[str, Any]]]


def _state_payload(state: RoomState) -> dict[str, Any]:
    return RoomStateSchema.model_validate(state).model_dump(mode="json")


def _ok(state: RoomState, **extra: Any) -> dict[str, Any]:
    return {"success": True, "room_state": _state_payload(state), **extra}


async def _status(coordinator: RoomCoordinator, action: StatusAction) -> dict[str, Any]:
    return {"success": True, "ok": True, "now": coordinator.now()}


async def _create(coordinator: RoomCoordinator, action: CreateRoomAction) -> dict[str, Any]:
    created = await coordinator.create_room(
        ttl_h=action.ttl_h,
        turn_s=action.turn_s,
        room_mode=action.room_mode,
        room_name=action.room_name,
        activity_title=action.activity_title,
    )
    return _ok(
        created.room,
        room=created.room.room_code,
        expires_at=created.room.expires_at,
        token=created.token,
        link=created.link,
    )


async def _join(coordinator: RoomCoordinator, action: JoinAction) -> dict[str, Any]:
    joined = await coordinator.join(action.room, token=action.token)
    return _ok(joined.room, writer_id=joined.writer_id, writer_index=joined.writer_index)


async def _next_turn(coordinator: RoomCoordinator, action: NextTurnAction) -> dict[str, Any]:
    return _ok(await coordinator.next_turn(action.room, turn_s=action.turn_s))


async def _pause_turn(coordinator: RoomCoordinator, action: PauseTurnAction) -> dict[str, Any]:
    return _ok(await coordinator.pause_turn(action.room))


async def _resume_turn(coordinator: RoomCoordinator, action: ResumeTurnAction) -> dict[str, Any]:
    return _ok(await coordinator.resume_turn(action.room))


async def _stop_turn(coordinator: RoomCoordinator, action: StopTurnAction) -> dict[str, Any]:
    return _ok(await coordinator.stop_turn(action.room))


async def _submit_text(coordinator: RoomCoordinator, action: SubmitTextAction) -> dict[str, Any]:
    room = await coordinator.submit_text(action.room, writer_id=action.writer_id, text=action.text)
    return _ok(room)


async def _room_patch(coordinator: RoomCoordinator, action: RoomPatchAction) -> dict[str, Any]:
    return _ok(await coordinator.patch_room(action.room, prompt_seed=action.prompt_seed))


async def _get_state(coordinator: RoomCoordinator, action: GetStateAction) -> dict[str, Any]:
    return _ok(await coordinator.get_state(action.room), now=coordinator.now())


async def _list_rooms(coordinator: RoomCoordinator, action: ListRoomsAction) -> dict[str, Any]:
    rooms = await coordinator.list_rooms()
    return {
        "success": True,
        "rooms": [summary.model_dump(mode="json") for summary in rooms],
        "now": coordinator.now(),
    }


async def _delete_room(coordinator: RoomCoordinator, action: DeleteRoomAction) -> dict[str, Any]:
    deleted = await coordinator.delete_room(action.room)
    return {"success": True, "room": action.room, "deleted": True, "already_gone": not deleted}


HANDLERS: dict[type[BaseModel], Handler] = {
    StatusAction: _status,
    CreateRoomAction: _create,
    JoinAction: _join,
    NextTurnAction: _next_turn,
    PauseTurnAction: _pause_turn,
    ResumeTurnAction: _resume_turn,
    StopTurnAction: _stop_turn,
    SubmitTextAction: _submit_text,
    RoomPatchAction: _room_patch,
    GetStateAction: _get_state,
    ListRoomsAction: _list_rooms,
    DeleteRoomAction: _delete_room,
}


@router.post("", response_model=None)
async def room_action(
    payload: RoomActionRequest,
    coordinator: RoomCoordinator = Depends(get_room_coordinator),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: AppSettings = Depends(get_settings),
) -> dict[str, Any]:
    action = payload.root
    action_type = type(action)
    if action_type in ADMIN_ACTIONS:
        session = authenticate_admin(credentials, settings)
        logger.debug("Admin action %s by %s", action.action, session.su_name or session.role)
    return await HANDLERS[action_type](coordinator, action)
