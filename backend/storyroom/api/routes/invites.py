"""One-shot invite endpoints: create a room with a shareable link, claim it."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ...core.security import require_admin
from ...models import AdminSession
from ...schemas.rooms import (
    InviteClaimPayload,
    InviteClaimResponse,
    InviteCreatePayload,
    InviteCreateResponse,
    RoomSessionSchema,
)
from ...services.rooms import RoomCoordinator, get_room_coordinator

router = APIRouter(prefix="/rooms/invites", tags=["invites"])


def _iso(epoch_ms: int) -> str:
    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@router.post("/create", response_model=InviteCreateResponse)
async def create_invite(
    payload: InviteCreatePayload,
    coordinator: RoomCoordinator = Depends(get_room_coordinator),
    admin: AdminSession = Depends(require_admin),
) -> InviteCreateResponse:
    created = await coordinator.create_room(
        ttl_h=payload.ttl_h,
        turn_s=payload.turn_s,
        room_mode=payload.room_mode,
        room_name=payload.room_name,
        activity_title=payload.activity_title,
    )
    return InviteCreateResponse(
        room=created.room.room_code,
        ttl_h=created.invite.ttl_h,
        expires_at=_iso(created.room.expires_at),
        token=created.token,
        link=created.link,
    )


@router.post("/claim", response_model=InviteClaimResponse)
async def claim_invite(
    payload: InviteClaimPayload,
    coordinator: RoomCoordinator = Depends(get_room_coordinator),
) -> InviteClaimResponse:
    invite, room = await coordinator.claim_invite(payload.token, room=payload.room)
    return InviteClaimResponse(
        session=RoomSessionSchema(
            room=invite.room,
            expires_at=_iso(room.expires_at),
            turn_s=room.turn_s,
        )
    )
