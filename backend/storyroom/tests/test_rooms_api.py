"""End-to-end tests for the room action endpoint."""
from __future__ import annotations

from typing import get_args

import httpx
from fastapi import FastAPI

from ..api.routes.rooms import HANDLERS
from ..models import AdminRole
from ..schemas.rooms import ADMIN_ACTIONS, RoomAction
from .conftest import FakeClock, admin_headers, send

ROOMS = "/api/rooms"


def _create_room(post, **fields: object) -> dict:
    response = post(ROOMS, {"action": "create", **fields}, headers=admin_headers())
    assert response.status_code == 200, response.text
    return response.json()


def test_every_action_has_a_handler() -> None:
    actions = set(get_args(get_args(RoomAction)[0]))

    assert set(HANDLERS) == actions
    assert ADMIN_ACTIONS < actions


def test_status_requires_admin(post) -> None:
    response = post(ROOMS, {"action": "status"})

    assert response.status_code == 401
    assert response.json() == {"error": "admin only"}


def test_status_with_admin_token(post, clock: FakeClock) -> None:
    response = post(ROOMS, {"action": "status"}, headers=admin_headers())

    assert response.status_code == 200
    assert response.json() == {"success": True, "ok": True, "now": clock()}


def test_superuser_token_is_accepted(post) -> None:
    headers = admin_headers(role=AdminRole.SUPERUSER, su_name="maestra")

    assert post(ROOMS, {"action": "status"}, headers=headers).status_code == 200


def test_forged_admin_token_is_rejected(post) -> None:
    response = post(ROOMS, {"action": "list_rooms"}, headers=admin_headers("wrong-secret"))

    assert response.status_code == 401
    assert response.json()["error"] == "invalid token signature"


def test_create_returns_room_and_invite(post, clock: FakeClock) -> None:
    body = _create_room(post, ttl_h=2, turn_s=45, room_name="Classe 3B", room_mode="CAMPBELL")

    state = body["room_state"]
    assert body["success"] is True
    assert body["room"] == state["room_code"]
    assert body["expires_at"] == clock() + 2 * 3_600_000
    assert body["link"] == f"https://stories.example/join/{body['room']}?token={body['token']}"
    assert state["version"] == 1
    assert state["phase"] == "idle"
    assert state["room_mode"] == "CAMPBELL"
    assert state["turn_s"] == 45
    assert state["writers"] == []


def test_full_turn_cycle(post, clock: FakeClock) -> None:
    room = _create_room(post)["room"]

    first = post(ROOMS, {"action": "join", "room": room}).json()
    second = post(ROOMS, {"action": "join", "room": room}).json()
    assert (first["writer_id"], first["writer_index"]) == ("Writer 1", 0)
    assert (second["writer_id"], second["writer_index"]) == ("Writer 2", 1)

    turn = post(ROOMS, {"action": "next_turn", "room": room, "turn_s": 60}, headers=admin_headers())
    assert turn.json()["room_state"]["turn_ends_at"] == clock() + 60_000
    assert turn.json()["room_state"]["current_writer_index"] == 1

    clock.advance(seconds=5)
    submitted = post(
        ROOMS, {"action": "submit_text", "room": room, "writer_id": "Writer 2", "text": "  C'era una volta  "}
    )
    assert submitted.status_code == 200
    state = submitted.json()["room_state"]
    assert state["story_so_far"] == "  C'era una volta  "
    assert state["phase"] == "idle"
    assert state["version"] == 5

    fetched = post(ROOMS, {"action": "get_state", "room": room}).json()
    assert fetched["room_state"] == state
    assert fetched["now"] == clock()


def test_wrong_writer_is_forbidden(post) -> None:
    room = _create_room(post)["room"]
    post(ROOMS, {"action": "join", "room": room})
    post(ROOMS, {"action": "join", "room": room})
    post(ROOMS, {"action": "next_turn", "room": room}, headers=admin_headers())

    response = post(ROOMS, {"action": "submit_text", "room": room, "writer_id": "Writer 1", "text": "hi"})

    assert response.status_code == 403
    assert response.json() == {"error": "not your turn"}


def test_pause_resume_and_conflicts(post, clock: FakeClock) -> None:
    room = _create_room(post)["room"]
    post(ROOMS, {"action": "join", "room": room})
    post(ROOMS, {"action": "next_turn", "room": room, "turn_s": 60}, headers=admin_headers())
    clock.advance(seconds=10)

    paused = post(ROOMS, {"action": "pause_turn", "room": room}, headers=admin_headers())
    assert paused.json()["room_state"]["turn_remaining_ms"] == 50_000
    assert paused.json()["room_state"]["phase"] == "paused"

    again = post(ROOMS, {"action": "pause_turn", "room": room}, headers=admin_headers())
    assert again.status_code == 409
    assert again.json() == {"error": "already paused"}

    clock.advance(seconds=30)
    resumed = post(ROOMS, {"action": "resume_turn", "room": room}, headers=admin_headers())
    assert resumed.json()["room_state"]["turn_ends_at"] == clock() + 50_000

    stopped = post(ROOMS, {"action": "stop_turn", "room": room}, headers=admin_headers())
    assert stopped.json()["room_state"]["phase"] == "idle"


def test_next_turn_without_writers_conflicts(post) -> None:
    room = _create_room(post)["room"]

    response = post(ROOMS, {"action": "next_turn", "room": room}, headers=admin_headers())

    assert response.status_code == 409
    assert response.json() == {"error": "no writers yet"}


def test_room_patch_sets_prompt_seed(post) -> None:
    room = _create_room(post)["room"]

    response = post(
        ROOMS, {"action": "room_patch", "room": room, "prompt_seed": "Un bosco incantato"}, headers=admin_headers()
    )

    assert response.json()["room_state"]["prompt_seed"] == "Un bosco incantato"
    assert response.json()["room_state"]["version"] == 2


def test_room_patch_rejects_long_seed(post) -> None:
    room = _create_room(post)["room"]

    response = post(
        ROOMS, {"action": "room_patch", "room": room, "prompt_seed": "x" * 601}, headers=admin_headers()
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid request"


def test_unknown_room_is_not_found(post) -> None:
    response = post(ROOMS, {"action": "get_state", "room": "NOPE00"})

    assert response.status_code == 404
    assert response.json() == {"error": "room not found"}


def test_expired_room_is_gone(post, clock: FakeClock) -> None:
    room = _create_room(post, ttl_h=1)["room"]
    clock.advance(hours=1)

    response = post(ROOMS, {"action": "get_state", "room": room})

    assert response.status_code == 410
    assert response.json() == {"error": "room expired"}
    assert post(ROOMS, {"action": "join", "room": room}).status_code == 404


def test_submitted_text_keeps_its_whitespace(post) -> None:
    room = _create_room(post)["room"]
    post(ROOMS, {"action": "join", "room": room})
    post(ROOMS, {"action": "next_turn", "room": room}, headers=admin_headers())

    response = post(
        ROOMS,
        {"action": "submit_text", "room": f" {room} ", "writer_id": " Writer 1 ", "text": "\tIndented line\n"},
    )

    assert response.status_code == 200
    assert response.json()["room_state"]["story_so_far"] == "\tIndented line\n"


def test_blank_text_is_bad_request(post) -> None:
    response = post(ROOMS, {"action": "submit_text", "room": "A1B2C3", "writer_id": "Writer 1", "text": "   "})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid request"


def test_list_and_delete_rooms(post, clock: FakeClock) -> None:
    later = _create_room(post, ttl_h=8)["room"]
    sooner = _create_room(post, ttl_h=3)["room"]

    listed = post(ROOMS, {"action": "list_rooms"}, headers=admin_headers()).json()
    assert [summary["room_code"] for summary in listed["rooms"]] == [sooner, later]
    assert listed["now"] == clock()

    deleted = post(ROOMS, {"action": "delete_room", "room": sooner}, headers=admin_headers())
    assert deleted.json() == {"success": True, "room": sooner, "deleted": True, "already_gone": False}

    repeated = post(ROOMS, {"action": "delete_room", "room": sooner}, headers=admin_headers())
    assert repeated.status_code == 200
    assert repeated.json()["already_gone"] is True

    listed = post(ROOMS, {"action": "list_rooms"}, headers=admin_headers()).json()
    assert [summary["room_code"] for summary in listed["rooms"]] == [later]


def test_unknown_action_is_bad_request(post) -> None:
    response = post(ROOMS, {"action": "explode", "room": "A1B2C3"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid request"
    assert isinstance(body["detail"], list)


def test_missing_fields_are_bad_request(post) -> None:
    assert post(ROOMS, {"action": "join"}).status_code == 400
    assert post(ROOMS, {"action": "submit_text", "room": "A1B2C3", "writer_id": "Writer 1"}).status_code == 400
    assert post(ROOMS, {"room": "A1B2C3"}).status_code == 400


def test_oversized_text_is_bad_request(post) -> None:
    response = post(
        ROOMS, {"action": "submit_text", "room": "A1B2C3", "writer_id": "Writer 1", "text": "x" * 4001}
    )

    assert response.status_code == 400


def test_malformed_json_is_bad_request(app: FastAPI) -> None:
    response = send(app, "POST", ROOMS, content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid request"


def _options(app: FastAPI, origin: str) -> httpx.Response:
    return send(
        app,
        "OPTIONS",
        ROOMS,
        headers={
            "Origin": origin,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type, Authorization",
        },
    )


def test_preflight_from_allowed_origin_is_empty_204(app: FastAPI) -> None:
    response = _options(app, "https://fantasmia.it")

    assert response.status_code == 204
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "https://fantasmia.it"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_preflight_from_pattern_origin(app: FastAPI) -> None:
    response = _options(app, "https://preview-42.lovableproject.com")

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "https://preview-42.lovableproject.com"


def test_preflight_from_unknown_origin_is_empty_without_grant(app: FastAPI) -> None:
    response = _options(app, "https://evil.example")

    assert response.status_code == 204
    assert response.content == b""
    assert "access-control-allow-origin" not in response.headers
    assert "access-control-allow-methods" not in response.headers


def test_preflight_with_unlisted_header_is_empty_204(app: FastAPI) -> None:
    response = send(
        app,
        "OPTIONS",
        ROOMS,
        headers={
            "Origin": "https://fantasmia.it",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "X-Unlisted",
        },
    )

    assert response.status_code == 204
    assert response.content == b""


def test_bare_options_is_empty_204(app: FastAPI) -> None:
    with_origin = send(app, "OPTIONS", ROOMS, headers={"Origin": "https://fantasmia.it"})
    without_origin = send(app, "OPTIONS", ROOMS)

    for response in (with_origin, without_origin):
        assert response.status_code == 204
        assert response.content == b""


def test_simple_request_echoes_allowed_origin(post) -> None:
    response = post(ROOMS, {"action": "get_state", "room": "NOPE00"}, headers={"Origin": "http://localhost:5173"})

    assert response.status_code == 404
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
