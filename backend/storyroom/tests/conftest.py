"""Shared fixtures for the story room tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx
import pytest
from fastapi import FastAPI

from ..core.config import AppSettings, get_settings
from ..core.room_store import RoomStore, get_room_store
from ..core.security import sign_admin_token
from ..core.store import InMemoryKeyValueStore, get_kv_store
from ..main import create_app
from ..models import AdminRole
from ..services.rooms import RoomCoordinator, get_room_coordinator

START_MS = 1_700_000_000_000
ADMIN_SECRET = "test-admin-secret"
ROOM_SECRET = "test-room-secret"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = START_MS) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def seconds(self) -> float:
        return self.now_ms / 1000

    def advance(self, *, ms: int = 0, seconds: float = 0, hours: float = 0) -> None:
        self.now_ms += ms + int(seconds * 1000) + int(hours * 3_600_000)


def make_settings(**overrides: object) -> AppSettings:
    values: dict[str, object] = {
        "environment": "test",
        "admin_jwt_secret": ADMIN_SECRET,
        "room_session_secret": ROOM_SECRET,
        "admin_password": "let-me-in",
        "public_base_url": "https://stories.example",
        "log_level": "WARNING",
    }
    values.update(overrides)
    return AppSettings(_env_file=None, **values)  # type: ignore[arg-type]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> AppSettings:
    return make_settings()


@pytest.fixture
def kv(clock: FakeClock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock.seconds)


@pytest.fixture
def store(kv: InMemoryKeyValueStore, clock: FakeClock) -> RoomStore:
    return RoomStore(kv, key_prefix="test", floor_ttl_seconds=60, clock=clock)


@pytest.fixture
def coordinator(store: RoomStore, settings: AppSettings, clock: FakeClock) -> RoomCoordinator:
    return RoomCoordinator(store, settings=settings, clock=clock)


def build_app(
    settings: AppSettings,
    store: RoomStore,
    kv: InMemoryKeyValueStore,
    clock: FakeClock,
) -> FastAPI:
    app = create_app(settings)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_room_store] = lambda: store
    app.dependency_overrides[get_kv_store] = lambda: kv
    app.dependency_overrides[get_room_coordinator] = lambda: RoomCoordinator(
        store, settings=settings, clock=clock
    )
    return app


@pytest.fixture
def app(settings: AppSettings, store: RoomStore, kv: InMemoryKeyValueStore, clock: FakeClock) -> FastAPI:
    return build_app(settings, store, kv, clock)


def client_for(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def admin_headers(
    secret: str = ADMIN_SECRET,
    *,
    role: AdminRole = AdminRole.ADMIN,
    su_name: str | None = None,
) -> dict[str, str]:
    token = sign_admin_token(role, secret, ttl_seconds=3600, su_name=su_name)
    return {"Authorization": f"Bearer {token}"}


def send(app: FastAPI, method: str, path: str, **kwargs: object) -> httpx.Response:
    """Issue one request against the app from synchronous test code."""

    async def _send() -> httpx.Response:
        async with client_for(app) as client:
            return await client.request(method, path, **kwargs)  # type: ignore[arg-type]

    return asyncio.run(_send())


@pytest.fixture
def post(app: FastAPI) -> Callable[..., httpx.Response]:
    def call(path: str, payload: object, *, headers: dict[str, str] | None = None) -> httpx.Response:
        return send(app, "POST", path, json=payload, headers=headers or {})

    return call
