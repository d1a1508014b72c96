"""Admin login: exchange a configured password for a session token."""
from __future__ import annotations

import secrets
import time

from fastapi import APIRouter, Depends

from ...core.config import AppSettings, get_settings
from ...core.errors import AuthError, ConfigError
from ...core.logging import get_logger
from ...core.security import sign_admin_token
from ...models import AdminRole
from ...schemas.auth import LoginPayload, LoginResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginPayload,
    settings: AppSettings = Depends(get_settings),
) -> LoginResponse:
    if payload.su_name:
        role = AdminRole.SUPERUSER
        expected = settings.superuser_passwords.get(payload.su_name, "")
    else:
        role = AdminRole.ADMIN
        expected = settings.admin_password
        if not expected:
            raise ConfigError("missing ADMIN_PASSWORD")

    if not expected or not secrets.compare_digest(payload.password.encode(), expected.encode()):
        logger.warning("Failed %s login", role)
        raise AuthError("invalid credentials")

    now = int(time.time())
    ttl_seconds = settings.admin_token_expire_minutes * 60
    token = sign_admin_token(
        role,
        settings.admin_jwt_secret,
        ttl_seconds=ttl_seconds,
        su_name=payload.su_name,
        now=now,
    )
    logger.info("Issued %s session token", role)
    return LoginResponse(token=token, role=role, expires_at=now + ttl_seconds)
