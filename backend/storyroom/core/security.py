"""Security helpers: admin session JWTs and signed room invite tokens."""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import time
from hashlib import sha256
from typing import Any, Iterable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..models import AdminRole, AdminSession, RoomInvite
from .config import AppSettings, get_settings
from .errors import AuthError, ConfigError, ExpiredError
from .logging import get_logger

logger = get_logger(__name__)

INVITE_TOKEN_TYPE = "PUBLIC_ROOM"
JWT_HEADER = {"alg": "HS256", "typ": "JWT"}
ADMIN_ROLES: tuple[AdminRole, ...] = (AdminRole.ADMIN, AdminRole.SUPERUSER)

bearer_scheme = HTTPBearer(auto_error=False)


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode())


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _sign(message: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), message.encode(), sha256).digest()
    return b64url_encode(digest)


def _require_secret(secret: str | None, name: str) -> str:
    if not secret:
        raise ConfigError(f"missing {name}")
    return secret


def sign_admin_token(
    role: AdminRole,
    secret: str,
    *,
    ttl_seconds: int,
    su_name: str | None = None,
    now: int | None = None,
) -> str:
    """Return a three-segment HS256 JWT for an admin session."""
    secret = _require_secret(secret, "ADMIN_JWT_SECRET")
    issued_at = int(time.time()) if now is None else now
    payload: dict[str, Any] = {
        "role": str(role),
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
    }
    if su_name:
        payload["su_name"] = su_name
    header = b64url_encode(_canonical_json(JWT_HEADER).encode())
    body = b64url_encode(_canonical_json(payload).encode())
    signature = _sign(f"{header}.{body}", secret)
    return f"{header}.{body}.{signature}"


def verify_admin_token(
    token: str,
    secret: str,
    *,
    roles: Iterable[AdminRole] = ADMIN_ROLES,
    now: int | None = None,
) -> AdminSession:
    """Verify an admin JWT and return the session it carries.

    Every failure surfaces as :class:`AuthError`; the reason string is short
    and never echoes token material.
    """
    secret = _require_secret(secret, "ADMIN_JWT_SECRET")
    parts = token.split(".")
    if len(parts) != 3 or not all(parts):
        raise AuthError("invalid token format")

    header, body, signature = parts
    expected = _sign(f"{header}.{body}", secret)
    if not hmac.compare_digest(signature.encode(), expected.encode()):
        raise AuthError("invalid token signature")

    try:
        payload = json.loads(b64url_decode(body).decode())
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise AuthError("invalid token payload") from None
    if not isinstance(payload, dict):
        raise AuthError("invalid token payload")

    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise AuthError("token missing exp")
    current = int(time.time()) if now is None else now
    if current >= exp:
        raise AuthError("token expired")

    try:
        role = AdminRole(payload.get("role"))
    except ValueError:
        raise AuthError("not an admin token") from None
    if role not in set(roles):
        raise AuthError("not an admin token")

    su_name = payload.get("su_name")
    return AdminSession(
        role=role,
        issued_at=int(payload.get("iat", 0)),
        expires_at=int(exp),
        su_name=str(su_name) if su_name else None,
    )


def sign_invite_token(invite: RoomInvite, secret: str) -> str:
    """Return ``base64url(payload).base64url(mac)`` for a room invite."""
    secret = _require_secret(secret, "ROOM_SESSION_SECRET")
    payload_json = _canonical_json(invite.to_payload())
    return f"{b64url_encode(payload_json.encode())}.{_sign(payload_json, secret)}"


def verify_invite_token(
    token: str,
    secret: str,
    *,
    room: str | None = None,
    now: int | None = None,
) -> RoomInvite:
    """Verify a room invite token.

    An elapsed ``exp`` raises :class:`ExpiredError` so callers can report the
    room as gone; every other failure is an :class:`AuthError`.
    """
    secret = _require_secret(secret, "ROOM_SESSION_SECRET")
    parts = token.split(".")
    if len(parts) != 2 or not all(parts):
        raise AuthError("invalid token format")

    encoded, signature = parts
    try:
        payload_json = b64url_decode(encoded).decode()
        payload = json.loads(payload_json)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise AuthError("invalid token payload") from None
    # The MAC covers the decoded JSON, so the encoding itself must be canonical.
    if b64url_encode(payload_json.encode()) != encoded:
        raise AuthError("invalid token payload")

    expected = _sign(payload_json, secret)
    if not hmac.compare_digest(signature.encode(), expected.encode()):
        raise AuthError("invalid token signature")
    if not isinstance(payload, dict) or payload.get("type") != INVITE_TOKEN_TYPE:
        raise AuthError("wrong token type")

    token_room = str(payload.get("room") or "").strip()
    if not token_room:
        raise AuthError("missing room in token")
    if room is not None and room.strip() != token_room:
        raise AuthError("room mismatch")

    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)) or not exp:
        raise AuthError("missing exp in token")
    current = int(time.time() * 1000) if now is None else now
    if current >= exp:
        raise ExpiredError("room expired")

    room_name = payload.get("room_name")
    return RoomInvite(
        room=token_room,
        ttl_h=int(payload.get("ttl_h", 0)),
        turn_s=int(payload.get("turn_s", 60)),
        issued_at=int(payload.get("iat", 0)),
        expires_at=int(exp),
        room_name=str(room_name) if room_name else None,
        version=int(payload.get("v", 1)),
    )


def authenticate_admin(
    credentials: HTTPAuthorizationCredentials | None,
    settings: AppSettings,
) -> AdminSession:
    if credentials is None:
        raise AuthError("admin only")
    try:
        return verify_admin_token(credentials.credentials, settings.admin_jwt_secret)
    except AuthError as exc:
        logger.warning("Rejected admin token: %s", exc.error)
        raise


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: AppSettings = Depends(get_settings),
) -> AdminSession:
    return authenticate_admin(credentials, settings)
