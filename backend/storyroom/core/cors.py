"""Origin allow-list shared by every endpoint."""
from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from fastapi import FastAPI
from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

from .config import AppSettings

ALLOWED_METHODS = ["POST", "GET", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Accept", "X-Requested-With", "Authorization"]


class OriginMatcher:
    """Match an ``Origin`` header against exact origins and regex patterns."""

    def __init__(self, origins: Iterable[str] = (), patterns: Iterable[str] = ()) -> None:
        self.origins = frozenset(origin.rstrip("/") for origin in origins)
        self.patterns = tuple(re.compile(pattern) for pattern in patterns)

    def __call__(self, origin: str | None) -> bool:
        if not origin:
            return False
        return origin in self.origins or any(pattern.match(origin) for pattern in self.patterns)

    def as_regex(self) -> str | None:
        """Fold the allow-list into the single regex ``CORSMiddleware`` accepts."""
        parts = [f"^{re.escape(origin)}$" for origin in sorted(self.origins)]
        parts.extend(pattern.pattern for pattern in self.patterns)
        if not parts:
            return None
        return "|".join(f"(?:{part})" for part in parts)


class PreflightCORSMiddleware(CORSMiddleware):
    """``CORSMiddleware`` that answers every preflight with an empty 204.

    Refused origins and bare ``OPTIONS`` requests get the same empty 204,
    just without any ``Access-Control-Allow-*`` headers.
    """

    def __init__(self, app: ASGIApp, *, matcher: OriginMatcher, **options: Any) -> None:
        super().__init__(app, **options)
        self.matcher = matcher

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            headers = Headers(scope=scope)
            if "origin" not in headers or "access-control-request-method" not in headers:
                await Response(status_code=204)(scope, receive, send)
                return
        await super().__call__(scope, receive, send)

    def preflight_response(self, request_headers: Headers) -> Response:
        if not self.matcher(request_headers.get("origin")):
            return Response(status_code=204)
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return Response(status_code=204)
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in {"content-length", "content-type"}
        }
        return Response(status_code=204, headers=headers)


def install_cors(app: FastAPI, settings: AppSettings) -> OriginMatcher:
    matcher = OriginMatcher(settings.cors_allow_origins, settings.cors_allow_origin_patterns)
    app.add_middleware(
        PreflightCORSMiddleware,
        matcher=matcher,
        allow_origin_regex=matcher.as_regex(),
        allow_credentials=True,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
        max_age=86400,
    )
    return matcher
