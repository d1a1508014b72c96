"""Schemas for admin login."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from ..models import AdminRole


class LoginPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    password: str = Field(min_length=1, max_length=256)
    su_name: Optional[str] = Field(default=None, max_length=64)


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    role: AdminRole
    expires_at: int
