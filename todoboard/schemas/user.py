"""
User Pydantic schemas.
Covers the user directory, user-select login and registration.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


# ── Create ────────────────────────────────────────────────────────────────────

class UserCreate(BaseModel):
    name: str = Field(max_length=255)
    email: EmailStr


class LoginRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)


# ── Read ──────────────────────────────────────────────────────────────────────

class UserRead(BaseModel):
    id: str
    name: str
    email: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SessionRead(BaseModel):
    user: UserRead | None = None
