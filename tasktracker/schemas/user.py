"""
User Pydantic schemas.
Covers registration, login, profile reads/updates, and the token response.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

from tasktracker.core.security import validate_password_strength
from tasktracker.schemas.base import CamelModel

UserRole = Literal["user", "admin"]


# ── Create ────────────────────────────────────────────────────────────────────

class UserCreate(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)


class AdminUserCreate(UserCreate):
    """Account created by an admin, who also picks the role."""

    role: UserRole = "user"


# ── Update ────────────────────────────────────────────────────────────────────

class UserUpdate(CamelModel):
    """Profile patch. ``role`` and ``is_active`` are honoured for admins only."""

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None
    role: UserRole | None = None
    is_active: bool | None = None


class ProfileUpdate(CamelModel):
    """Self-service patch for the signed-in user. Role and status are not editable here."""

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str | None) -> str | None:
        return None if v is None else validate_password_strength(v)


# ── Read ──────────────────────────────────────────────────────────────────────

class UserRead(CamelModel):
    id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    role: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class UserSummary(CamelModel):
    """Identity summary embedded in task responses."""

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str


# ── Auth ──────────────────────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead
