"""Pydantic schemas for user records."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

RoleName = Literal["user", "admin"]


class UserResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    photo: str
    role: str
    active: bool
    registered_date: datetime
    expiry_date: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    results: int
    items: list[UserResponse]


class ProfileUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    photo: str | None = None


class AdminUserCreate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    password: str | None = None
    password_confirm: str | None = None
    photo: str | None = None
    role: RoleName = "user"
    registered_date: datetime | None = None


class AdminUserUpdate(ProfileUpdate):
    role: RoleName | None = None
    active: bool | None = None
    expiry_date: datetime | None = None
