import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, field_validator


Role = Literal["admin", "site_manager", "worker"]


class UserUpdate(BaseModel):
    email: EmailStr
    full_name: str
    role: Role
    phone: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def full_name_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Full name is required")
        return v


class UserCreate(UserUpdate):
    password: str

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        return v


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    role: str
    phone: Optional[str] = None
    worker_status: Optional[str] = None
    created_at: Optional[datetime] = None
