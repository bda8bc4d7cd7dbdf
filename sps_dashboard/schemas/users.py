from typing import Optional, Literal
from pydantic import BaseModel, EmailStr, field_validator

from ..config import settings

RoleName = Literal["admin", "coordinator"]


def _empty_to_none(v):
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: RoleName = "coordinator"
    zone: Optional[str] = None
    specialty: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < settings.min_password_length:
            raise ValueError(f"password must be at least {settings.min_password_length} characters")
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def required_text(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("phone", "zone", "specialty", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return _empty_to_none(v)


class UserUpdate(BaseModel):
    # email and password are not editable in place
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[RoleName] = None
    zone: Optional[str] = None
    specialty: Optional[str] = None

    @field_validator("first_name", "last_name", "role")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v

    @field_validator("phone", "zone", "specialty", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return _empty_to_none(v)

