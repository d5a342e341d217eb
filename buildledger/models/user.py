"""
User Profile Models

A user profile is the actor identity referenced by ledger entries and the
source of authorization (admin vs. regular user).
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from buildledger.models.records import RecordModel, utc_now


UNKNOWN_ACTOR = "Unknown"


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError(f"Invalid email address: {v!r}")
    return v


class UserProfile(RecordModel):
    """Profile row for an authenticated user."""

    RECORD_FIELDS = (
        "id",
        "email",
        "full_name",
        "role",
        "is_active",
        "phone",
        "position",
        "created_at",
        "last_login",
    )

    id: UUID = Field(default_factory=uuid4)
    email: str = Field(..., max_length=254)
    full_name: Optional[str] = Field(default=None, max_length=200)
    role: UserRole = UserRole.USER
    is_active: bool = True
    phone: Optional[str] = Field(default=None, max_length=50)
    position: Optional[str] = Field(default=None, max_length=100)
    created_at: datetime = Field(default_factory=utc_now)
    last_login: Optional[datetime] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def display_name(self) -> str:
        """Full name, or the unknown-actor sentinel when unset."""
        return self.full_name or UNKNOWN_ACTOR


class CreateUserData(BaseModel):
    """Input for creating a user account and its profile."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=200)
    role: UserRole = UserRole.USER
    is_active: bool = True
    phone: Optional[str] = None
    position: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)


class UpdateUserData(BaseModel):
    """Partial profile update. Fields left as None are not touched."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    phone: Optional[str] = None
    position: Optional[str] = None
