"""Circle Schemas: request/response models for circles and memberships.

Invariants:
    - CircleCreate.name: 1-100 chars after stripping (re-checked by core/circle_rules.py)
    - RoleChange.role only accepts assignable roles (member, admin)

Design Decisions:
    - Literal types over str enums for request fields: Pydantic rejects bad values
      with a 400 before the service is called
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CircleCreate(BaseModel):
    """Circle creation: validates name length and whitespace."""
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=2000)
    is_private: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty or whitespace")
        return v


class CircleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=2000)
    is_private: bool | None = None


class CircleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    created_by: UUID
    is_private: bool
    created_at: datetime
    updated_at: datetime | None = None


class CircleDetailResponse(CircleResponse):
    """Circle as seen by one of its members."""
    member_count: int
    my_role: str


class MembershipResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    circle_id: UUID
    user_id: UUID
    role: str
    invite_status: str
    invited_by: UUID | None
    joined_at: datetime | None
    created_at: datetime


class MemberInvite(BaseModel):
    """Direct invitation of a known user id."""
    user_id: UUID


class RoleChange(BaseModel):
    role: Literal["member", "admin"]


class PendingResponse(BaseModel):
    """Invitee's answer to a pending invitation."""
    accept: bool


class CircleSummaryResponse(CircleResponse):
    """Entry of the caller's circle list."""
    my_role: str
