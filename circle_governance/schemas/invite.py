"""Invite Schemas: request/response models for invite links.

Invariants:
    - InviteCreate bounds: max_uses >= 1, 1 <= expires_in_days <= 365
    - InvitePreviewResponse never exposes who created the token
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class InviteCreate(BaseModel):
    max_uses: int = Field(1, ge=1)
    expires_in_days: int = Field(7, ge=1, le=365)


class InviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    token: str
    circle_id: UUID
    max_uses: int
    use_count: int
    expires_at: datetime
    is_active: bool
    created_at: datetime


class InviteCirclePreview(BaseModel):
    id: UUID
    name: str
    description: str | None
    member_count: int


class InvitePreviewResponse(BaseModel):
    """What an invite link shows before redemption."""
    circle: InviteCirclePreview
    uses_remaining: int
    expires_at: datetime
    already_member: bool = False
