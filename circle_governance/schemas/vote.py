"""Vote Schemas: request/response models for governance votes and ballots.

Invariants:
    - VoteCreate.vote_type is one of the four governed actions
    - BallotCast.choice is exactly "yes" or "no"; anything else is a 400
    - VoteCreate.expires_in_days: 1-30

Design Decisions:
    - Targeted/untargeted consistency (target_user_id vs vote_type) is checked by
      VoteEngine, not here, so the API and direct service callers share one rule
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class VoteCreate(BaseModel):
    vote_type: Literal["remove_member", "promote_admin", "demote_admin", "delete_circle"]
    target_user_id: UUID | None = None
    expires_in_days: int = Field(7, ge=1, le=30)


class BallotCast(BaseModel):
    choice: Literal["yes", "no"]


class VoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    circle_id: UUID
    vote_type: str
    target_user_id: UUID | None
    initiated_by: UUID
    status: str
    yes_count: int
    no_count: int
    expires_at: datetime
    created_at: datetime
    resolved_at: datetime | None = None


class BallotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    choice: str
    created_at: datetime


class VoteTallyResponse(VoteResponse):
    """cast_ballot result: vote row plus the quorum it was resolved against."""
    quorum: int
    majority: int


class VoteDetailResponse(VoteResponse):
    total_admins: int
    votes_cast: int
    my_vote: str | None = None
    can_vote: bool
    ballots: list[BallotResponse] = Field(default_factory=list)
