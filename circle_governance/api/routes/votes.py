"""Vote Routes: initiate governance votes, cast ballots, read vote state.

Invariants:
    - All endpoints require the caller identity
    - A ballot is cast against a vote of the circle in the path; a vote id from
      another circle is a 404
    - Responses carry live tallies; cast_ballot also returns quorum and majority

Design Decisions:
    - Thin handlers: VoteEngine owns validation, the critical section and effects
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from circle_governance.api.dependencies import get_current_user_id, get_vote_engine
from circle_governance.schemas.vote import (
    BallotCast, BallotResponse, VoteCreate, VoteDetailResponse, VoteResponse,
    VoteTallyResponse,
)
from circle_governance.services.vote_engine import VoteDetail, VoteEngine

router = APIRouter(prefix="/api/v1/circles/{circle_id}/votes", tags=["votes"])


def _detail_response(detail: VoteDetail, with_ballots: bool) -> VoteDetailResponse:
    return VoteDetailResponse(
        **VoteResponse.model_validate(detail.vote).model_dump(),
        total_admins=detail.total_admins,
        votes_cast=detail.votes_cast,
        my_vote=detail.my_vote,
        can_vote=detail.can_vote,
        ballots=(
            [BallotResponse.model_validate(b) for b in detail.ballots]
            if with_ballots else []
        ),
    )


@router.get("")
async def list_votes(
    circle_id: UUID,
    vote_status: str = Query("active", alias="status"),
    include_all: bool = Query(False, alias="all"),
    user_id: UUID = Depends(get_current_user_id),
    engine: VoteEngine = Depends(get_vote_engine),
):
    """Votes of a circle, newest first."""
    details = await engine.list_votes(
        circle_id, user_id, status=vote_status, include_all=include_all,
    )
    return {"votes": [_detail_response(d, with_ballots=False) for d in details]}


@router.post(
    "", response_model=VoteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def initiate_vote(
    circle_id: UUID,
    body: VoteCreate,
    user_id: UUID = Depends(get_current_user_id),
    engine: VoteEngine = Depends(get_vote_engine),
):
    """Open a vote on removing, promoting or demoting a member, or deleting the circle."""
    return await engine.initiate_vote(
        circle_id,
        user_id,
        body.vote_type,
        target_user_id=body.target_user_id,
        expires_in_days=body.expires_in_days,
    )


@router.get("/{vote_id}", response_model=VoteDetailResponse)
async def get_vote(
    circle_id: UUID,
    vote_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    engine: VoteEngine = Depends(get_vote_engine),
):
    detail = await engine.get_vote(circle_id, vote_id, user_id)
    return _detail_response(detail, with_ballots=True)


@router.post("/{vote_id}/ballots", response_model=VoteTallyResponse)
async def cast_ballot(
    circle_id: UUID,
    vote_id: UUID,
    body: BallotCast,
    user_id: UUID = Depends(get_current_user_id),
    engine: VoteEngine = Depends(get_vote_engine),
):
    """Cast the caller's yes/no ballot; the vote resolves as soon as a majority exists."""
    await engine.get_vote_in_circle(circle_id, vote_id)
    result = await engine.cast_ballot(vote_id, user_id, body.choice)
    return VoteTallyResponse(
        **VoteResponse.model_validate(result.vote).model_dump(),
        quorum=result.tally.quorum,
        majority=result.tally.majority,
    )
