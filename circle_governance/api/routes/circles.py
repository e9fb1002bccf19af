"""Circle Routes: circle CRUD, membership management and pending invitations.

Invariants:
    - Every endpoint requires the caller identity (get_current_user_id)
    - Routes never contain governance rules; they delegate to MembershipStore and
      CircleActions, which consult GovernanceGuard
    - Domain errors propagate to the global handlers (api/error_handlers.py)

Design Decisions:
    - Members and pending responses live here rather than in a separate router:
      they are sub-resources of one circle and share its path prefix
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from circle_governance.api.dependencies import (
    get_circle_actions, get_current_user_id, get_membership_store,
)
from circle_governance.schemas.circle import (
    CircleCreate, CircleDetailResponse, CircleResponse, CircleSummaryResponse,
    CircleUpdate, MemberInvite, MembershipResponse, PendingResponse, RoleChange,
)
from circle_governance.services.circle_actions import CircleActions
from circle_governance.services.membership_store import MembershipStore

router = APIRouter(prefix="/api/v1/circles", tags=["circles"])


@router.get("")
async def list_my_circles(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(get_current_user_id),
    store: MembershipStore = Depends(get_membership_store),
):
    """Circles the caller belongs to, most recently joined first."""
    rows = await store.list_circles_for_user(user_id, limit=limit, offset=offset)
    return {
        "circles": [
            CircleSummaryResponse(
                **CircleResponse.model_validate(circle).model_dump(),
                my_role=membership.role,
            )
            for circle, membership in rows
        ],
        "pagination": {"limit": limit, "offset": offset},
    }


@router.post(
    "", response_model=CircleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_circle(
    body: CircleCreate,
    user_id: UUID = Depends(get_current_user_id),
    store: MembershipStore = Depends(get_membership_store),
):
    """Create a circle owned by the caller."""
    return await store.create_circle(
        user_id, body.name, body.description, is_private=body.is_private,
    )


@router.get("/{circle_id}", response_model=CircleDetailResponse)
async def get_circle(
    circle_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    actions: CircleActions = Depends(get_circle_actions),
):
    detail = await actions.get_circle_detail(circle_id, user_id)
    return CircleDetailResponse(
        **CircleResponse.model_validate(detail.circle).model_dump(),
        member_count=detail.member_count,
        my_role=detail.my_role,
    )


@router.patch("/{circle_id}", response_model=CircleResponse)
async def update_circle(
    circle_id: UUID,
    body: CircleUpdate,
    user_id: UUID = Depends(get_current_user_id),
    actions: CircleActions = Depends(get_circle_actions),
):
    """Rename or re-describe a circle (owner/admin)."""
    return await actions.update_circle(
        circle_id, user_id, **body.model_dump(exclude_unset=True),
    )


@router.delete("/{circle_id}")
async def delete_circle(
    circle_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    actions: CircleActions = Depends(get_circle_actions),
):
    """Delete a circle. With more than one admin, a passed delete_circle vote is required."""
    await actions.delete_circle(circle_id, user_id)
    return {"success": True}


# ─── Members ─────────────────────────────────────────────────────

@router.get("/{circle_id}/members")
async def list_members(
    circle_id: UUID,
    invite_status: str = Query("accepted", alias="status"),
    user_id: UUID = Depends(get_current_user_id),
    actions: CircleActions = Depends(get_circle_actions),
):
    members = await actions.list_members(circle_id, user_id, invite_status)
    return {
        "members": [MembershipResponse.model_validate(m) for m in members],
    }


@router.post(
    "/{circle_id}/members", response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    circle_id: UUID,
    body: MemberInvite,
    user_id: UUID = Depends(get_current_user_id),
    actions: CircleActions = Depends(get_circle_actions),
):
    """Invite a user directly; the membership stays pending until they accept."""
    return await actions.invite_user(circle_id, user_id, body.user_id)


@router.patch(
    "/{circle_id}/members/{member_id}", response_model=MembershipResponse,
)
async def change_member_role(
    circle_id: UUID,
    member_id: UUID,
    body: RoleChange,
    user_id: UUID = Depends(get_current_user_id),
    actions: CircleActions = Depends(get_circle_actions),
):
    return await actions.change_role(circle_id, user_id, member_id, body.role)


@router.delete("/{circle_id}/members/{member_id}")
async def remove_member(
    circle_id: UUID,
    member_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    actions: CircleActions = Depends(get_circle_actions),
):
    """Remove a member, or leave the circle when member_id is the caller."""
    removed = await actions.remove_member(circle_id, user_id, member_id)
    return {"success": True, "removed": removed}


@router.post("/{circle_id}/pending/respond")
async def respond_to_invitation(
    circle_id: UUID,
    body: PendingResponse,
    user_id: UUID = Depends(get_current_user_id),
    actions: CircleActions = Depends(get_circle_actions),
):
    """Accept or decline the caller's pending invitation to this circle."""
    membership = await actions.respond_to_pending(circle_id, user_id, body.accept)
    if membership is None:
        return {"success": True, "membership": None}
    return {
        "success": True,
        "membership": MembershipResponse.model_validate(membership),
    }
