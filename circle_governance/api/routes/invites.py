"""Invite Routes: invite link creation, preview, redemption and deactivation.

Invariants:
    - GET /invites/{token} works without an identity (link previews)
    - Redemption and deactivation require the caller identity
    - Denials map to 404 (not_found) or 410 (deactivated, expired, exhausted,
      circle_deleted) through InviteDeniedError.http_status
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from circle_governance.api.dependencies import (
    get_current_user_id, get_invite_service, get_optional_user_id,
)
from circle_governance.config import get_settings
from circle_governance.schemas.circle import MembershipResponse
from circle_governance.schemas.invite import (
    InviteCirclePreview, InviteCreate, InvitePreviewResponse, InviteResponse,
)
from circle_governance.services.invite_service import InviteTokenService

router = APIRouter(prefix="/api/v1", tags=["invites"])


@router.post(
    "/circles/{circle_id}/invites", response_model=InviteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invite(
    circle_id: UUID,
    body: InviteCreate | None = None,
    user_id: UUID = Depends(get_current_user_id),
    invites: InviteTokenService = Depends(get_invite_service),
):
    """Issue an invite link for a circle (owner/admin)."""
    settings = get_settings()
    fields = body.model_dump(exclude_unset=True) if body else {}
    return await invites.create_invite(
        circle_id,
        user_id,
        max_uses=fields.get("max_uses", settings.invite_default_max_uses),
        expires_in_days=fields.get(
            "expires_in_days", settings.invite_default_expiry_days,
        ),
    )


@router.get("/invites/{token}", response_model=InvitePreviewResponse)
async def validate_invite(
    token: str,
    viewer_id: UUID | None = Depends(get_optional_user_id),
    invites: InviteTokenService = Depends(get_invite_service),
):
    """Preview an invite link. Consumes nothing."""
    preview = await invites.validate_invite(token, viewer_id)
    return InvitePreviewResponse(
        circle=InviteCirclePreview(
            id=preview.circle.id,
            name=preview.circle.name,
            description=preview.circle.description,
            member_count=preview.member_count,
        ),
        uses_remaining=preview.uses_remaining,
        expires_at=preview.invite.expires_at,
        already_member=preview.already_member,
    )


@router.post(
    "/invites/{token}/redeem", response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
async def redeem_invite(
    token: str,
    user_id: UUID = Depends(get_current_user_id),
    invites: InviteTokenService = Depends(get_invite_service),
):
    return await invites.redeem_invite(token, user_id)


@router.delete("/invites/{token}", response_model=InviteResponse)
async def deactivate_invite(
    token: str,
    user_id: UUID = Depends(get_current_user_id),
    invites: InviteTokenService = Depends(get_invite_service),
):
    """Switch an invite link off (owner/admin of its circle)."""
    return await invites.deactivate_invite(token, user_id)
