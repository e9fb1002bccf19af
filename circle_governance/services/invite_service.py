"""Invite Token Service: issues, validates and redeems circle invite links.

Invariants:
    - use_count never exceeds max_uses: the increment is a single conditional UPDATE
      (use_count = use_count + 1 WHERE use_count < max_uses AND is_active)
    - validate_invite is side-effect-free and needs no authenticated user
    - A lost slot race is retried exactly once; the retry reports the denial that
      is now true (normally exhausted)
    - The slot claim and the membership write commit together or not at all

Design Decisions:
    - Slot claim happens BEFORE the membership write so the loser of a race never
      inserts a membership; the unique (circle_id, user_id) constraint covers the
      same user redeeming twice concurrently
    - Tokens come from secrets.token_urlsafe: opaque and unguessable
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from circle_governance.core import governance_guard as guard
from circle_governance.core.domain_types import (
    InviteDenialReason, InviteStatus, utcnow,
)
from circle_governance.core.errors import (
    ConflictError, ErrorContext, InviteDeniedError, NotFoundError, ValidationError,
)
from circle_governance.core.invite_rules import denial_reason, uses_remaining
from circle_governance.models.circle import Circle
from circle_governance.models.invite_token import InviteToken
from circle_governance.models.membership import Membership
from circle_governance.services.membership_store import MembershipStore

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24


@dataclass(frozen=True)
class InvitePreview:
    """What an invite link reveals before it is redeemed."""
    invite: InviteToken
    circle: Circle
    uses_remaining: int
    member_count: int
    already_member: bool


class InviteTokenService:
    """Invite link lifecycle: create, validate, redeem, deactivate."""

    def __init__(
        self,
        db: AsyncSession,
        store: MembershipStore | None = None,
        max_expiry_days: int = 365,
    ):
        self.db = db
        self.store = store or MembershipStore(db)
        self.max_expiry_days = max_expiry_days

    async def create_invite(
        self,
        circle_id: UUID,
        creator_id: UUID,
        max_uses: int = 1,
        expires_in_days: int = 7,
    ) -> InviteToken:
        """Issue a new invite token (owner/admin only)."""
        membership = await self.store.find_membership(circle_id, creator_id)
        guard.require_admin_or_owner(membership)
        if max_uses < 1:
            raise ValidationError("max_uses must be at least 1", "max_uses")
        if not 1 <= expires_in_days <= self.max_expiry_days:
            raise ValidationError(
                f"expires_in_days must be between 1 and {self.max_expiry_days}",
                "expires_in_days",
            )

        invite = InviteToken(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            circle_id=circle_id,
            created_by=creator_id,
            max_uses=max_uses,
            use_count=0,
            expires_at=utcnow() + timedelta(days=expires_in_days),
            is_active=True,
        )
        self.db.add(invite)
        await self.db.commit()
        logger.info(
            f"Invite created with {max_uses} use(s)",
            extra={"circle_id": circle_id, "user_id": creator_id},
        )
        return invite

    async def validate_invite(
        self, token: str, viewer_id: UUID | None = None,
    ) -> InvitePreview:
        """Preview an invite link without consuming it."""
        invite, circle = await self._load(token)
        self._raise_if_denied(invite, circle, utcnow())

        already_member = False
        if viewer_id is not None:
            existing = await self.store.find_membership(invite.circle_id, viewer_id)
            already_member = existing is not None

        return InvitePreview(
            invite=invite,
            circle=circle,
            uses_remaining=uses_remaining(invite),
            member_count=await self.store.count_members(invite.circle_id),
            already_member=already_member,
        )

    async def redeem_invite(self, token: str, user_id: UUID) -> Membership:
        """Turn an invite token into an accepted membership."""
        invite, circle = await self._load(token)
        self._raise_if_denied(invite, circle, utcnow())
        context = ErrorContext(circle_id=str(invite.circle_id), user_id=str(user_id))

        existing = await self.store.find_any_membership(invite.circle_id, user_id)
        if existing is not None and existing.invite_status == InviteStatus.ACCEPTED:
            raise ConflictError(
                "You are already a member of this circle", "already_member", context,
            )

        if not await self._claim_slot(invite.id):
            # Lost the race for the last slot: re-read and report what is true now.
            invite, circle = await self._load(token)
            self._raise_if_denied(invite, circle, utcnow())
            if not await self._claim_slot(invite.id):
                raise InviteDeniedError(InviteDenialReason.EXHAUSTED.value, context)

        try:
            if existing is not None:
                membership = await self.store.accept_pending(existing)
            else:
                membership = await self.store.add_accepted_membership(
                    invite.circle_id, user_id, invite.created_by,
                )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(
                "You are already a member of this circle", "already_member", context,
            )

        logger.info(
            "Invite redeemed",
            extra={"circle_id": membership.circle_id, "user_id": user_id},
        )
        return membership

    async def deactivate_invite(self, token: str, actor_id: UUID) -> InviteToken:
        """Switch an invite link off (owner/admin of its circle only)."""
        invite, _ = await self._load(token)
        if invite is None:
            raise NotFoundError("Invite", token)
        membership = await self.store.find_membership(invite.circle_id, actor_id)
        guard.require_admin_or_owner(membership)
        invite.is_active = False
        await self.db.commit()
        logger.info(
            "Invite deactivated",
            extra={"circle_id": invite.circle_id, "user_id": actor_id},
        )
        return invite

    # ─── Internals ───────────────────────────────────────────────

    async def _load(
        self, token: str,
    ) -> tuple[InviteToken | None, Circle | None]:
        result = await self.db.execute(
            select(InviteToken, Circle)
            .outerjoin(Circle, Circle.id == InviteToken.circle_id)
            .where(InviteToken.token == token)
            .execution_options(populate_existing=True)
        )
        row = result.first()
        if row is None:
            return None, None
        return row[0], row[1]

    async def _claim_slot(self, invite_id: UUID) -> bool:
        """Atomic compare-and-set on use_count. True when a slot was taken."""
        result = await self.db.execute(
            update(InviteToken)
            .where(InviteToken.id == invite_id)
            .where(InviteToken.is_active.is_(True))
            .where(InviteToken.use_count < InviteToken.max_uses)
            .values(use_count=InviteToken.use_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _raise_if_denied(
        invite: InviteToken | None, circle: Circle | None, now: datetime,
    ) -> None:
        reason = denial_reason(invite, circle, now)
        if reason is not None:
            context = ErrorContext(
                circle_id=str(invite.circle_id) if invite is not None else None,
            )
            raise InviteDeniedError(reason.value, context)
