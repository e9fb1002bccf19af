"""Circle Actions: direct (non-voted) circle operations, each checked by GovernanceGuard.

Invariants:
    - Every mutation is preceded by a guard check on the actor's accepted membership
    - The owner row is never removed or re-roled
    - When an action requires a vote, the requirement and the passed-vote lookup are
      evaluated under the ("circle", id) lock and in the same transaction as the write
    - Deleting a circle locks the circle row and its owner/admin rows (FOR UPDATE) so
      a concurrent demotion cannot change the quorum between check and delete

Design Decisions:
    - A passed vote AUTHORIZES a direct action but is not consumed by it
    - remove_member doubles as "leave": a non-owner may always remove themselves
    - Conflicts that a vote would resolve are 409 with require_vote=True in details,
      so clients can offer to start the vote
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from circle_governance.core import governance_guard as guard
from circle_governance.core.circle_rules import (
    normalize_circle_name, normalize_description,
)
from circle_governance.core.domain_types import (
    InviteStatus, MemberRole, VoteType, utcnow,
)
from circle_governance.core.errors import (
    AuthorizationError, ConflictError, ErrorContext, NotFoundError, ValidationError,
)
from circle_governance.infrastructure.keyed_locks import KeyedLockRegistry, lock_registry
from circle_governance.models.circle import Circle
from circle_governance.models.membership import Membership
from circle_governance.services.membership_store import MembershipStore
from circle_governance.services.vote_engine import VoteEngine

logger = logging.getLogger(__name__)

_ASSIGNABLE_ROLES = (MemberRole.MEMBER, MemberRole.ADMIN)


@dataclass(frozen=True)
class CircleDetail:
    circle: Circle
    member_count: int
    my_role: str


class CircleActions:
    """Guarded circle operations outside the voting flow."""

    def __init__(
        self,
        db: AsyncSession,
        locks: KeyedLockRegistry | None = None,
        store: MembershipStore | None = None,
        votes: VoteEngine | None = None,
    ):
        self.db = db
        self.locks = locks or lock_registry
        self.store = store or MembershipStore(db)
        self.votes = votes or VoteEngine(db, locks=self.locks, store=self.store)

    # ─── Reads ───────────────────────────────────────────────────

    async def get_circle_detail(self, circle_id: UUID, viewer_id: UUID) -> CircleDetail:
        circle = await self.store.get_circle(circle_id)
        viewer = await self.store.find_membership(circle_id, viewer_id)
        guard.require_member(viewer)
        return CircleDetail(
            circle=circle,
            member_count=await self.store.count_members(circle_id),
            my_role=viewer.role,
        )

    async def list_members(
        self,
        circle_id: UUID,
        viewer_id: UUID,
        invite_status: str = InviteStatus.ACCEPTED.value,
    ) -> list[Membership]:
        """Members of a circle; only admins may list pending invitations."""
        viewer = await self.store.find_membership(circle_id, viewer_id)
        guard.require_member(viewer)
        try:
            status = InviteStatus(invite_status)
        except ValueError:
            raise ValidationError(
                f"Invalid invite status: {invite_status}", "invite_status",
            )
        if status is InviteStatus.PENDING:
            guard.require_admin_or_owner(viewer)
        return await self.store.list_members(circle_id, status.value)

    # ─── Circle ──────────────────────────────────────────────────

    async def update_circle(
        self, circle_id: UUID, actor_id: UUID, **changes,
    ) -> Circle:
        """Apply name / description / is_private changes (owner/admin only)."""
        circle = await self.store.get_circle(circle_id)
        actor = await self.store.find_membership(circle_id, actor_id)
        guard.require_admin_or_owner(actor)

        if changes.get("name") is not None:
            circle.name = normalize_circle_name(changes["name"])
        if "description" in changes:
            circle.description = normalize_description(changes["description"])
        if changes.get("is_private") is not None:
            circle.is_private = changes["is_private"]
        circle.updated_at = utcnow()
        await self.db.commit()
        logger.info(
            "Circle updated",
            extra={"circle_id": circle_id, "user_id": actor_id},
        )
        return circle

    async def delete_circle(self, circle_id: UUID, actor_id: UUID) -> None:
        """Soft-delete a circle (owner only; needs a passed vote when >1 admin)."""
        await self.store.get_circle(circle_id)
        actor = await self.store.find_membership(circle_id, actor_id)
        guard.require_owner(actor)
        actor_role = actor.role
        context = ErrorContext(circle_id=str(circle_id), user_id=str(actor_id))

        async with self.locks.hold("circle", circle_id):
            circle = await self._lock_circle(circle_id)
            admin_count = await self.store.count_admins(circle_id, for_update=True)
            if guard.requires_vote(VoteType.DELETE_CIRCLE, actor_role, admin_count):
                if not await self.votes.has_passed_vote(circle_id, VoteType.DELETE_CIRCLE):
                    raise ConflictError(
                        "Deleting a circle with more than one admin requires a "
                        "passed delete_circle vote",
                        "vote_required", context,
                        require_vote=True, vote_type=VoteType.DELETE_CIRCLE.value,
                    )
            await self.store.soft_delete_circle(circle)
            await self.db.commit()

        logger.info(
            f"Circle deleted ({admin_count} admin(s))",
            extra={"circle_id": circle_id, "user_id": actor_id},
        )

    # ─── Members ─────────────────────────────────────────────────

    async def invite_user(
        self, circle_id: UUID, actor_id: UUID, user_id: UUID,
    ) -> Membership:
        """Invite a known user directly; they must accept before joining."""
        actor = await self.store.find_membership(circle_id, actor_id)
        guard.require_admin_or_owner(actor)
        context = ErrorContext(circle_id=str(circle_id), user_id=str(user_id))

        existing = await self.store.find_any_membership(circle_id, user_id)
        if existing is not None:
            raise self._membership_conflict(existing.invite_status, context)
        try:
            membership = await self.store.add_pending_membership(
                circle_id, user_id, actor_id,
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise self._membership_conflict(InviteStatus.PENDING.value, context)

        logger.info(
            "User invited",
            extra={"circle_id": circle_id, "user_id": user_id},
        )
        return membership

    async def respond_to_pending(
        self, circle_id: UUID, user_id: UUID, accept: bool,
    ) -> Membership | None:
        """Accept or decline the caller's own pending invitation."""
        await self.store.get_circle(circle_id)
        membership = await self.store.find_any_membership(circle_id, user_id)
        if membership is None or membership.invite_status != InviteStatus.PENDING:
            raise NotFoundError(
                "Pending invite", str(circle_id),
                ErrorContext(circle_id=str(circle_id), user_id=str(user_id)),
            )
        if accept:
            await self.store.accept_pending(membership)
            await self.db.commit()
            logger.info(
                "Pending invite accepted",
                extra={"circle_id": circle_id, "user_id": user_id},
            )
            return membership
        await self.store.remove_pending(membership)
        await self.db.commit()
        logger.info(
            "Pending invite declined",
            extra={"circle_id": circle_id, "user_id": user_id},
        )
        return None

    async def change_role(
        self, circle_id: UUID, actor_id: UUID, target_user_id: UUID, role: str,
    ) -> Membership:
        """Promote or demote a member directly.

        The owner acts unilaterally. An admin needs a passed promote_admin /
        demote_admin vote for the same target.
        """
        try:
            new_role = MemberRole(role)
        except ValueError:
            new_role = None
        if new_role not in _ASSIGNABLE_ROLES:
            raise ValidationError("Role must be 'member' or 'admin'", "role")

        actor = await self.store.find_membership(circle_id, actor_id)
        guard.require_admin_or_owner(actor)
        actor_role = actor.role
        context = ErrorContext(circle_id=str(circle_id), user_id=str(target_user_id))

        target = await self.store.find_membership(circle_id, target_user_id)
        if target is None:
            raise NotFoundError("Membership", f"{circle_id}/{target_user_id}", context)
        if target.role == MemberRole.OWNER:
            raise AuthorizationError("Cannot change the owner's role", context)
        if target.role == new_role:
            return target

        vote_type = (
            VoteType.PROMOTE_ADMIN if new_role is MemberRole.ADMIN
            else VoteType.DEMOTE_ADMIN
        )
        async with self.locks.hold("circle", circle_id):
            await self._lock_circle(circle_id)
            admin_count = await self.store.count_admins(circle_id)
            if guard.requires_vote(vote_type, actor_role, admin_count, target.role):
                if not await self.votes.has_passed_vote(circle_id, vote_type, target_user_id):
                    raise ConflictError(
                        f"Admins need a passed {vote_type.value} vote to change roles",
                        "vote_required", context,
                        require_vote=True, vote_type=vote_type.value,
                    )
            await self.store.set_role(circle_id, target_user_id, new_role)
            await self.db.commit()

        return await self.store.get_membership(circle_id, target_user_id)

    async def remove_member(
        self, circle_id: UUID, actor_id: UUID, target_user_id: UUID,
    ) -> bool:
        """Remove a member, or leave when actor and target are the same user.

        Returns whether a membership row was removed.
        """
        actor = await self.store.find_membership(circle_id, actor_id)
        guard.require_member(actor)
        actor_role = actor.role
        context = ErrorContext(circle_id=str(circle_id), user_id=str(target_user_id))

        if actor_id == target_user_id:
            if actor_role == MemberRole.OWNER:
                raise AuthorizationError(
                    "The owner cannot leave the circle; delete it instead", context,
                )
            removed = await self.store.remove_membership(circle_id, actor_id)
            await self.db.commit()
            return removed

        guard.require_admin_or_owner(actor)
        target = await self.store.find_any_membership(circle_id, target_user_id)
        if target is None:
            return False
        if target.role == MemberRole.OWNER:
            raise AuthorizationError("Cannot remove the owner", context)

        async with self.locks.hold("circle", circle_id):
            admin_count = await self.store.count_admins(circle_id)
            if guard.requires_vote(
                VoteType.REMOVE_MEMBER, actor_role, admin_count, target.role,
            ):
                if not await self.votes.has_passed_vote(
                    circle_id, VoteType.REMOVE_MEMBER, target_user_id,
                ):
                    raise ConflictError(
                        "Removing an admin requires a passed remove_member vote",
                        "vote_required", context,
                        require_vote=True, vote_type=VoteType.REMOVE_MEMBER.value,
                    )
            removed = await self.store.remove_membership(circle_id, target_user_id)
            await self.db.commit()
        return removed

    # ─── Internals ───────────────────────────────────────────────

    async def _lock_circle(self, circle_id: UUID) -> Circle:
        result = await self.db.execute(
            select(Circle)
            .where(Circle.id == circle_id)
            .where(Circle.is_deleted.is_(False))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        circle = result.scalar_one_or_none()
        if circle is None:
            raise NotFoundError(
                "Circle", str(circle_id), ErrorContext(circle_id=str(circle_id)),
            )
        return circle

    @staticmethod
    def _membership_conflict(invite_status: str, context: ErrorContext) -> ConflictError:
        if invite_status == InviteStatus.ACCEPTED:
            return ConflictError(
                "User is already a member of this circle", "already_member", context,
            )
        return ConflictError(
            "User already has a pending invite", "already_invited", context,
        )
