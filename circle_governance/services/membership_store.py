"""Membership Store: owns Circle and Membership rows.

Invariants:
    - create_circle leaves either a Circle with exactly one owner Membership, or no
      Circle row at all (compensating delete when the owner write fails)
    - get_membership only returns accepted memberships of non-deleted circles
    - set_role / remove_membership never touch the owner row
    - remove_membership is idempotent: an absent row is a no-op success
    - Mutators flush but do not commit; the calling operation owns the transaction

Design Decisions:
    - Compensating action over a cross-resource transaction: the circle row is
      committed first, and the owner membership is written in a second unit of work
    - count_admins is the single quorum query used by VoteEngine and deletion
"""

import logging
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from circle_governance.core.circle_rules import (
    normalize_circle_name, normalize_description,
)
from circle_governance.core.domain_types import (
    GOVERNING_ROLES, InviteStatus, MemberRole, utcnow,
)
from circle_governance.core.errors import (
    CircleCreationError, ErrorContext, NotFoundError,
)
from circle_governance.models.circle import Circle
from circle_governance.models.membership import Membership

logger = logging.getLogger(__name__)

_GOVERNING_VALUES = [r.value for r in GOVERNING_ROLES]


class MembershipStore:
    """Circle and membership persistence with governance invariants."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Circles ─────────────────────────────────────────────────

    async def create_circle(
        self,
        owner_id: UUID,
        name: str,
        description: str | None = None,
        is_private: bool = True,
    ) -> Circle:
        """Create a circle and its owner membership, both or neither."""
        circle = Circle(
            name=normalize_circle_name(name),
            description=normalize_description(description),
            created_by=owner_id,
            is_private=is_private,
        )
        self.db.add(circle)
        await self.db.commit()
        circle_id = circle.id

        try:
            await self._insert_owner(circle_id, owner_id)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Owner membership insert failed, compensating circle {circle_id}: {e}",
                extra={"circle_id": circle_id, "user_id": owner_id},
            )
            await self._compensate(circle_id)
            raise CircleCreationError(
                "owner membership could not be created",
                ErrorContext(circle_id=str(circle_id), user_id=str(owner_id)),
            )

        logger.info(
            f"Circle {circle.id} created",
            extra={"circle_id": circle.id, "user_id": owner_id},
        )
        return circle

    async def _insert_owner(self, circle_id: UUID, owner_id: UUID) -> None:
        now = utcnow()
        self.db.add(Membership(
            circle_id=circle_id,
            user_id=owner_id,
            role=MemberRole.OWNER.value,
            invite_status=InviteStatus.ACCEPTED.value,
            invited_by=owner_id,
            joined_at=now,
        ))
        await self.db.commit()

    async def _compensate(self, circle_id: UUID) -> None:
        await self.db.execute(delete(Circle).where(Circle.id == circle_id))
        await self.db.commit()

    async def find_circle(
        self, circle_id: UUID, include_deleted: bool = False,
    ) -> Circle | None:
        query = select(Circle).where(Circle.id == circle_id)
        if not include_deleted:
            query = query.where(Circle.is_deleted.is_(False))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_circle(self, circle_id: UUID) -> Circle:
        circle = await self.find_circle(circle_id)
        if circle is None:
            raise NotFoundError(
                "Circle", str(circle_id), ErrorContext(circle_id=str(circle_id)),
            )
        return circle

    async def list_circles_for_user(
        self, user_id: UUID, limit: int = 50, offset: int = 0,
    ) -> list[tuple[Circle, Membership]]:
        """Circles where the user is an accepted member, newest join first."""
        result = await self.db.execute(
            select(Circle, Membership)
            .join(Membership, Membership.circle_id == Circle.id)
            .where(Membership.user_id == user_id)
            .where(Membership.invite_status == InviteStatus.ACCEPTED.value)
            .where(Circle.is_deleted.is_(False))
            .order_by(Membership.joined_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return [(row[0], row[1]) for row in result.all()]

    # ─── Memberships ─────────────────────────────────────────────

    async def find_membership(
        self, circle_id: UUID, user_id: UUID, for_update: bool = False,
    ) -> Membership | None:
        """Accepted membership of a non-deleted circle, or None."""
        query = (
            select(Membership)
            .join(Circle, Circle.id == Membership.circle_id)
            .where(Membership.circle_id == circle_id)
            .where(Membership.user_id == user_id)
            .where(Membership.invite_status == InviteStatus.ACCEPTED.value)
            .where(Circle.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update(of=Membership)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_membership(self, circle_id: UUID, user_id: UUID) -> Membership:
        """The authorization primitive: accepted membership or NotFoundError."""
        membership = await self.find_membership(circle_id, user_id)
        if membership is None:
            raise NotFoundError(
                "Membership", f"{circle_id}/{user_id}",
                ErrorContext(circle_id=str(circle_id), user_id=str(user_id)),
            )
        return membership

    async def find_any_membership(
        self, circle_id: UUID, user_id: UUID,
    ) -> Membership | None:
        """Membership row regardless of invite status."""
        result = await self.db.execute(
            select(Membership)
            .where(Membership.circle_id == circle_id)
            .where(Membership.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_members(
        self, circle_id: UUID, invite_status: str = InviteStatus.ACCEPTED.value,
    ) -> list[Membership]:
        result = await self.db.execute(
            select(Membership)
            .where(Membership.circle_id == circle_id)
            .where(Membership.invite_status == invite_status)
            .order_by(Membership.joined_at.desc(), Membership.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_admins(self, circle_id: UUID, for_update: bool = False) -> int:
        """Live quorum: accepted owner + admin memberships."""
        if for_update:
            # Row locks cannot be combined with aggregates; lock then count.
            result = await self.db.execute(
                select(Membership.id)
                .where(Membership.circle_id == circle_id)
                .where(Membership.invite_status == InviteStatus.ACCEPTED.value)
                .where(Membership.role.in_(_GOVERNING_VALUES))
                .with_for_update()
            )
            return len(result.all())
        result = await self.db.execute(
            select(func.count(Membership.id))
            .where(Membership.circle_id == circle_id)
            .where(Membership.invite_status == InviteStatus.ACCEPTED.value)
            .where(Membership.role.in_(_GOVERNING_VALUES))
        )
        return result.scalar_one()

    async def count_members(self, circle_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Membership.id))
            .where(Membership.circle_id == circle_id)
            .where(Membership.invite_status == InviteStatus.ACCEPTED.value)
        )
        return result.scalar_one()

    async def add_pending_membership(
        self, circle_id: UUID, user_id: UUID, invited_by: UUID,
    ) -> Membership:
        membership = Membership(
            circle_id=circle_id,
            user_id=user_id,
            role=MemberRole.MEMBER.value,
            invite_status=InviteStatus.PENDING.value,
            invited_by=invited_by,
        )
        self.db.add(membership)
        await self.db.flush()
        return membership

    async def add_accepted_membership(
        self, circle_id: UUID, user_id: UUID, invited_by: UUID | None,
    ) -> Membership:
        membership = Membership(
            circle_id=circle_id,
            user_id=user_id,
            role=MemberRole.MEMBER.value,
            invite_status=InviteStatus.ACCEPTED.value,
            invited_by=invited_by,
            joined_at=utcnow(),
        )
        self.db.add(membership)
        await self.db.flush()
        return membership

    async def accept_pending(self, membership: Membership) -> Membership:
        membership.invite_status = InviteStatus.ACCEPTED.value
        membership.joined_at = utcnow()
        await self.db.flush()
        return membership

    async def set_role(self, circle_id: UUID, user_id: UUID, role: MemberRole) -> bool:
        """Change an accepted non-owner member's role. Returns whether a row changed."""
        result = await self.db.execute(
            update(Membership)
            .where(Membership.circle_id == circle_id)
            .where(Membership.user_id == user_id)
            .where(Membership.role != MemberRole.OWNER.value)
            .where(Membership.invite_status == InviteStatus.ACCEPTED.value)
            .values(role=role.value)
        )
        changed = result.rowcount > 0
        if changed:
            logger.info(
                f"Role of {user_id} set to {role.value}",
                extra={"circle_id": circle_id, "user_id": user_id},
            )
        return changed

    async def remove_membership(self, circle_id: UUID, user_id: UUID) -> bool:
        """Delete a non-owner membership. Absent rows are a no-op success."""
        result = await self.db.execute(
            delete(Membership)
            .where(Membership.circle_id == circle_id)
            .where(Membership.user_id == user_id)
            .where(Membership.role != MemberRole.OWNER.value)
        )
        removed = result.rowcount > 0
        if removed:
            logger.info(
                f"Membership of {user_id} removed",
                extra={"circle_id": circle_id, "user_id": user_id},
            )
        return removed

    async def remove_pending(self, membership: Membership) -> None:
        await self.db.delete(membership)
        await self.db.flush()

    async def soft_delete_circle(self, circle: Circle) -> None:
        """Mark the circle deleted and cascade its memberships away."""
        now = utcnow()
        circle.is_deleted = True
        circle.deleted_at = now
        circle.updated_at = now
        await self.db.execute(
            delete(Membership).where(Membership.circle_id == circle.id)
        )
        await self.db.flush()
