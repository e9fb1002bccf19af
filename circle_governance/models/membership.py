"""Membership ORM: a user's role and acceptance state within one circle.

Invariants:
    - unique (circle_id, user_id)
    - at most one owner per circle (partial unique index on role = 'owner')
    - role in {owner, admin, member}; invite_status in {pending, accepted}
    - only accepted rows count for authorization and quorum

Design Decisions:
    - Partial index expressed for both PostgreSQL and SQLite so the owner
      invariant also holds in the test database
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint, DateTime, ForeignKey, Index, String, UniqueConstraint, text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from circle_governance.db.base import Base


class Membership(Base):
    """Membership row: (circle, user) -> role."""
    __tablename__ = "circle_members"
    __table_args__ = (
        UniqueConstraint("circle_id", "user_id", name="uq_circle_members_circle_user"),
        Index(
            "uq_circle_members_one_owner", "circle_id", unique=True,
            postgresql_where=text("role = 'owner'"),
            sqlite_where=text("role = 'owner'"),
        ),
        CheckConstraint(
            "role IN ('owner', 'admin', 'member')", name="ck_circle_members_role",
        ),
        CheckConstraint(
            "invite_status IN ('pending', 'accepted')",
            name="ck_circle_members_invite_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    circle_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("circles.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True,
    )
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="member",
    )
    invite_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    invited_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    joined_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
