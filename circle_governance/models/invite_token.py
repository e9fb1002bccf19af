"""InviteToken ORM: a bounded-use, expiring credential that converts into a Membership.

Invariants:
    - token is opaque, unguessable and unique
    - 0 <= use_count <= max_uses, max_uses >= 1 (CHECK constraints)
    - use_count is only ever incremented through a conditional UPDATE

Design Decisions:
    - The CHECK constraint backs the conditional update: even a buggy writer
      cannot push use_count past max_uses
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from circle_governance.db.base import Base


class InviteToken(Base):
    """Invite link credential for one circle."""
    __tablename__ = "circle_invites"
    __table_args__ = (
        CheckConstraint("max_uses >= 1", name="ck_circle_invites_max_uses"),
        CheckConstraint(
            "use_count >= 0 AND use_count <= max_uses",
            name="ck_circle_invites_use_count",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    token: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True,
    )
    circle_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("circles.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False,
    )
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
