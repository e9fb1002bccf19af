"""Vote ORM: a governance vote on one administrative action in a circle.

Invariants:
    - status transitions: active -> passed | failed | expired (terminal, never updated again)
    - at most one active vote per (circle_id, vote_type, target_user_id);
      delete_circle votes have target_user_id NULL and are covered via coalesce
    - yes_count/no_count mirror the Ballot rows, written only by cast_ballot

Design Decisions:
    - Tallies are stored on the row (not derived by a trigger) and recomputed
      from ballots inside the per-vote critical section
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func, text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from circle_governance.db.base import Base

NIL_TARGET = "00000000-0000-0000-0000-000000000000"


class Vote(Base):
    """Vote entity: one governed action awaiting admin consensus."""
    __tablename__ = "circle_votes"
    __table_args__ = (
        CheckConstraint(
            "vote_type IN ('remove_member', 'promote_admin', 'demote_admin', 'delete_circle')",
            name="ck_circle_votes_vote_type",
        ),
        CheckConstraint(
            "status IN ('active', 'passed', 'failed', 'expired')",
            name="ck_circle_votes_status",
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
    vote_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    initiated_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active",
    )
    yes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    no_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )


# Expression index: declared after the class so it can reference mapped columns.
Index(
    "uq_circle_votes_one_active",
    Vote.circle_id,
    Vote.vote_type,
    func.coalesce(Vote.target_user_id, text(f"'{NIL_TARGET}'")),
    unique=True,
    postgresql_where=text("status = 'active'"),
    sqlite_where=text("status = 'active'"),
)
