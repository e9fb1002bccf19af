"""Ballot ORM: one voter's yes/no choice on one Vote.

Invariants:
    - unique (vote_id, user_id): each eligible voter casts at most one ballot
    - append-only; rows are never updated
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from circle_governance.db.base import Base


class Ballot(Base):
    """Ballot entry for a governance vote."""
    __tablename__ = "circle_vote_ballots"
    __table_args__ = (
        UniqueConstraint("vote_id", "user_id", name="uq_circle_vote_ballots_vote_user"),
        CheckConstraint("choice IN ('yes', 'no')", name="ck_circle_vote_ballots_choice"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    vote_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("circle_votes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False,
    )
    choice: Mapped[str] = mapped_column(String(3), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
