"""Circle ORM: a named group of users with role-based membership.

Invariants:
    - id is UUID primary key
    - name is 1-100 chars after trimming (validated in core/circle_rules.py)
    - exactly one owner Membership per non-deleted circle
    - deletion is soft: is_deleted + deleted_at; memberships are removed at delete time

Design Decisions:
    - Soft delete keeps invite previews able to report circle_deleted instead of not_found
    - No ORM relationships: child rows reference circles.id with ON DELETE CASCADE,
      and queries join explicitly (no implicit lazy loads under AsyncSession)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from circle_governance.db.base import Base


class Circle(Base):
    """Circle aggregate root: owns memberships, invite tokens and votes."""
    __tablename__ = "circles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False,
    )
    is_private: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
