"""Initial schema: circles, circle_members, circle_invites, circle_votes, circle_vote_ballots.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "circles",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_by", UUID(as_uuid=True), nullable=False),
        sa.Column("is_private", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "circle_members",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("circle_id", UUID(as_uuid=True), sa.ForeignKey("circles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("invite_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("invited_by", UUID(as_uuid=True), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("circle_id", "user_id", name="uq_circle_members_circle_user"),
        sa.CheckConstraint("role IN ('owner', 'admin', 'member')", name="ck_circle_members_role"),
        sa.CheckConstraint("invite_status IN ('pending', 'accepted')", name="ck_circle_members_invite_status"),
    )
    op.create_index("ix_circle_members_circle_id", "circle_members", ["circle_id"])
    op.create_index("ix_circle_members_user_id", "circle_members", ["user_id"])
    op.create_index(
        "uq_circle_members_one_owner", "circle_members", ["circle_id"],
        unique=True, postgresql_where=sa.text("role = 'owner'"),
    )

    op.create_table(
        "circle_invites",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("circle_id", UUID(as_uuid=True), sa.ForeignKey("circles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_by", UUID(as_uuid=True), nullable=False),
        sa.Column("max_uses", sa.Integer, nullable=False, server_default="1"),
        sa.Column("use_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("max_uses >= 1", name="ck_circle_invites_max_uses"),
        sa.CheckConstraint("use_count >= 0 AND use_count <= max_uses", name="ck_circle_invites_use_count"),
    )
    op.create_index("ix_circle_invites_token", "circle_invites", ["token"], unique=True)
    op.create_index("ix_circle_invites_circle_id", "circle_invites", ["circle_id"])

    op.create_table(
        "circle_votes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("circle_id", UUID(as_uuid=True), sa.ForeignKey("circles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("vote_type", sa.String(20), nullable=False),
        sa.Column("target_user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("initiated_by", UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("yes_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("no_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "vote_type IN ('remove_member', 'promote_admin', 'demote_admin', 'delete_circle')",
            name="ck_circle_votes_vote_type",
        ),
        sa.CheckConstraint(
            "status IN ('active', 'passed', 'failed', 'expired')",
            name="ck_circle_votes_status",
        ),
    )
    op.create_index("ix_circle_votes_circle_id", "circle_votes", ["circle_id"])
    # One active vote per action; delete_circle (NULL target) collapses to the nil uuid.
    op.execute(
        "CREATE UNIQUE INDEX uq_circle_votes_one_active ON circle_votes "
        "(circle_id, vote_type, "
        "coalesce(target_user_id, '00000000-0000-0000-0000-000000000000'::uuid)) "
        "WHERE status = 'active'"
    )

    op.create_table(
        "circle_vote_ballots",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("vote_id", UUID(as_uuid=True), sa.ForeignKey("circle_votes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("choice", sa.String(3), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("vote_id", "user_id", name="uq_circle_vote_ballots_vote_user"),
        sa.CheckConstraint("choice IN ('yes', 'no')", name="ck_circle_vote_ballots_choice"),
    )
    op.create_index("ix_circle_vote_ballots_vote_id", "circle_vote_ballots", ["vote_id"])


def downgrade() -> None:
    op.drop_table("circle_vote_ballots")
    op.execute("DROP INDEX IF EXISTS uq_circle_votes_one_active")
    op.drop_table("circle_votes")
    op.drop_table("circle_invites")
    op.drop_table("circle_members")
    op.drop_table("circles")
