"""Domain Types: identity aliases and enums shared across the governance core.

Invariants:
    - CircleId, UserId, VoteId wrap UUIDs; never use a bare UUID in domain logic
    - All valid states are encoded as str Enums; no raw string matching
    - Terminal vote statuses never transition again

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: values are stored verbatim in String columns and serialized to JSON
"""

from datetime import datetime, timezone
from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

CircleId = NewType("CircleId", UUID)
UserId = NewType("UserId", UUID)
VoteId = NewType("VoteId", UUID)
InviteTokenValue = NewType("InviteTokenValue", str)


# ─── Enums ───────────────────────────────────────────────────────

class MemberRole(str, Enum):
    """Role of a user inside one circle."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class InviteStatus(str, Enum):
    """Acceptance state of a membership row."""
    PENDING = "pending"
    ACCEPTED = "accepted"


class VoteType(str, Enum):
    """The four governed actions. Every member is handled by VOTE_EFFECTS."""
    REMOVE_MEMBER = "remove_member"
    PROMOTE_ADMIN = "promote_admin"
    DEMOTE_ADMIN = "demote_admin"
    DELETE_CIRCLE = "delete_circle"

    @property
    def is_targeted(self) -> bool:
        return self is not VoteType.DELETE_CIRCLE


class VoteStatus(str, Enum):
    """Vote lifecycle: active -> passed | failed | expired."""
    ACTIVE = "active"
    PASSED = "passed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not VoteStatus.ACTIVE


class BallotChoice(str, Enum):
    YES = "yes"
    NO = "no"


class InviteDenialReason(str, Enum):
    """Why an invite token cannot be used. Order matters: first match wins."""
    NOT_FOUND = "not_found"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    CIRCLE_DELETED = "circle_deleted"


# Compared by equality against raw column strings.
GOVERNING_ROLES = (MemberRole.OWNER, MemberRole.ADMIN)


# ─── Time ────────────────────────────────────────────────────────

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
