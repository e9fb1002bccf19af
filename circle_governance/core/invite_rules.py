"""Invite Rules: pure checks for invite-token usability.

Invariants:
    - Denial reasons are evaluated in a fixed order; the first failing check wins:
      not_found, deactivated, expired, exhausted, circle_deleted
    - uses_remaining is never negative

Design Decisions:
    - Return the reason (or None) instead of raising: validate_invite and
      redeem_invite both reuse it, and redeem re-evaluates after a lost CAS
"""

from datetime import datetime
from typing import Protocol

from circle_governance.core.domain_types import InviteDenialReason, as_utc


class InviteLike(Protocol):
    max_uses: int
    use_count: int
    expires_at: datetime
    is_active: bool


class CircleLike(Protocol):
    is_deleted: bool


def uses_remaining(invite: InviteLike) -> int:
    return max(invite.max_uses - invite.use_count, 0)


def denial_reason(
    invite: InviteLike | None, circle: CircleLike | None, now: datetime,
) -> InviteDenialReason | None:
    """Return why the invite cannot be used right now, or None when usable."""
    if invite is None:
        return InviteDenialReason.NOT_FOUND
    if not invite.is_active:
        return InviteDenialReason.DEACTIVATED
    if as_utc(invite.expires_at) < as_utc(now):
        return InviteDenialReason.EXPIRED
    if invite.use_count >= invite.max_uses:
        return InviteDenialReason.EXHAUSTED
    if circle is None or circle.is_deleted:
        return InviteDenialReason.CIRCLE_DELETED
    return None
