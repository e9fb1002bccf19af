"""Governance Guard: pure authorization and eligibility rules over membership data.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Raise a domain error on violation, return None (or a bool) on success
    - The owner can never be the target of a governed action
    - Only accepted owner/admin memberships may initiate votes or cast ballots

Design Decisions:
    - Callers pass memberships already loaded through MembershipStore; counts such
      as the live admin total are passed in, so the rules stay testable without a DB
    - Messages name the mismatch ("User is already an admin") because they are
      returned verbatim to API clients
"""

from circle_governance.core.domain_types import (
    GOVERNING_ROLES, InviteStatus, MemberRole, VoteStatus, VoteType,
)
from circle_governance.core.errors import AuthorizationError, ValidationError
from circle_governance.core.repository_protocols import MembershipLike


def _is_accepted(membership: MembershipLike | None) -> bool:
    return (
        membership is not None
        and membership.invite_status == InviteStatus.ACCEPTED
    )


def is_governing(membership: MembershipLike | None) -> bool:
    """True for accepted owner/admin memberships."""
    return _is_accepted(membership) and membership.role in GOVERNING_ROLES


def require_member(membership: MembershipLike | None) -> None:
    if not _is_accepted(membership):
        raise AuthorizationError("Not a member of this circle")


def require_admin_or_owner(membership: MembershipLike | None) -> None:
    if not is_governing(membership):
        raise AuthorizationError("Admin access required")


def require_owner(membership: MembershipLike | None) -> None:
    if not _is_accepted(membership) or membership.role != MemberRole.OWNER:
        raise AuthorizationError("Only the owner can perform this action")


def eligible_target(
    vote_type: VoteType, target_membership: MembershipLike | None,
) -> None:
    """Check that the target of a vote makes sense for the vote type.

    delete_circle takes no target. Member-targeted types need an accepted,
    non-owner target whose current role the action would actually change.
    """
    if vote_type is VoteType.DELETE_CIRCLE:
        if target_membership is not None:
            raise ValidationError(
                "delete_circle votes do not take a target", "target_user_id",
            )
        return

    if not _is_accepted(target_membership):
        raise ValidationError(
            "Target user is not a member of this circle", "target_user_id",
        )
    role = target_membership.role
    if role == MemberRole.OWNER:
        raise ValidationError(
            "Cannot initiate vote against the owner", "target_user_id",
        )
    if vote_type is VoteType.PROMOTE_ADMIN and role == MemberRole.ADMIN:
        raise ValidationError("User is already an admin", "target_user_id")
    if vote_type is VoteType.DEMOTE_ADMIN and role == MemberRole.MEMBER:
        raise ValidationError("User is not an admin", "target_user_id")


def requires_vote(
    vote_type: VoteType,
    acting_role: str,
    admin_count: int,
    target_role: str | None = None,
) -> bool:
    """Whether the direct (non-voted) form of an action needs a passed vote.

    delete_circle: only when more than one owner/admin exists, so a sole owner
    may delete unilaterally. remove_member: only when the target is an admin.
    promote_admin / demote_admin: unless the owner is acting.
    """
    if vote_type is VoteType.DELETE_CIRCLE:
        return admin_count > 1
    if vote_type is VoteType.REMOVE_MEMBER:
        return target_role == MemberRole.ADMIN
    return acting_role != MemberRole.OWNER


def can_vote(
    membership: MembershipLike | None, vote_status: str, has_voted: bool,
) -> bool:
    """Read-side helper: whether the viewer could cast a ballot right now."""
    return (
        is_governing(membership)
        and vote_status == VoteStatus.ACTIVE
        and not has_voted
    )
