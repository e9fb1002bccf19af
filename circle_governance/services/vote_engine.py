"""Vote Engine: creates governance votes, records ballots and applies passed outcomes.

Invariants:
    - Vote status moves active -> passed | failed | expired exactly once; the move is a
      conditional UPDATE ... WHERE status = 'active', so only one caller can win it
    - A passed vote's effect is applied exactly once, by the caller that won the
      status transition, in the same transaction that records it
    - Ballot insert, quorum recount, tally recount and resolution happen inside one
      critical section per vote (keyed asyncio lock + SELECT ... FOR UPDATE)
    - Quorum is the LIVE count of accepted owner/admin memberships at ballot time
    - Expiry is evaluated lazily on read; there is no scheduler
    - Notifier failures are logged and never roll back vote state; notifications
      run as background tasks over a VoteSnapshot taken after commit

Design Decisions:
    - Cheap validation (status, membership, duplicate ballot) runs before the lock so
      rejected callers never queue behind the critical section; it is repeated inside
    - VOTE_EFFECTS dispatch table: one coroutine per VoteType, exhaustive by construction
    - delete_circle has no membership effect; a passed vote authorizes a later,
      separate delete call (see CircleActions.delete_circle)
    - Effects take the ("circle", id) lock after the ("vote", id) lock, never the reverse
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from circle_governance.core import governance_guard as guard
from circle_governance.core.domain_types import (
    BallotChoice, MemberRole, VoteStatus, VoteType, utcnow,
)
from circle_governance.core.errors import (
    ConflictError, ErrorContext, ExpiredOrResolvedError, NotFoundError, ValidationError,
)
from circle_governance.core.repository_protocols import VoteNotifier
from circle_governance.core.vote_resolution import (
    Tally, count_choices, is_expired, resolve,
)
from circle_governance.infrastructure.keyed_locks import KeyedLockRegistry, lock_registry
from circle_governance.infrastructure.notifier import (
    LoggingVoteNotifier, VoteSnapshot, dispatch,
)
from circle_governance.models.ballot import Ballot
from circle_governance.models.vote import Vote
from circle_governance.services.membership_store import MembershipStore

logger = logging.getLogger(__name__)


# ─── Results ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class VoteTally:
    """cast_ballot result: the updated vote and the tally it was resolved with."""
    vote: Vote
    tally: Tally


@dataclass(frozen=True)
class VoteDetail:
    """Read model of a vote as seen by one circle member."""
    vote: Vote
    total_admins: int
    my_vote: str | None
    can_vote: bool
    ballots: list[Ballot] = field(default_factory=list)

    @property
    def votes_cast(self) -> int:
        return self.vote.yes_count + self.vote.no_count


# ─── Effects ─────────────────────────────────────────────────────

VoteEffect = Callable[[MembershipStore, Vote], Awaitable[None]]


async def _remove_member(store: MembershipStore, vote: Vote) -> None:
    await store.remove_membership(vote.circle_id, vote.target_user_id)


async def _promote_admin(store: MembershipStore, vote: Vote) -> None:
    await store.set_role(vote.circle_id, vote.target_user_id, MemberRole.ADMIN)


async def _demote_admin(store: MembershipStore, vote: Vote) -> None:
    await store.set_role(vote.circle_id, vote.target_user_id, MemberRole.MEMBER)


async def _authorize_deletion(store: MembershipStore, vote: Vote) -> None:
    logger.info(
        "Circle deletion authorized by vote",
        extra={"circle_id": vote.circle_id, "vote_id": vote.id},
    )


VOTE_EFFECTS: dict[VoteType, VoteEffect] = {
    VoteType.REMOVE_MEMBER: _remove_member,
    VoteType.PROMOTE_ADMIN: _promote_admin,
    VoteType.DEMOTE_ADMIN: _demote_admin,
    VoteType.DELETE_CIRCLE: _authorize_deletion,
}


def _parse_vote_type(value: str) -> VoteType:
    try:
        return VoteType(value)
    except ValueError:
        raise ValidationError(f"Invalid vote type: {value}", "vote_type")


def _parse_choice(value: str) -> BallotChoice:
    try:
        return BallotChoice(value)
    except ValueError:
        raise ValidationError("Invalid choice. Must be 'yes' or 'no'", "choice")


# ─── Engine ──────────────────────────────────────────────────────

class VoteEngine:
    """Vote lifecycle: initiate, cast, read, expire lazily."""

    def __init__(
        self,
        db: AsyncSession,
        locks: KeyedLockRegistry | None = None,
        notifier: VoteNotifier | None = None,
        store: MembershipStore | None = None,
        max_expiry_days: int = 30,
    ):
        self.db = db
        self.locks = locks or lock_registry
        self.notifier = notifier or LoggingVoteNotifier()
        self.store = store or MembershipStore(db)
        self.max_expiry_days = max_expiry_days

    async def initiate_vote(
        self,
        circle_id: UUID,
        initiator_id: UUID,
        vote_type: str,
        target_user_id: UUID | None = None,
        expires_in_days: int = 7,
    ) -> Vote:
        """Open a vote on a governed action (owner/admin only)."""
        vote_type = _parse_vote_type(vote_type)
        context = ErrorContext(circle_id=str(circle_id), user_id=str(initiator_id))
        if not 1 <= expires_in_days <= self.max_expiry_days:
            raise ValidationError(
                f"expires_in_days must be between 1 and {self.max_expiry_days}",
                "expires_in_days", context,
            )

        initiator = await self.store.find_membership(circle_id, initiator_id)
        guard.require_admin_or_owner(initiator)

        if vote_type.is_targeted:
            if target_user_id is None:
                raise ValidationError(
                    f"target_user_id is required for {vote_type.value} votes",
                    "target_user_id", context,
                )
            target = await self.store.find_membership(circle_id, target_user_id)
            guard.eligible_target(vote_type, target)
        elif target_user_id is not None:
            raise ValidationError(
                "delete_circle votes do not take a target", "target_user_id", context,
            )

        # Overdue votes still marked active must not block a fresh one.
        await self._expire_stale_votes(circle_id)

        existing = await self._find_active(circle_id, vote_type, target_user_id)
        if existing is not None:
            raise self._duplicate_vote(existing, context)

        vote = Vote(
            circle_id=circle_id,
            vote_type=vote_type.value,
            target_user_id=target_user_id,
            initiated_by=initiator_id,
            status=VoteStatus.ACTIVE.value,
            yes_count=0,
            no_count=0,
            expires_at=utcnow() + timedelta(days=expires_in_days),
        )
        self.db.add(vote)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent initiation of the same action.
            await self.db.rollback()
            existing = await self._find_active(circle_id, vote_type, target_user_id)
            raise self._duplicate_vote(existing, context)

        logger.info(
            f"Vote {vote.id} initiated",
            extra={
                "circle_id": circle_id, "vote_id": vote.id,
                "vote_type": vote_type.value, "user_id": initiator_id,
            },
        )
        self._notify("vote_initiated", vote)
        return vote

    async def cast_ballot(
        self, vote_id: UUID, voter_id: UUID, choice: str,
    ) -> VoteTally:
        """Record one admin's ballot, resolve the vote and apply a passed effect."""
        choice = _parse_choice(choice)
        vote = await self._get_vote(vote_id)
        context = ErrorContext(
            circle_id=str(vote.circle_id), vote_id=str(vote_id), user_id=str(voter_id),
        )
        await self._ensure_active(vote, context)

        voter = await self.store.find_membership(vote.circle_id, voter_id)
        guard.require_admin_or_owner(voter)
        if await self._find_ballot(vote_id, voter_id) is not None:
            raise ConflictError("You have already voted", "already_voted", context)

        async with self.locks.hold("vote", vote_id):
            vote = await self._get_vote(vote_id, for_update=True)
            await self._ensure_active(vote, context)
            if await self._find_ballot(vote_id, voter_id) is not None:
                raise ConflictError("You have already voted", "already_voted", context)

            self.db.add(Ballot(vote_id=vote_id, user_id=voter_id, choice=choice.value))
            try:
                await self.db.flush()
            except IntegrityError:
                await self.db.rollback()
                raise ConflictError("You have already voted", "already_voted", context)

            quorum = await self.store.count_admins(vote.circle_id)
            yes, no = count_choices(await self._ballot_choices(vote_id))
            tally = Tally(yes=yes, no=no, quorum=quorum)
            outcome = resolve(tally)

            if not await self._record_tally(vote, tally, outcome):
                await self.db.rollback()
                current = await self._get_vote(vote_id)
                raise ExpiredOrResolvedError(current.status, context)

            if outcome is VoteStatus.PASSED:
                async with self.locks.hold("circle", vote.circle_id):
                    await VOTE_EFFECTS[VoteType(vote.vote_type)](self.store, vote)
                    await self.db.commit()
            else:
                await self.db.commit()

        if outcome.is_terminal:
            logger.info(
                f"Vote {vote_id} {outcome.value} ({yes} yes / {no} no, quorum {quorum})",
                extra={
                    "circle_id": vote.circle_id, "vote_id": vote_id,
                    "vote_type": vote.vote_type, "status": outcome.value,
                    "quorum": quorum,
                },
            )
            self._notify("vote_resolved", vote, quorum)
        return VoteTally(vote=vote, tally=tally)

    async def get_vote(
        self, circle_id: UUID, vote_id: UUID, viewer_id: UUID,
    ) -> VoteDetail:
        """Vote with its ballots, as seen by a member of the circle."""
        viewer = await self.store.find_membership(circle_id, viewer_id)
        guard.require_member(viewer)

        vote = await self.get_vote_in_circle(circle_id, vote_id)
        if vote.status == VoteStatus.ACTIVE and is_expired(vote.expires_at, utcnow()):
            await self._expire_and_commit(vote)

        result = await self.db.execute(
            select(Ballot)
            .where(Ballot.vote_id == vote_id)
            .order_by(Ballot.created_at)
        )
        ballots = list(result.scalars().all())
        my_vote = next((b.choice for b in ballots if b.user_id == viewer_id), None)
        return VoteDetail(
            vote=vote,
            total_admins=await self.store.count_admins(circle_id),
            my_vote=my_vote,
            can_vote=guard.can_vote(viewer, vote.status, my_vote is not None),
            ballots=ballots,
        )

    async def list_votes(
        self,
        circle_id: UUID,
        viewer_id: UUID,
        status: str = VoteStatus.ACTIVE.value,
        include_all: bool = False,
    ) -> list[VoteDetail]:
        """Votes of a circle, newest first, filtered by status unless include_all."""
        viewer = await self.store.find_membership(circle_id, viewer_id)
        guard.require_member(viewer)
        await self._expire_stale_votes(circle_id)

        query = (
            select(Vote)
            .where(Vote.circle_id == circle_id)
            .order_by(Vote.created_at.desc())
        )
        if not include_all:
            try:
                query = query.where(Vote.status == VoteStatus(status).value)
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status}", "status")
        votes = list((await self.db.execute(query)).scalars().all())
        if not votes:
            return []

        result = await self.db.execute(
            select(Ballot.vote_id, Ballot.choice)
            .where(Ballot.user_id == viewer_id)
            .where(Ballot.vote_id.in_([v.id for v in votes]))
        )
        my_votes = {row.vote_id: row.choice for row in result.all()}
        total_admins = await self.store.count_admins(circle_id)
        return [
            VoteDetail(
                vote=v,
                total_admins=total_admins,
                my_vote=my_votes.get(v.id),
                can_vote=guard.can_vote(viewer, v.status, v.id in my_votes),
            )
            for v in votes
        ]

    async def get_vote_in_circle(self, circle_id: UUID, vote_id: UUID) -> Vote:
        """Vote row, 404 unless it belongs to the given circle."""
        vote = await self._get_vote(vote_id)
        if vote.circle_id != circle_id:
            raise NotFoundError(
                "Vote", str(vote_id),
                ErrorContext(circle_id=str(circle_id), vote_id=str(vote_id)),
            )
        return vote

    async def has_passed_vote(
        self,
        circle_id: UUID,
        vote_type: VoteType,
        target_user_id: UUID | None = None,
    ) -> bool:
        """Whether a passed vote authorizes the given action."""
        query = (
            select(Vote.id)
            .where(Vote.circle_id == circle_id)
            .where(Vote.vote_type == vote_type.value)
            .where(Vote.status == VoteStatus.PASSED.value)
            .limit(1)
        )
        if target_user_id is None:
            query = query.where(Vote.target_user_id.is_(None))
        else:
            query = query.where(Vote.target_user_id == target_user_id)
        result = await self.db.execute(query)
        return result.first() is not None

    # ─── Internals ───────────────────────────────────────────────

    async def _get_vote(self, vote_id: UUID, for_update: bool = False) -> Vote:
        query = (
            select(Vote)
            .where(Vote.id == vote_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        vote = (await self.db.execute(query)).scalar_one_or_none()
        if vote is None:
            raise NotFoundError("Vote", str(vote_id), ErrorContext(vote_id=str(vote_id)))
        return vote

    async def _find_active(
        self, circle_id: UUID, vote_type: VoteType, target_user_id: UUID | None,
    ) -> Vote | None:
        query = (
            select(Vote)
            .where(Vote.circle_id == circle_id)
            .where(Vote.vote_type == vote_type.value)
            .where(Vote.status == VoteStatus.ACTIVE.value)
        )
        if target_user_id is None:
            query = query.where(Vote.target_user_id.is_(None))
        else:
            query = query.where(Vote.target_user_id == target_user_id)
        return (await self.db.execute(query)).scalars().first()

    async def _find_ballot(self, vote_id: UUID, user_id: UUID) -> Ballot | None:
        result = await self.db.execute(
            select(Ballot)
            .where(Ballot.vote_id == vote_id)
            .where(Ballot.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _ballot_choices(self, vote_id: UUID) -> list[str]:
        result = await self.db.execute(
            select(Ballot.choice).where(Ballot.vote_id == vote_id)
        )
        return list(result.scalars().all())

    async def _ensure_active(self, vote: Vote, context: ErrorContext) -> None:
        """Raise unless the vote accepts ballots, expiring it first if overdue."""
        if vote.status == VoteStatus.ACTIVE and is_expired(vote.expires_at, utcnow()):
            await self._expire_and_commit(vote)
            raise ExpiredOrResolvedError(VoteStatus.EXPIRED.value, context)
        if vote.status != VoteStatus.ACTIVE:
            raise ExpiredOrResolvedError(vote.status, context)

    async def _record_tally(
        self, vote: Vote, tally: Tally, outcome: VoteStatus,
    ) -> bool:
        """Write tallies (and a terminal status) only if the vote is still active."""
        values = {"yes_count": tally.yes, "no_count": tally.no}
        if outcome.is_terminal:
            values.update(status=outcome.value, resolved_at=utcnow())
        result = await self.db.execute(
            update(Vote)
            .where(Vote.id == vote.id)
            .where(Vote.status == VoteStatus.ACTIVE.value)
            .values(**values)
        )
        return result.rowcount == 1

    async def _expire(self, vote: Vote) -> bool:
        result = await self.db.execute(
            update(Vote)
            .where(Vote.id == vote.id)
            .where(Vote.status == VoteStatus.ACTIVE.value)
            .values(status=VoteStatus.EXPIRED.value, resolved_at=utcnow())
        )
        return result.rowcount == 1

    async def _expire_and_commit(self, vote: Vote) -> None:
        expired = await self._expire(vote)
        await self.db.commit()
        if expired:
            await self._report_expiry([vote], vote.circle_id)
        else:
            # Someone else resolved it first; show their outcome.
            await self.db.refresh(vote)

    async def _expire_stale_votes(self, circle_id: UUID) -> None:
        result = await self.db.execute(
            select(Vote)
            .where(Vote.circle_id == circle_id)
            .where(Vote.status == VoteStatus.ACTIVE.value)
            .where(Vote.expires_at <= utcnow())
        )
        stale = list(result.scalars().all())
        if not stale:
            return
        expired = [v for v in stale if await self._expire(v)]
        await self.db.commit()
        await self._report_expiry(expired, circle_id)

    async def _report_expiry(self, votes: list[Vote], circle_id: UUID) -> None:
        if not votes:
            return
        quorum = await self.store.count_admins(circle_id)
        for vote in votes:
            logger.info(
                f"Vote {vote.id} expired",
                extra={"circle_id": circle_id, "vote_id": vote.id, "status": "expired"},
            )
            self._notify("vote_resolved", vote, quorum)

    def _notify(self, event: str, vote: Vote, *args) -> None:
        dispatch(self._deliver(event, VoteSnapshot.of(vote), *args))

    async def _deliver(self, event: str, vote: VoteSnapshot, *args) -> None:
        try:
            await getattr(self.notifier, event)(vote, *args)
        except Exception as e:
            logger.warning(
                f"Notifier {event} failed: {e}", exc_info=True,
                extra={"vote_id": vote.id},
            )

    @staticmethod
    def _duplicate_vote(existing: Vote | None, context: ErrorContext) -> ConflictError:
        return ConflictError(
            "An active vote already exists for this action",
            "duplicate_active_vote",
            context,
            existing_vote_id=str(existing.id) if existing is not None else None,
        )
