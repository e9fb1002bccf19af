"""Concurrency: race tests for ballots, invite redemption and circle deletion.

Invariants:
    - N concurrent ballots on one vote apply its effect exactly once
    - No (vote_id, user_id) pair ever has two ballots
    - Two concurrent redemptions of a one-use invite: one membership, one exhausted
    - Concurrent duplicate initiations leave exactly one active vote
    - A delete racing a promotion either deletes or demands a vote, never both

Design Decisions:
    - File-backed SQLite (file_session_factory): every task owns its session and
      connection, as concurrent requests would
    - Tasks share one KeyedLockRegistry, the in-process deployment shape
"""

import asyncio
from uuid import uuid4

from sqlalchemy import func, select

from circle_governance.core.domain_types import VoteType
from circle_governance.core.errors import (
    AuthorizationError, ConflictError, ExpiredOrResolvedError, InviteDeniedError,
    NotFoundError,
)
from circle_governance.models import Ballot, Circle, InviteToken, Membership, Vote
from circle_governance.services.circle_actions import CircleActions
from circle_governance.services.invite_service import InviteTokenService
from circle_governance.services.vote_engine import VOTE_EFFECTS, VoteEngine
from tests.seeding import seed_circle, seed_invite, seed_vote


async def _cast(session_factory, locks, vote_id, voter_id, choice="yes"):
    async with session_factory() as db:
        return await VoteEngine(db, locks=locks).cast_ballot(vote_id, voter_id, choice)


async def _redeem(session_factory, token, user_id):
    async with session_factory() as db:
        return await InviteTokenService(db).redeem_invite(token, user_id)


async def test_concurrent_ballots_apply_effect_once(file_session_factory, locks, monkeypatch):
    applied = []
    remove_member = VOTE_EFFECTS[VoteType.REMOVE_MEMBER]

    async def counting_effect(store, vote):
        applied.append(vote.id)
        await remove_member(store, vote)

    monkeypatch.setitem(VOTE_EFFECTS, VoteType.REMOVE_MEMBER, counting_effect)

    async with file_session_factory() as db:
        seeded = await seed_circle(db, admins=4, members=1)
        vote = await seed_vote(db, seeded, target_user_id=seeded.members[0])
    voters = [seeded.owner, *seeded.admins]

    results = await asyncio.gather(
        *(_cast(file_session_factory, locks, vote.id, v) for v in voters),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    # quorum 5 -> majority 3: the third ballot resolves, later ones see "passed"
    assert len(succeeded) == 3
    assert all(isinstance(r, ExpiredOrResolvedError) and r.status == "passed" for r in rejected)
    assert applied == [vote.id]

    async with file_session_factory() as db:
        stored = (await db.execute(select(Vote).where(Vote.id == vote.id))).scalar_one()
        assert stored.status == "passed"
        assert stored.yes_count == 3
        ballots = (await db.execute(
            select(func.count(Ballot.id)).where(Ballot.vote_id == vote.id)
        )).scalar_one()
        assert ballots == 3
        target = (await db.execute(
            select(Membership).where(Membership.user_id == seeded.members[0])
        )).scalar_one_or_none()
        assert target is None


async def test_concurrent_duplicate_ballots_store_one(file_session_factory, locks):
    async with file_session_factory() as db:
        seeded = await seed_circle(db, admins=4, members=1)
        vote = await seed_vote(db, seeded, target_user_id=seeded.members[0])
    voter = seeded.admins[0]

    results = await asyncio.gather(
        *(_cast(file_session_factory, locks, vote.id, voter) for _ in range(3)),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert all(
        isinstance(r, ConflictError) and r.reason == "already_voted"
        for r in results if isinstance(r, Exception)
    )
    async with file_session_factory() as db:
        count = (await db.execute(
            select(func.count(Ballot.id))
            .where(Ballot.vote_id == vote.id)
            .where(Ballot.user_id == voter)
        )).scalar_one()
        assert count == 1


async def test_concurrent_redemption_of_last_slot(file_session_factory):
    async with file_session_factory() as db:
        seeded = await seed_circle(db)
        invite = await seed_invite(db, seeded, max_uses=1)
    users = [uuid4(), uuid4()]

    results = await asyncio.gather(
        *(_redeem(file_session_factory, invite.token, u) for u in users),
        return_exceptions=True,
    )

    memberships = [r for r in results if isinstance(r, Membership)]
    denials = [r for r in results if isinstance(r, InviteDeniedError)]
    assert len(memberships) == 1
    assert len(denials) == 1
    assert denials[0].reason == "exhausted"

    async with file_session_factory() as db:
        stored = (await db.execute(
            select(InviteToken).where(InviteToken.id == invite.id)
        )).scalar_one()
        assert stored.use_count == stored.max_uses == 1
        joined = (await db.execute(
            select(func.count(Membership.id))
            .where(Membership.circle_id == seeded.id)
            .where(Membership.user_id.in_(users))
        )).scalar_one()
        assert joined == 1


async def test_concurrent_initiations_leave_one_active_vote(file_session_factory, locks):
    async with file_session_factory() as db:
        seeded = await seed_circle(db, admins=2, members=1)
    initiators = [seeded.owner, *seeded.admins]

    async def initiate(user_id):
        async with file_session_factory() as db:
            return await VoteEngine(db, locks=locks).initiate_vote(
                seeded.id, user_id, "remove_member", seeded.members[0],
            )

    results = await asyncio.gather(
        *(initiate(u) for u in initiators), return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, Vote)) == 1
    assert all(
        isinstance(r, ConflictError) for r in results if not isinstance(r, Vote)
    )
    async with file_session_factory() as db:
        active = (await db.execute(
            select(func.count(Vote.id))
            .where(Vote.circle_id == seeded.id)
            .where(Vote.status == "active")
        )).scalar_one()
        assert active == 1


async def test_delete_races_promotion(file_session_factory, locks):
    """Delete and a promotion to a second admin never both succeed."""
    async with file_session_factory() as db:
        seeded = await seed_circle(db, members=1)

    async def delete():
        async with file_session_factory() as db:
            await CircleActions(db, locks=locks).delete_circle(seeded.id, seeded.owner)

    async def promote():
        async with file_session_factory() as db:
            await CircleActions(db, locks=locks).change_role(
                seeded.id, seeded.owner, seeded.members[0], "admin",
            )

    deleted, promoted = await asyncio.gather(delete(), promote(), return_exceptions=True)

    async with file_session_factory() as db:
        circle = (await db.execute(
            select(Circle).where(Circle.id == seeded.id)
        )).scalar_one()
    if deleted is None:
        assert circle.is_deleted
        # the promotion saw either the deleted circle or no membership left
        assert isinstance(promoted, (NotFoundError, AuthorizationError))
    else:
        assert isinstance(deleted, ConflictError)
        assert deleted.reason == "vote_required"
        assert promoted is None
        assert not circle.is_deleted
