"""Vote Routes: HTTP behavior of vote initiation, ballots and reads.

Tests cover:
    - initiate 201; 400 ineligible target; 403 member; 409 duplicate active vote
    - cast ballot: tallies in the response, 400 invalid choice, 409 already voted,
      400 once resolved, 404 for a vote of another circle
    - full flow: delete_circle vote passes, then the owner deletes the circle
"""

from datetime import timedelta
from uuid import uuid4

from tests.seeding import as_user, seed_circle, seed_vote


async def _initiate(client, circle_id, user_id, vote_type, target=None):
    payload = {"vote_type": vote_type}
    if target is not None:
        payload["target_user_id"] = str(target)
    return await client.post(
        f"/api/v1/circles/{circle_id}/votes", json=payload, headers=as_user(user_id),
    )


async def _cast(client, circle_id, vote_id, user_id, choice):
    return await client.post(
        f"/api/v1/circles/{circle_id}/votes/{vote_id}/ballots",
        json={"choice": choice}, headers=as_user(user_id),
    )


async def test_initiate_vote(client, test_db):
    seeded = await seed_circle(test_db, admins=1, members=1)
    res = await _initiate(client, seeded.id, seeded.admins[0], "remove_member", seeded.members[0])
    assert res.status_code == 201
    body = res.json()
    assert body["status"] == "active"
    assert body["target_user_id"] == str(seeded.members[0])


async def test_initiate_promote_admin_on_admin_is_400(client, test_db):
    seeded = await seed_circle(test_db, admins=2)
    res = await _initiate(client, seeded.id, seeded.owner, "promote_admin", seeded.admins[1])
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "User is already an admin"


async def test_initiate_by_member_is_403(client, test_db):
    seeded = await seed_circle(test_db, members=2)
    res = await _initiate(client, seeded.id, seeded.members[0], "remove_member", seeded.members[1])
    assert res.status_code == 403


async def test_initiate_unknown_type_is_400(client, test_db):
    seeded = await seed_circle(test_db)
    res = await _initiate(client, seeded.id, seeded.owner, "rename_circle")
    assert res.status_code == 400


async def test_duplicate_active_vote_is_409(client, test_db):
    seeded = await seed_circle(test_db, admins=1)
    first = await _initiate(client, seeded.id, seeded.owner, "delete_circle")
    second = await _initiate(client, seeded.id, seeded.admins[0], "delete_circle")
    assert second.status_code == 409
    assert second.json()["error"]["details"]["existing_vote_id"] == first.json()["id"]


async def test_cast_ballot_returns_tallies(client, test_db):
    seeded = await seed_circle(test_db, admins=2, members=1)
    vote = await seed_vote(test_db, seeded, target_user_id=seeded.members[0])

    res = await _cast(client, seeded.id, vote.id, seeded.admins[0], "yes")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "active"
    assert (body["yes_count"], body["quorum"], body["majority"]) == (1, 3, 2)

    res = await _cast(client, seeded.id, vote.id, seeded.admins[1], "yes")
    assert res.json()["status"] == "passed"

    members = await client.get(
        f"/api/v1/circles/{seeded.id}/members", headers=as_user(seeded.owner),
    )
    assert str(seeded.members[0]) not in {m["user_id"] for m in members.json()["members"]}

    late = await _cast(client, seeded.id, vote.id, seeded.owner, "no")
    assert late.status_code == 400
    assert late.json()["error"]["details"]["status"] == "passed"


async def test_invalid_choice_is_400(client, test_db):
    seeded = await seed_circle(test_db, admins=1)
    vote = await seed_vote(test_db, seeded, vote_type="delete_circle")
    res = await _cast(client, seeded.id, vote.id, seeded.owner, "abstain")
    assert res.status_code == 400


async def test_second_ballot_is_409(client, test_db):
    seeded = await seed_circle(test_db, admins=2)
    vote = await seed_vote(test_db, seeded, vote_type="delete_circle")
    await _cast(client, seeded.id, vote.id, seeded.admins[0], "no")
    res = await _cast(client, seeded.id, vote.id, seeded.admins[0], "no")
    assert res.status_code == 409
    assert res.json()["error"]["details"]["reason"] == "already_voted"


async def test_expired_vote_is_400(client, test_db):
    seeded = await seed_circle(test_db, admins=1)
    vote = await seed_vote(
        test_db, seeded, vote_type="delete_circle", expires_in=timedelta(hours=-1),
    )
    res = await _cast(client, seeded.id, vote.id, seeded.owner, "yes")
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "This vote has expired"


async def test_ballot_for_vote_of_other_circle_is_404(client, test_db):
    first = await seed_circle(test_db, admins=1)
    second = await seed_circle(test_db)
    vote = await seed_vote(test_db, first, vote_type="delete_circle")
    res = await _cast(client, second.id, vote.id, second.owner, "yes")
    assert res.status_code == 404


async def test_unknown_vote_is_404(client, test_db):
    seeded = await seed_circle(test_db)
    res = await _cast(client, seeded.id, uuid4(), seeded.owner, "yes")
    assert res.status_code == 404


async def test_vote_detail_and_list(client, test_db):
    seeded = await seed_circle(test_db, admins=2, members=1)
    vote = await seed_vote(test_db, seeded, target_user_id=seeded.members[0])
    await _cast(client, seeded.id, vote.id, seeded.admins[0], "no")

    detail = await client.get(
        f"/api/v1/circles/{seeded.id}/votes/{vote.id}", headers=as_user(seeded.admins[0]),
    )
    assert detail.status_code == 200
    body = detail.json()
    assert body["my_vote"] == "no"
    assert body["can_vote"] is False
    assert body["total_admins"] == 3
    assert len(body["ballots"]) == 1

    listed = await client.get(
        f"/api/v1/circles/{seeded.id}/votes", headers=as_user(seeded.admins[1]),
    )
    votes = listed.json()["votes"]
    assert [v["id"] for v in votes] == [str(vote.id)]
    assert votes[0]["can_vote"] is True


async def test_delete_circle_flow(client, test_db):
    """Two admins: the vote passes, then the owner's delete goes through."""
    seeded = await seed_circle(test_db, admins=1)
    blocked = await client.delete(f"/api/v1/circles/{seeded.id}", headers=as_user(seeded.owner))
    assert blocked.status_code == 409

    vote = (await _initiate(client, seeded.id, seeded.admins[0], "delete_circle")).json()
    await _cast(client, seeded.id, vote["id"], seeded.admins[0], "yes")
    passed = await _cast(client, seeded.id, vote["id"], seeded.owner, "yes")
    assert passed.json()["status"] == "passed"

    res = await client.delete(f"/api/v1/circles/{seeded.id}", headers=as_user(seeded.owner))
    assert res.status_code == 200
