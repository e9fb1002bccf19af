"""Circle Routes: HTTP behavior of circle, member and pending-invite endpoints.

Tests cover:
    - identity header required (401), malformed header (401)
    - create circle 201 / invalid name 400
    - circle detail, list, update
    - delete: 403 not owner, 409 vote required, 200 for sole owner
    - member role change, removal, direct invite and response
"""

from uuid import uuid4

from tests.seeding import as_user, seed_circle


async def test_missing_identity_is_401(client):
    res = await client.get("/api/v1/circles")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "AUTHENTICATION_REQUIRED"


async def test_malformed_identity_is_401(client):
    res = await client.get("/api/v1/circles", headers={"X-User-Id": "not-a-uuid"})
    assert res.status_code == 401


async def test_create_circle(client):
    owner = uuid4()
    res = await client.post(
        "/api/v1/circles",
        json={"name": "  Family  ", "description": "Weekend photos"},
        headers=as_user(owner),
    )
    assert res.status_code == 201
    body = res.json()
    assert body["name"] == "Family"
    assert body["created_by"] == str(owner)

    listed = await client.get("/api/v1/circles", headers=as_user(owner))
    assert [(c["name"], c["my_role"]) for c in listed.json()["circles"]] == [("Family", "owner")]


async def test_create_circle_blank_name_is_400(client):
    res = await client.post(
        "/api/v1/circles", json={"name": "   "}, headers=as_user(uuid4()),
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_create_circle_long_name_is_400(client):
    res = await client.post(
        "/api/v1/circles", json={"name": "x" * 101}, headers=as_user(uuid4()),
    )
    assert res.status_code == 400


async def test_circle_detail(client, test_db):
    seeded = await seed_circle(test_db, admins=1, members=1)
    res = await client.get(f"/api/v1/circles/{seeded.id}", headers=as_user(seeded.admins[0]))
    assert res.status_code == 200
    body = res.json()
    assert body["member_count"] == 3
    assert body["my_role"] == "admin"


async def test_circle_detail_for_outsider_is_403(client, test_db):
    seeded = await seed_circle(test_db)
    res = await client.get(f"/api/v1/circles/{seeded.id}", headers=as_user(uuid4()))
    assert res.status_code == 403


async def test_unknown_circle_is_404(client):
    res = await client.get(f"/api/v1/circles/{uuid4()}", headers=as_user(uuid4()))
    assert res.status_code == 404


async def test_update_circle(client, test_db):
    seeded = await seed_circle(test_db, members=1)
    res = await client.patch(
        f"/api/v1/circles/{seeded.id}", json={"name": "Renamed"},
        headers=as_user(seeded.owner),
    )
    assert res.status_code == 200
    assert res.json()["name"] == "Renamed"

    denied = await client.patch(
        f"/api/v1/circles/{seeded.id}", json={"name": "Nope"},
        headers=as_user(seeded.members[0]),
    )
    assert denied.status_code == 403


# ─── delete ──────────────────────────────────────────────────────

async def test_delete_by_admin_is_403(client, test_db):
    seeded = await seed_circle(test_db, admins=1)
    res = await client.delete(f"/api/v1/circles/{seeded.id}", headers=as_user(seeded.admins[0]))
    assert res.status_code == 403


async def test_delete_with_admins_is_409_vote_required(client, test_db):
    seeded = await seed_circle(test_db, admins=1)
    res = await client.delete(f"/api/v1/circles/{seeded.id}", headers=as_user(seeded.owner))
    assert res.status_code == 409
    error = res.json()["error"]
    assert error["details"]["require_vote"] is True
    assert error["retryable"] is True


async def test_sole_owner_delete(client, test_db):
    seeded = await seed_circle(test_db, members=2)
    res = await client.delete(f"/api/v1/circles/{seeded.id}", headers=as_user(seeded.owner))
    assert res.status_code == 200
    assert res.json() == {"success": True}

    gone = await client.get(f"/api/v1/circles/{seeded.id}", headers=as_user(seeded.owner))
    assert gone.status_code == 404


# ─── members ─────────────────────────────────────────────────────

async def test_list_members(client, test_db):
    seeded = await seed_circle(test_db, admins=1, members=2, pending=1)
    res = await client.get(
        f"/api/v1/circles/{seeded.id}/members", headers=as_user(seeded.members[0]),
    )
    assert res.status_code == 200
    assert len(res.json()["members"]) == 4


async def test_owner_promotes_member(client, test_db):
    seeded = await seed_circle(test_db, members=1)
    res = await client.patch(
        f"/api/v1/circles/{seeded.id}/members/{seeded.members[0]}",
        json={"role": "admin"}, headers=as_user(seeded.owner),
    )
    assert res.status_code == 200
    assert res.json()["role"] == "admin"


async def test_role_owner_is_rejected_by_schema(client, test_db):
    seeded = await seed_circle(test_db, members=1)
    res = await client.patch(
        f"/api/v1/circles/{seeded.id}/members/{seeded.members[0]}",
        json={"role": "owner"}, headers=as_user(seeded.owner),
    )
    assert res.status_code == 400


async def test_remove_admin_without_vote_is_409(client, test_db):
    seeded = await seed_circle(test_db, admins=1)
    res = await client.delete(
        f"/api/v1/circles/{seeded.id}/members/{seeded.admins[0]}",
        headers=as_user(seeded.owner),
    )
    assert res.status_code == 409


async def test_member_leaves(client, test_db):
    seeded = await seed_circle(test_db, members=1)
    res = await client.delete(
        f"/api/v1/circles/{seeded.id}/members/{seeded.members[0]}",
        headers=as_user(seeded.members[0]),
    )
    assert res.status_code == 200
    assert res.json() == {"success": True, "removed": True}


async def test_direct_invite_and_accept(client, test_db):
    seeded = await seed_circle(test_db)
    invitee = uuid4()
    res = await client.post(
        f"/api/v1/circles/{seeded.id}/members",
        json={"user_id": str(invitee)}, headers=as_user(seeded.owner),
    )
    assert res.status_code == 201
    assert res.json()["invite_status"] == "pending"

    again = await client.post(
        f"/api/v1/circles/{seeded.id}/members",
        json={"user_id": str(invitee)}, headers=as_user(seeded.owner),
    )
    assert again.status_code == 409

    accepted = await client.post(
        f"/api/v1/circles/{seeded.id}/pending/respond",
        json={"accept": True}, headers=as_user(invitee),
    )
    assert accepted.status_code == 200
    assert accepted.json()["membership"]["invite_status"] == "accepted"
