"""Error Hierarchy: tests for status codes, categories and the response envelope.

Tests cover:
    - every domain error maps to its HTTP status
    - InviteDeniedError: 404 for not_found, 410 otherwise, reason in details
    - retryable flag only on conflicts
    - to_response envelope shape
"""

import pytest

from circle_governance.core.errors import (
    AuthenticationError,
    AuthorizationError,
    CircleCreationError,
    ConflictError,
    DatabaseError,
    ErrorContext,
    ExpiredOrResolvedError,
    InviteDeniedError,
    NotFoundError,
    ValidationError,
)


@pytest.mark.parametrize(
    "error,status",
    [
        (AuthenticationError(), 401),
        (AuthorizationError("no"), 403),
        (NotFoundError("Vote", "x"), 404),
        (ValidationError("bad"), 400),
        (ConflictError("dup", "already_voted"), 409),
        (ExpiredOrResolvedError("passed"), 400),
        (CircleCreationError("boom"), 500),
        (DatabaseError("down", "execute"), 503),
    ],
)
def test_http_status(error, status):
    assert error.http_status == status


@pytest.mark.parametrize(
    "reason,status",
    [
        ("not_found", 404),
        ("deactivated", 410),
        ("expired", 410),
        ("exhausted", 410),
        ("circle_deleted", 410),
    ],
)
def test_invite_denial_status(reason, status):
    error = InviteDeniedError(reason)
    assert error.http_status == status
    assert error.reason == reason
    assert error.to_response()["error"]["details"]["reason"] == reason


def test_only_conflicts_are_retryable():
    assert ConflictError("dup", "duplicate_active_vote").retryable is True
    assert ExpiredOrResolvedError("expired").retryable is False
    assert AuthorizationError("no").retryable is False


def test_conflict_details_carry_extra_fields():
    error = ConflictError(
        "vote needed", "vote_required", require_vote=True, vote_type="delete_circle",
    )
    details = error.to_response()["error"]["details"]
    assert details == {
        "reason": "vote_required", "require_vote": True, "vote_type": "delete_circle",
    }


def test_response_envelope():
    error = ExpiredOrResolvedError("expired", ErrorContext(circle_id="c1", vote_id="v1"))
    body = error.to_response()["error"]
    assert body["code"] == "VOTE_NOT_ACTIVE"
    assert body["category"] == "business_rule"
    assert body["message"] == "This vote has expired"
    assert body["context"] == {"circle_id": "c1", "vote_id": "v1"}
    assert body["details"] == {"status": "expired"}
    assert "timestamp" in body


def test_contexts_are_not_shared_between_errors():
    first = ValidationError("a", "name")
    second = ValidationError("b")
    assert "field" not in second.context.details
    assert first.context.details == {"field": "name"}
