"""Domain Types: tests for enums and time helpers."""

from datetime import datetime, timezone

from circle_governance.core.domain_types import (
    GOVERNING_ROLES, MemberRole, VoteStatus, VoteType, as_utc,
)


def test_only_delete_circle_is_untargeted():
    assert [t for t in VoteType if not t.is_targeted] == [VoteType.DELETE_CIRCLE]


def test_terminal_statuses():
    assert VoteStatus.ACTIVE.is_terminal is False
    assert all(s.is_terminal for s in VoteStatus if s is not VoteStatus.ACTIVE)


def test_str_enum_compares_with_stored_values():
    assert "admin" in GOVERNING_ROLES
    assert "member" not in GOVERNING_ROLES
    assert MemberRole.OWNER == "owner"


def test_as_utc_attaches_timezone_to_naive():
    naive = datetime(2026, 1, 1, 12, 0)
    assert as_utc(naive).tzinfo is timezone.utc
    aware = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert as_utc(aware) is aware
