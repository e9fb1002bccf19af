"""Vote Resolution: tests for pure quorum/majority arithmetic.

Tests cover:
    - majority = floor(quorum / 2) + 1
    - passed / failed / active outcomes, including the all-voted split
    - quorum 0 never resolves
    - lazy expiry boundary
"""

from datetime import datetime, timedelta, timezone

import pytest

from circle_governance.core.domain_types import VoteStatus
from circle_governance.core.vote_resolution import (
    Tally, count_choices, is_expired, majority_for, resolve,
)


@pytest.mark.parametrize(
    "quorum,majority", [(1, 1), (2, 2), (3, 2), (4, 3), (5, 3), (10, 6)],
)
def test_majority_for(quorum, majority):
    assert majority_for(quorum) == majority


def test_first_yes_of_three_stays_active():
    assert resolve(Tally(yes=1, no=0, quorum=3)) is VoteStatus.ACTIVE


def test_second_yes_of_three_passes():
    assert resolve(Tally(yes=2, no=0, quorum=3)) is VoteStatus.PASSED


def test_split_then_no_fails():
    assert resolve(Tally(yes=1, no=1, quorum=3)) is VoteStatus.ACTIVE
    assert resolve(Tally(yes=1, no=2, quorum=3)) is VoteStatus.FAILED


def test_even_split_with_everyone_voted_fails():
    # quorum 4 -> majority 3; 2-2 uses every slot without a majority
    assert resolve(Tally(yes=2, no=2, quorum=4)) is VoteStatus.FAILED


def test_sole_admin_yes_passes():
    assert resolve(Tally(yes=1, no=0, quorum=1)) is VoteStatus.PASSED


def test_quorum_shrunk_below_ballots_still_resolves():
    # An admin was removed mid-vote: 2 ballots already cast against a quorum of 2.
    assert resolve(Tally(yes=1, no=1, quorum=2)) is VoteStatus.FAILED


def test_zero_quorum_never_resolves():
    assert resolve(Tally(yes=0, no=0, quorum=0)) is VoteStatus.ACTIVE


def test_tally_properties():
    tally = Tally(yes=2, no=1, quorum=5)
    assert tally.majority == 3
    assert tally.votes_cast == 3


def test_count_choices():
    assert count_choices(["yes", "no", "yes"]) == (2, 1)
    assert count_choices([]) == (0, 0)


def test_expiry_boundary_counts_as_expired():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert is_expired(now, now) is True
    assert is_expired(now + timedelta(seconds=1), now) is False


def test_expiry_accepts_naive_stored_datetimes():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    stored = datetime(2025, 12, 31)
    assert is_expired(stored, now) is True
