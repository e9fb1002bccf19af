"""Vote Resolution: pure quorum and majority arithmetic for governance votes.

Invariants:
    - majority = floor(quorum / 2) + 1, with quorum the live owner+admin count
    - yes >= majority -> passed; no >= majority -> failed
    - every quorum slot used without a majority (yes + no >= quorum) -> failed
    - otherwise the vote stays active
    - quorum <= 0 never resolves (nobody is eligible to finish the vote)

Design Decisions:
    - Quorum is an input, recomputed by the caller on every ballot; it is not
      frozen at initiation, so promotions/removals mid-vote move the threshold
    - Tally is a frozen dataclass so the engine can return it alongside the row
"""

from dataclasses import dataclass
from datetime import datetime

from circle_governance.core.domain_types import (
    BallotChoice, VoteStatus, as_utc,
)


@dataclass(frozen=True)
class Tally:
    """Ballot counts and the quorum they were measured against."""
    yes: int
    no: int
    quorum: int

    @property
    def majority(self) -> int:
        return majority_for(self.quorum)

    @property
    def votes_cast(self) -> int:
        return self.yes + self.no


def majority_for(quorum: int) -> int:
    return quorum // 2 + 1


def count_choices(choices: list[str]) -> tuple[int, int]:
    """Count yes/no ballots from raw stored choices."""
    yes = sum(1 for c in choices if c == BallotChoice.YES)
    no = sum(1 for c in choices if c == BallotChoice.NO)
    return yes, no


def resolve(tally: Tally) -> VoteStatus:
    """Resolution rule applied after every ballot."""
    if tally.quorum <= 0:
        return VoteStatus.ACTIVE
    if tally.yes >= tally.majority:
        return VoteStatus.PASSED
    if tally.no >= tally.majority or tally.votes_cast >= tally.quorum:
        return VoteStatus.FAILED
    return VoteStatus.ACTIVE


def is_expired(expires_at: datetime, now: datetime) -> bool:
    """Expiry is evaluated lazily on read: the boundary instant counts as expired."""
    return as_utc(now) >= as_utc(expires_at)
