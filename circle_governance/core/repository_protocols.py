"""Boundary Protocols: contracts between the pure core and the IO shell.

Invariants:
    - Core NEVER imports from services/, api/, infrastructure/ or models/
    - Core rules read memberships and votes only through these structural types

Design Decisions:
    - Protocol over ABC: ORM rows satisfy them structurally, and tests can pass
      SimpleNamespace stand-ins
    - VoteNotifier is async because implementations do IO; the engine treats it
      as fire-and-forget
"""

from typing import Protocol
from uuid import UUID


class MembershipLike(Protocol):
    """Structural contract for Membership rows consulted by GovernanceGuard."""
    circle_id: UUID
    user_id: UUID
    role: str
    invite_status: str


class VoteLike(Protocol):
    """Structural contract for Vote rows passed to notifiers."""
    id: UUID
    circle_id: UUID
    vote_type: str
    target_user_id: UUID | None
    status: str
    yes_count: int
    no_count: int


class VoteNotifier(Protocol):
    """Outbound notification hook; failures must never affect vote state."""
    async def vote_initiated(self, vote: VoteLike) -> None: ...
    async def vote_resolved(self, vote: VoteLike, quorum: int) -> None: ...
