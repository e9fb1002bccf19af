"""Vote Notifier: outbound notification hook for vote initiation and resolution.

Invariants:
    - Notifications are fire-and-forget: they run as background tasks, so a slow
      notifier never delays the request that triggered it
    - Notifiers receive a VoteSnapshot, never the ORM row, and never touch the
      database session of the request
    - Every scheduled task is referenced in _in_flight until it finishes

Design Decisions:
    - Default implementation only logs; delivery (email, push) belongs to an
      external collaborator that can be plugged in through get_notifier
    - drain_notifications() lets the lifespan shutdown and tests wait for
      outstanding deliveries
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Coroutine
from uuid import UUID

from circle_governance.core.repository_protocols import VoteLike

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteSnapshot:
    """Detached copy of a vote, taken when the notification is scheduled."""
    id: UUID
    circle_id: UUID
    vote_type: str
    target_user_id: UUID | None
    status: str
    yes_count: int
    no_count: int

    @classmethod
    def of(cls, vote: VoteLike) -> "VoteSnapshot":
        return cls(
            id=vote.id,
            circle_id=vote.circle_id,
            vote_type=vote.vote_type,
            target_user_id=vote.target_user_id,
            status=vote.status,
            yes_count=vote.yes_count,
            no_count=vote.no_count,
        )


_in_flight: set[asyncio.Task] = set()


def dispatch(delivery: Coroutine) -> asyncio.Task:
    """Run a notification in the background, holding a reference until it ends."""
    task = asyncio.create_task(delivery)
    _in_flight.add(task)
    task.add_done_callback(_in_flight.discard)
    return task


async def drain_notifications() -> None:
    """Wait until every scheduled notification has finished."""
    while _in_flight:
        await asyncio.gather(*list(_in_flight), return_exceptions=True)


class LoggingVoteNotifier:
    """VoteNotifier that records events in the application log."""

    async def vote_initiated(self, vote: VoteLike) -> None:
        logger.info(
            f"Vote {vote.id} opened ({vote.vote_type})",
            extra={
                "circle_id": vote.circle_id, "vote_id": vote.id,
                "vote_type": vote.vote_type, "user_id": vote.target_user_id,
            },
        )

    async def vote_resolved(self, vote: VoteLike, quorum: int) -> None:
        logger.info(
            f"Vote {vote.id} resolved as {vote.status} "
            f"({vote.yes_count} yes / {vote.no_count} no, quorum {quorum})",
            extra={
                "circle_id": vote.circle_id, "vote_id": vote.id,
                "vote_type": vote.vote_type, "status": vote.status,
                "quorum": quorum,
            },
        )


_notifier = LoggingVoteNotifier()


def get_notifier() -> LoggingVoteNotifier:
    """FastAPI dependency for the configured notifier."""
    return _notifier
