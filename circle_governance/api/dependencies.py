"""API Dependencies: caller identity and per-request service construction.

Invariants:
    - Identity is an opaque UUID set by the upstream gateway in the identity header
    - Missing or malformed identity -> AuthenticationError (401)
    - All services built for one request share that request's AsyncSession

Design Decisions:
    - FastAPI Depends over a service locator: tests override get_db once and every
      service picks up the test session
"""

from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from circle_governance.config import get_settings
from circle_governance.core.errors import AuthenticationError
from circle_governance.infrastructure.database import get_db
from circle_governance.infrastructure.keyed_locks import KeyedLockRegistry, get_lock_registry
from circle_governance.infrastructure.notifier import LoggingVoteNotifier, get_notifier
from circle_governance.services.circle_actions import CircleActions
from circle_governance.services.invite_service import InviteTokenService
from circle_governance.services.membership_store import MembershipStore
from circle_governance.services.vote_engine import VoteEngine


def _parse_identity(raw: str | None, header: str) -> UUID | None:
    if not raw:
        return None
    try:
        return UUID(raw)
    except ValueError:
        raise AuthenticationError(f"Malformed {header} header")


async def get_current_user_id(request: Request) -> UUID:
    header = get_settings().identity_header
    user_id = _parse_identity(request.headers.get(header), header)
    if user_id is None:
        raise AuthenticationError()
    return user_id


async def get_optional_user_id(request: Request) -> UUID | None:
    """Identity when present; used by endpoints that also serve anonymous callers."""
    header = get_settings().identity_header
    return _parse_identity(request.headers.get(header), header)


def get_membership_store(db: AsyncSession = Depends(get_db)) -> MembershipStore:
    return MembershipStore(db)


def get_vote_engine(
    db: AsyncSession = Depends(get_db),
    store: MembershipStore = Depends(get_membership_store),
    locks: KeyedLockRegistry = Depends(get_lock_registry),
    notifier: LoggingVoteNotifier = Depends(get_notifier),
) -> VoteEngine:
    return VoteEngine(
        db, locks=locks, notifier=notifier, store=store,
        max_expiry_days=get_settings().vote_max_expiry_days,
    )


def get_invite_service(
    db: AsyncSession = Depends(get_db),
    store: MembershipStore = Depends(get_membership_store),
) -> InviteTokenService:
    return InviteTokenService(
        db, store=store, max_expiry_days=get_settings().invite_max_expiry_days,
    )


def get_circle_actions(
    db: AsyncSession = Depends(get_db),
    store: MembershipStore = Depends(get_membership_store),
    locks: KeyedLockRegistry = Depends(get_lock_registry),
    votes: VoteEngine = Depends(get_vote_engine),
) -> CircleActions:
    return CircleActions(db, locks=locks, store=store, votes=votes)
