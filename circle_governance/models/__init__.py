"""ORM Models: SQLAlchemy declarative models for all governance entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Circle is the aggregate root; every other entity is scoped by circle_id

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all
      or alembic autogenerate runs
"""

from circle_governance.models.circle import Circle  # noqa: F401
from circle_governance.models.membership import Membership  # noqa: F401
from circle_governance.models.invite_token import InviteToken  # noqa: F401
from circle_governance.models.vote import Vote  # noqa: F401
from circle_governance.models.ballot import Ballot  # noqa: F401
