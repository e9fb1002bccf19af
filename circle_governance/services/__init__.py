"""Services Layer: MembershipStore, InviteTokenService, VoteEngine, CircleActions.

Invariants:
    - Services own transactions; routes never commit
    - Every mutation is gated by core/governance_guard.py

Design Decisions:
    - One service per component, constructed per request around one AsyncSession
"""
