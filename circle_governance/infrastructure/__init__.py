"""Infrastructure Layer: database, logging, locking and outbound notification.

Invariants:
    - Infrastructure never imports domain rules beyond errors and protocols
    - All database access goes through DatabaseSessionManager sessions
"""
