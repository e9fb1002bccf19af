"""Circle Governance: quorum-backed administration of shared circles.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
