"""Pydantic Schemas: request/response validation for API endpoints.

Invariants:
    - Schemas validate at the system boundary (request bodies, API responses)
    - Response models read ORM rows through from_attributes

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
