"""Declarative Base for the ORM models.

Invariants:
    - db/ holds metadata only; engines and sessions live in infrastructure/database.py
"""
