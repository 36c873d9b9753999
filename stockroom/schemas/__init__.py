"""Pydantic Schemas - request/response validation for API endpoints.

Invariants:
    - Schemas validate shape at the system boundary; payload variant rules
      live in core/item_payload.py
    - Domain enums from core/ used for enum fields

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
