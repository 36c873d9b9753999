"""Services Layer - transactional inventory operations over the item store.

Invariants:
    - Services own the commit: one operation == one transaction
    - Audit events are emitted only after a successful commit
"""
