"""ORM Models - SQLAlchemy declarative models for inventory entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - InventoryItem rows are scoped by product_id

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from stockroom.models.product import Product  # noqa: F401
from stockroom.models.inventory_item import InventoryItem  # noqa: F401
from stockroom.models.audit_log import AuditLog  # noqa: F401
