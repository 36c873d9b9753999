"""API Dependencies - per-request construction of services and request context.

Invariants:
    - Services share the request's AsyncSession (one transaction per call)
    - The audit sink writes through its own sessions from the shared factory
    - Actor id comes from the X-Actor-Id header; authentication is upstream
"""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.config import get_settings
from stockroom.core.domain_types import ActorId
from stockroom.core.repository_protocols import AuditSink
from stockroom.infrastructure.audit_log import SqlAuditSink
from stockroom.infrastructure.database import get_db, get_db_manager
from stockroom.infrastructure.payload_codec import PayloadCodec, get_codec
from stockroom.services.intake import IntakeService
from stockroom.services.inventory_query import InventoryQueryService
from stockroom.services.reconciliation import ReconciliationService
from stockroom.services.reservation import ReservationEngine

DEFAULT_ACTOR = "admin"


def get_actor_id(
    x_actor_id: str | None = Header(None, max_length=64),
) -> ActorId:
    return ActorId(x_actor_id or DEFAULT_ACTOR)


def get_audit_sink() -> AuditSink:
    return SqlAuditSink(get_db_manager().session_factory)


def get_intake_service(
    db: AsyncSession = Depends(get_db),
    codec: PayloadCodec = Depends(get_codec),
    audit: AuditSink = Depends(get_audit_sink),
) -> IntakeService:
    return IntakeService(db, codec, audit, settings=get_settings())


def get_reservation_engine(
    db: AsyncSession = Depends(get_db),
    audit: AuditSink = Depends(get_audit_sink),
) -> ReservationEngine:
    return ReservationEngine(db, audit, settings=get_settings())


def get_delivery_engine(
    db: AsyncSession = Depends(get_db),
    codec: PayloadCodec = Depends(get_codec),
    audit: AuditSink = Depends(get_audit_sink),
) -> ReservationEngine:
    """ReservationEngine that can decrypt; fails with ConfigurationError without a key."""
    return ReservationEngine(db, audit, codec=codec, settings=get_settings())


def get_query_service(db: AsyncSession = Depends(get_db)) -> InventoryQueryService:
    return InventoryQueryService(db)


def get_reconciliation_service(
    db: AsyncSession = Depends(get_db),
    audit: AuditSink = Depends(get_audit_sink),
) -> ReconciliationService:
    return ReconciliationService(db, audit, settings=get_settings())
