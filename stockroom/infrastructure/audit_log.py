"""Audit Log Sink - persists audit events outside the audited transaction.

Invariants:
    - SqlAuditSink writes with its own session, after the caller committed
    - emit_audit() never raises: an audit failure is logged and the already
      committed operation stands
    - Metadata must be JSON-serializable (UUIDs are stringified)

Design Decisions:
    - Separate session per event: a failing audit insert cannot poison or roll
      back the inventory transaction
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockroom.core.domain_types import ActorId
from stockroom.core.repository_protocols import AuditSink
from stockroom.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def _jsonable(value: object) -> object:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (uuid.UUID, datetime)):
        return str(value) if isinstance(value, uuid.UUID) else value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class SqlAuditSink:
    """AuditSink backed by the audit_logs table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def log(
        self,
        actor_id: ActorId,
        action: str,
        target: str,
        metadata: dict | None = None,
        message: str | None = None,
    ) -> None:
        async with self._session_factory() as db:
            db.add(AuditLog(
                actor_id=str(actor_id),
                action=action,
                target=target,
                payload=_jsonable(metadata) if metadata is not None else None,
                details=message,
            ))
            await db.commit()


async def emit_audit(
    sink: AuditSink,
    actor_id: ActorId,
    action: str,
    target: str,
    metadata: dict | None = None,
    message: str | None = None,
) -> None:
    """Forward to the sink; failures are logged, never propagated."""
    try:
        await sink.log(actor_id, action, target, metadata, message)
    except Exception as e:
        logger.warning(
            f"Audit log failed for {action} on {target}: {e}",
            extra={"error_code": "AUDIT_WRITE_FAILED"},
        )
