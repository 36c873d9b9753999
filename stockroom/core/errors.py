"""Error Hierarchy - typed, categorized exceptions for all Stockroom failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are never auto-retried; ConcurrencyError is the
      only retryable one and carries retry_after_ms
    - IntegrityError is fatal for one item only; callers processing batches
      catch it per item
    - to_response() produces the REST envelope; no internal details leaked

Design Decisions:
    - Single hierarchy with StockroomError base: FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging
    - IntegrityError shadows sqlalchemy.exc.IntegrityError by name; infrastructure
      code imports the SQLAlchemy one through its module (sa_exc)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    CONFLICT = "conflict"
    RESOURCE_NOT_FOUND = "resource_not_found"
    INTEGRITY = "integrity"
    CONFIGURATION = "configuration"
    DATABASE = "database"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    product_id: str | None = None
    item_id: str | None = None
    order_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class StockroomError(Exception):
    """Base exception for all Stockroom errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def retryable(self) -> bool:
        return self.context.retry_after_ms is not None

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "product_id": self.context.product_id,
                    "item_id": self.context.item_id,
                    "order_id": self.context.order_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class ValidationError(StockroomError):
    """Malformed or mismatched payload, illegal transition, owner mismatch."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class ConflictError(StockroomError):
    """Active item with the same content hash already exists for the product."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "DUPLICATE_ITEM", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class NotFoundError(StockroomError):
    """Requested product or item does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConcurrencyError(StockroomError):
    """Row lock not acquired within the configured bound. Safe to retry."""
    def __init__(
        self, message: str, retry_after_ms: int = 250,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, ctx, 409,
        )


# ─── Item / Infrastructure Errors (500-level) ───────────────────

class IntegrityError(StockroomError):
    """Encrypted payload failed authentication (tampered data or wrong key)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "PAYLOAD_INTEGRITY_ERROR", ErrorCategory.INTEGRITY,
            ErrorSeverity.CRITICAL, context, 422,
        )


class ConfigurationError(StockroomError):
    """Missing or malformed configuration (e.g. encryption key)."""
    def __init__(self, message: str, setting: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFIGURATION_ERROR", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.setting = setting


class DatabaseError(StockroomError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
