"""Reconciliation Scheduler - APScheduler interval jobs for the reconciliation passes.

Invariants:
    - One interval job per pass, max_instances=1 and coalesce=True: a job never
      overlaps itself and missed runs collapse into one
    - Each run opens its own DB session and audit sink
    - A job catches and logs every exception; one failing pass never affects
      the other jobs or the scheduler itself
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockroom.config import Settings, get_settings
from stockroom.infrastructure.audit_log import SqlAuditSink
from stockroom.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

# pass name -> ReconciliationService method
PASS_METHODS: dict[str, str] = {
    "expire": "expire_items",
    "release": "release_stale_reservations",
    "low_stock": "check_low_stock",
    "sync": "sync_stock_counts",
}


class ReconciliationScheduler:
    """Owns the AsyncIOScheduler that drives the periodic passes."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def intervals(self) -> dict[str, int]:
        """Minutes between runs, per pass."""
        return {
            "expire": self.settings.expire_interval_minutes,
            "release": self.settings.release_interval_minutes,
            "low_stock": self.settings.low_stock_interval_minutes,
            "sync": self.settings.stock_sync_interval_minutes,
        }

    def register_jobs(self) -> None:
        for name, minutes in self.intervals().items():
            self.scheduler.add_job(
                self.run_pass,
                "interval",
                minutes=minutes,
                args=[name],
                id=f"inventory_{name}",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

    def start(self) -> None:
        self.register_jobs()
        self.scheduler.start()
        logger.info(
            f"Reconciliation scheduler started: {self.intervals()}",
            extra={"job": "scheduler"},
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reconciliation scheduler stopped", extra={"job": "scheduler"})

    async def run_pass(self, name: str) -> object | None:
        """Job body: fresh session, one pass, every error logged and absorbed."""
        method = PASS_METHODS[name]
        try:
            async with self.session_factory() as db:
                service = ReconciliationService(
                    db, SqlAuditSink(self.session_factory), settings=self.settings,
                )
                return await getattr(service, method)()
        except Exception as e:
            logger.error(
                f"Scheduled pass '{name}' failed: {e}",
                exc_info=True, extra={"job": name},
            )
            return None
