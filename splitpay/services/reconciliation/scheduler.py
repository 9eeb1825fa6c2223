"""Recurring sync and retention cleanup on APScheduler."""

from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from splitpay.core.config import SYNC_FREQUENCY_HOURS
from splitpay.core.exceptions import ConfigurationError
from splitpay.core.logging import get_logger
from splitpay.services.container import ServiceContainer

logger = get_logger(__name__)

SYNC_JOB_ID = "sales_sync"
CLEANUP_JOB_ID = "sales_cleanup"


def sync_interval_hours(frequency: str) -> int:
    try:
        return SYNC_FREQUENCY_HOURS[frequency]
    except KeyError:
        raise ConfigurationError(
            f"Unknown sync frequency {frequency!r}; "
            f"expected one of {', '.join(SYNC_FREQUENCY_HOURS)}"
        ) from None


class SyncScheduler:
    """Owns the background scheduler that drives ``sync_all``."""

    def __init__(
        self,
        db_factory: Callable[[], Session],
        container: ServiceContainer,
    ) -> None:
        self.db_factory = db_factory
        self.container = container
        self.scheduler = BackgroundScheduler(
            job_defaults={"coalesce": True, "max_instances": 1},
            timezone="UTC",
        )

    def start(self) -> None:
        hours = sync_interval_hours(self.container.config.sync_frequency)
        self.scheduler.add_job(
            self.run_sync,
            "interval",
            hours=hours,
            id=SYNC_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_cleanup,
            "interval",
            hours=24,
            id=CLEANUP_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Sync scheduler started: every %d hour(s)", hours)

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Sync scheduler stopped")

    def run_sync(self) -> None:
        db = self.db_factory()
        try:
            self.container.reconciliation(db).sync_all()
        except Exception:
            logger.exception("Scheduled sync run failed")
        finally:
            db.close()

    def run_cleanup(self) -> None:
        db = self.db_factory()
        try:
            self.container.reconciliation(db).cleanup()
        except Exception:
            logger.exception("Scheduled sales cleanup failed")
        finally:
            db.close()
