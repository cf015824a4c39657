"""
Scheduler service for background maintenance jobs.

This module provides a background scheduler that periodically flushes the
in-memory hop statistics buffer into the database and prunes data older than
the retention period. It uses APScheduler to manage the jobs.
"""

import logging
import threading
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import RuntimeConfig, get_runtime_config, settings
from ..database import SessionLocal
from ..models import get_setting
from ..tracer.aggregation import (
    FlushSummary,
    HopStatsBuffer,
    flush_hop_statistics,
    get_hop_stats_buffer,
)
from ..tracer.queries import cleanup_older_than

logger = logging.getLogger(__name__)

FLUSH_JOB_ID = "hop_stats_flush"
CLEANUP_JOB_ID = "data_cleanup"


class MonitorScheduler:
    """Background scheduler for hop statistics flushes and data retention."""

    def __init__(
        self,
        buffer: Optional[HopStatsBuffer] = None,
        runtime: Optional[RuntimeConfig] = None,
        flush_interval_seconds: int = settings.flush_interval_seconds,
        flush_deadline_seconds: float = settings.flush_deadline_seconds,
    ):
        """Initialize the scheduler service."""
        self.scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Collapse missed flushes into one
                "max_instances": 1,  # Never overlap two runs of the same job
                "misfire_grace_time": 30,
            },
        )
        self.buffer = buffer if buffer is not None else get_hop_stats_buffer()
        self.runtime = runtime or get_runtime_config()
        self.flush_interval_seconds = flush_interval_seconds
        self.flush_deadline_seconds = flush_deadline_seconds
        self._lock = threading.Lock()
        self._running = False
        logger.info("MonitorScheduler initialized")

    def start(self):
        """Start the scheduler and register the maintenance jobs."""
        with self._lock:
            if self._running:
                logger.warning("Scheduler already running")
                return

            self.scheduler.start()
            self._running = True
            logger.info("Scheduler started")

            self._add_flush_job()
            self._add_cleanup_job()

    def stop(self):
        """Stop the scheduler, wait for running jobs, then flush what is left."""
        with self._lock:
            if not self._running:
                return

            self.scheduler.shutdown(wait=True)
            self._running = False
            logger.info("Scheduler stopped")

        self.flush_now()

    def flush_now(self) -> FlushSummary:
        """Flush the hop statistics buffer immediately.

        Returns:
            FlushSummary of the flush (skipped if one is already running)
        """
        try:
            return flush_hop_statistics(
                self.buffer,
                session_factory=SessionLocal,
                deadline_seconds=self.flush_deadline_seconds,
                runtime=self.runtime,
            )
        except Exception as e:
            logger.error(f"Hop statistics flush failed: {e}")
            import traceback

            logger.error(traceback.format_exc())
            return FlushSummary()

    def _add_flush_job(self):
        """Add the recurring hop statistics flush job."""
        try:
            self.scheduler.add_job(
                func=self.flush_now,
                trigger=IntervalTrigger(seconds=self.flush_interval_seconds, timezone="UTC"),
                id=FLUSH_JOB_ID,
                name="Hop Statistics Flush",
                replace_existing=True,
            )
            logger.info(
                f"Added hop statistics flush job (runs every {self.flush_interval_seconds}s)"
            )
        except Exception as e:
            logger.error(f"Failed to add flush job: {e}")

    def _add_cleanup_job(self):
        """Add daily data cleanup job to remove old events and statistics."""
        try:
            trigger = CronTrigger(hour=3, minute=0, timezone="UTC")  # 3 AM UTC

            self.scheduler.add_job(
                func=self._cleanup_old_data,
                trigger=trigger,
                id=CLEANUP_JOB_ID,
                name="Data Cleanup",
                replace_existing=True,
            )

            logger.info("Added daily data cleanup job (runs at 3 AM UTC)")
        except Exception as e:
            logger.error(f"Failed to add cleanup job: {e}")

    def _cleanup_old_data(self):
        """Remove events and hop statistics older than the retention period."""
        if not self.runtime.persistence_available:
            logger.info("Database unavailable, skipping data cleanup")
            return

        db = SessionLocal()
        try:
            retention_days = int(
                get_setting(db, "data_retention_days", str(settings.data_retention_days))
            )
            logger.info(f"Starting data cleanup for data older than {retention_days} days")

            events_deleted, stats_deleted = cleanup_older_than(db, retention_days)
            logger.info(
                f"Cleaned up {events_deleted} events and {stats_deleted} hop statistics records"
            )
        except Exception as e:
            logger.error(f"Data cleanup failed: {e}")
            db.rollback()
        finally:
            db.close()


# Global scheduler instance
_scheduler_service: Optional[MonitorScheduler] = None


def get_scheduler() -> MonitorScheduler:
    """Get the global scheduler service instance.

    Returns:
        MonitorScheduler instance
    """
    global _scheduler_service
    if _scheduler_service is None:
        _scheduler_service = MonitorScheduler()
    return _scheduler_service
