"""
Cleanup Scheduler - Cron and On-Demand Audit Retention

Runs the retention sweeper on a schedule using APScheduler.

Features:
- Cron-based scheduling (configurable via AUDIT_CLEANUP_CRON, monthly by default)
- RUN_ONCE mode for immediate execution
- Sweep runs in a worker thread so the event loop stays responsive
- Graceful shutdown handling

Usage:
    # Scheduled mode (default)
    python -m apps.cleanup

    # Run once and exit
    RUN_ONCE=true python -m apps.cleanup
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from apps.cleanup.sweeper import RetentionSweeper
from utils.config import settings
from utils.db import init_schema
from utils.logging import setup_logging

logger = logging.getLogger(__name__)

JOB_ID = "audit_cleanup_job"


class CleanupScheduler:
    """
    Scheduler for periodic or on-demand audit log cleanup.

    Handles:
    - APScheduler setup and management
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(self, run_once: bool = False, sweeper: Optional[RetentionSweeper] = None) -> None:
        """
        Initialize scheduler.

        Args:
            run_once: If True, run the cleanup once and exit
            sweeper: Retention sweeper, built on the configured database by default
        """
        self.run_once = run_once
        self.sweeper = sweeper or RetentionSweeper()
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()

        logger.info(
            "CleanupScheduler initialized",
            extra={
                "run_once": run_once,
                "cron_schedule": settings.AUDIT_CLEANUP_CRON,
            },
        )

    async def execute_cleanup(self) -> Optional[int]:
        """
        Run one scheduled sweep.

        The sweeper logs and swallows its own failures, so a bad run never
        stops the schedule.
        """
        try:
            return await asyncio.to_thread(self.sweeper.run_scheduled)
        finally:
            if self.run_once:
                logger.info("RUN_ONCE mode: signaling shutdown")
                self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""

        def signal_handler(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating graceful shutdown")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def start(self) -> None:
        """
        Start scheduler or execute once.

        In scheduled mode, runs continuously until shutdown signal.
        In RUN_ONCE mode, executes immediately and exits.
        """
        self.setup_signal_handlers()

        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            await self.execute_cleanup()
            return

        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()

        trigger = CronTrigger.from_crontab(settings.AUDIT_CLEANUP_CRON)
        self.scheduler.add_job(
            self.execute_cleanup,
            trigger=trigger,
            id=JOB_ID,
            name="Audit Log Retention Cleanup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        logger.info("Scheduler started")

        job = self.scheduler.get_job(JOB_ID)
        next_run = getattr(job, "next_run_time", None)
        next_run_str = str(next_run) if next_run is not None else None

        logger.info(
            "Scheduled audit cleanup job",
            extra={
                "schedule": settings.AUDIT_CLEANUP_CRON,
                "next_run": next_run_str,
            },
        )
        logger.info("Waiting for jobs...")

        await self.shutdown_event.wait()

        logger.info("Shutting down scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")


async def main() -> None:
    """Main entry point for scheduler."""
    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)
    init_schema()

    run_once = os.getenv("RUN_ONCE", "false").lower() in ("true", "1", "yes")

    scheduler = CleanupScheduler(run_once=run_once)

    try:
        await scheduler.start()
    except Exception as e:
        logger.error("Scheduler failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
