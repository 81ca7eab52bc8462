"""
Background Job Scheduler

Runs the daily price ingestion job using APScheduler.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, List
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR
from sqlalchemy import select, desc

from price_tracker.core.config import settings
from price_tracker.core.database import AsyncSessionLocal
from price_tracker.models.job_execution_log import JobExecutionLog
from price_tracker.services.price_ingestion_service import PriceIngestionService
from price_tracker.services.product_repository import ProductRepository

logger = logging.getLogger(__name__)

INGESTION_JOB_ID = "price-ingestion"


class BackgroundScheduler:
    """Manages background job scheduling"""

    def __init__(self, ingestion: PriceIngestionService, session_factory=AsyncSessionLocal):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.ingestion = ingestion
        self.session_factory = session_factory
        self.is_running = False

    async def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler = AsyncIOScheduler(
                timezone='UTC',
                job_defaults={
                    'coalesce': True,  # Combine multiple pending executions into one
                    'max_instances': 1,  # Only one instance of each job at a time
                    'misfire_grace_time': 300  # 5 minutes grace period
                }
            )

            self.scheduler.add_listener(
                self._job_executed_listener,
                EVENT_JOB_EXECUTED
            )
            self.scheduler.add_listener(
                self._job_error_listener,
                EVENT_JOB_ERROR
            )

            self.scheduler.add_job(
                func=self._price_ingestion_job,
                trigger=CronTrigger(
                    hour=settings.INGESTION_CRON_HOUR,
                    minute=settings.INGESTION_CRON_MINUTE
                ),
                id=INGESTION_JOB_ID,
                name='Daily Price Ingestion',
                replace_existing=True
            )

            self.scheduler.start()
            self.is_running = True

            logger.info("Background scheduler started successfully")
            logger.info(f"Scheduled jobs: {[job.id for job in self.scheduler.get_jobs()]}")

        except Exception as e:
            logger.error(f"Failed to start background scheduler: {str(e)}", exc_info=True)
            raise

    async def stop(self):
        """Stop the background scheduler"""
        if not self.is_running or not self.scheduler:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Background scheduler stopped successfully")

        except Exception as e:
            logger.error(f"Error stopping background scheduler: {str(e)}", exc_info=True)

    async def _price_ingestion_job(self, triggered_manually: bool = False):
        """Background job collecting prices from the upstream API"""
        job_start = datetime.now(timezone.utc)
        logger.info("Starting price ingestion background job")

        log_entry = JobExecutionLog(
            job_name=INGESTION_JOB_ID,
            job_id=INGESTION_JOB_ID,
            started_at=job_start,
            triggered_manually=triggered_manually
        )

        async with self.session_factory() as db:
            summary = await self.ingestion.run(ProductRepository(db))

        log_entry.completed_at = datetime.now(timezone.utc)
        log_entry.duration_seconds = summary.duration_seconds
        log_entry.products_processed = summary.total_products
        log_entry.categories_processed = summary.categories
        log_entry.history_purged = summary.purged

        if summary.success:
            log_entry.status = 'success'
            logger.info(
                f"Price ingestion completed successfully: "
                f"{summary.total_products} products, {summary.categories} categories, "
                f"{summary.duration_seconds:.1f}s"
            )
        else:
            log_entry.status = 'error'
            log_entry.error_message = "; ".join(summary.errors[:10])
            logger.error(f"Price ingestion failed: {log_entry.error_message}")

        if summary.errors:
            logger.warning(f"Processing errors: {summary.errors[:10]}")

        await self._save_job_log(log_entry)
        return summary

    def _job_executed_listener(self, event):
        """Listener for successful job executions"""
        logger.info(f"Job '{event.job_id}' executed successfully")

    def _job_error_listener(self, event):
        """Listener for job execution errors"""
        logger.error(
            f"Job '{event.job_id}' failed: {event.exception}",
            exc_info=event.traceback
        )

    def get_job_status(self) -> dict:
        """Get status of all scheduled jobs"""
        if not self.scheduler:
            return {"status": "not_started", "jobs": [], "ingestion_running": self.ingestion.is_running}

        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            })

        return {
            "status": "running" if self.is_running else "stopped",
            "jobs": jobs,
            "ingestion_running": self.ingestion.is_running
        }

    async def trigger_price_ingestion_job(self) -> dict:
        """Manually trigger the price ingestion job"""
        if not self.scheduler:
            return {"success": False, "message": "Scheduler not running"}

        if self.ingestion.is_running:
            return {"success": False, "message": "Price ingestion already running"}

        try:
            self.scheduler.add_job(
                func=self._price_ingestion_job,
                kwargs={"triggered_manually": True},
                id=f"{INGESTION_JOB_ID}-manual",
                name='Manual Price Ingestion',
                replace_existing=True
            )
            logger.info("Manually triggered price ingestion job")
            return {"success": True, "message": "Job triggered successfully"}

        except Exception as e:
            logger.error(f"Error triggering job: {str(e)}")
            return {"success": False, "message": str(e)}

    async def _save_job_log(self, log_entry: JobExecutionLog):
        """Save job execution log to database"""
        try:
            async with self.session_factory() as db:
                db.add(log_entry)
                await db.commit()
                logger.debug(f"Saved job execution log: {log_entry.job_name} - {log_entry.status}")
        except Exception as e:
            logger.error(f"Failed to save job execution log: {str(e)}", exc_info=True)

    async def get_recent_job_logs(self, limit: int = 10) -> List[dict]:
        """Get recent job execution logs"""
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(JobExecutionLog)
                    .order_by(desc(JobExecutionLog.started_at))
                    .limit(limit)
                )
                return [log.execution_summary for log in result.scalars().all()]
        except Exception as e:
            logger.error(f"Failed to get job logs: {str(e)}")
            return []
