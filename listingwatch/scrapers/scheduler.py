"""APScheduler-based per-tenant monitoring scheduler.

Each tenant gets one cron job whose cadence is derived from its monitoring
frequency. A job runs one monitoring cycle for that tenant; item-level due
checks inside the cycle decide what is actually fetched.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import structlog
from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from listingwatch.config import settings
from listingwatch.core.exceptions import SchedulerConfigError
from listingwatch.services.monitoring_service import CycleStats, MonitoringService
from listingwatch.services.repository import MonitoringRepository

logger = structlog.get_logger(__name__)

INITIAL_CHECK_JOB_ID = "initial_check"


def frequency_to_cron(minutes: int) -> str:
    """Cron expression for a monitoring frequency in minutes.

    Frequencies below 15 minutes are clamped to 15. Sub-hour frequencies
    run every N minutes, sub-day frequencies every N whole hours, anything
    longer once a day at midnight UTC.
    """
    m = max(settings.MIN_MONITORING_FREQUENCY, minutes)
    if m < 60:
        return f"*/{m} * * * *"
    hours = m // 60
    if hours < 24:
        return f"0 */{hours} * * *"
    return "0 0 * * *"


def _job_id(tenant_id: str) -> str:
    return f"monitor_{tenant_id}"


class MonitoringScheduler:
    """Manages one periodic monitoring job per tenant.

    This scheduler:
    - Derives each tenant's cron cadence from its monitoring frequency
    - Replaces a tenant's job atomically when its frequency changes
    - Never runs two cycles of the same tenant at once
    - Handles cycle errors without stopping the scheduler
    """

    def __init__(
        self,
        repository: MonitoringRepository,
        monitoring_service: MonitoringService,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        """Initialize monitoring scheduler.

        Args:
            repository: Source of tenant ids and tenant settings
            monitoring_service: Runs the actual cycles
            scheduler: APScheduler instance (a UTC AsyncIOScheduler if omitted)
        """
        self.repository = repository
        self.monitoring_service = monitoring_service
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="monitoring_scheduler")
        self._job_ids: Dict[str, str] = {}  # Map tenant_id -> job_id

    def start(self) -> None:
        """Start the scheduler.

        Jobs are not added automatically; call load_tenant_jobs() or
        schedule_tenant() to register them.
        """
        if not self.scheduler.running:
            self.scheduler.start()
            self.logger.info("scheduler_started")
        else:
            self.logger.warning("scheduler_already_running")

    def stop(self) -> None:
        """Stop the scheduler and drop every tenant job."""
        for tenant_id in list(self._job_ids):
            self.unschedule_tenant(tenant_id)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("scheduler_stopped")

    def is_running(self) -> bool:
        return self.scheduler.running

    async def load_tenant_jobs(self) -> int:
        """Schedule every known tenant from its stored settings.

        Returns:
            Number of jobs scheduled
        """
        self.logger.info("loading_tenant_jobs")
        jobs_added = 0
        for tenant_id in await self.repository.list_tenant_ids():
            try:
                await self.reschedule_tenant(tenant_id)
                jobs_added += 1
            except SchedulerConfigError as e:
                self.logger.error("tenant_job_rejected", tenant_id=tenant_id, error=e.message)

        self.logger.info("tenant_jobs_loaded", count=jobs_added)
        return jobs_added

    def schedule_tenant(self, tenant_id: str, frequency_minutes: int) -> Job:
        """Create or replace a tenant's monitoring job.

        Args:
            tenant_id: Tenant identifier
            frequency_minutes: Minutes between checks of an item

        Returns:
            APScheduler Job instance

        Raises:
            SchedulerConfigError: If the frequency is not a positive integer
                within the configured maximum
        """
        if (
            isinstance(frequency_minutes, bool)
            or not isinstance(frequency_minutes, int)
            or frequency_minutes <= 0
            or frequency_minutes > settings.MAX_MONITORING_FREQUENCY
        ):
            raise SchedulerConfigError(tenant_id, frequency_minutes)

        # Replace, never stack, a tenant's job
        self.unschedule_tenant(tenant_id)

        cron = frequency_to_cron(frequency_minutes)
        job = self.scheduler.add_job(
            func=self._run_cycle_wrapper,
            trigger=CronTrigger.from_crontab(cron, timezone="UTC"),
            args=[tenant_id],
            id=_job_id(tenant_id),
            name=f"Monitor {tenant_id}",
            replace_existing=True,
            max_instances=1,  # Prevent concurrent cycles of the same tenant
            coalesce=True,
        )
        self._job_ids[tenant_id] = job.id

        next_run = getattr(job, "next_run_time", None)
        self.logger.info(
            "tenant_job_scheduled",
            tenant_id=tenant_id,
            frequency_minutes=frequency_minutes,
            cron=cron,
            next_run=next_run.isoformat() if next_run else None,
        )
        return job

    def unschedule_tenant(self, tenant_id: str) -> bool:
        """Remove a tenant's job.

        Returns:
            True if a job was removed, False if none was registered
        """
        job_id = self._job_ids.pop(tenant_id, None)
        if not job_id:
            return False
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            self.logger.warning("job_not_found", tenant_id=tenant_id, job_id=job_id)
        self.logger.info("tenant_job_removed", tenant_id=tenant_id)
        return True

    async def reschedule_tenant(self, tenant_id: str) -> Job:
        """Reload a tenant's settings and schedule it at its current frequency."""
        tenant_settings = await self.repository.get_tenant_settings(tenant_id)
        return self.schedule_tenant(tenant_id, tenant_settings.effective_frequency())

    async def run_cycle(self, tenant_id: str) -> CycleStats:
        """Run one monitoring cycle for a tenant now."""
        return await self.monitoring_service.run_cycle(tenant_id)

    async def _run_cycle_wrapper(self, tenant_id: str) -> None:
        """Entry point APScheduler calls; never lets an exception escape."""
        try:
            await self.run_cycle(tenant_id)
        except Exception as e:
            self.logger.error(
                "monitoring_job_failed",
                tenant_id=tenant_id,
                error=str(e),
                exc_info=True,
            )

    def schedule_initial_check(self, delay_seconds: Optional[int] = None) -> Job:
        """One-shot cycle over every tenant shortly after startup."""
        if delay_seconds is None:
            delay_seconds = settings.INITIAL_CHECK_DELAY_SECONDS
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        job = self.scheduler.add_job(
            func=self._run_initial_check,
            trigger=DateTrigger(run_date=run_date, timezone="UTC"),
            id=INITIAL_CHECK_JOB_ID,
            name="Initial check for all tenants",
            replace_existing=True,
        )
        self.logger.info("initial_check_scheduled", run_date=run_date.isoformat())
        return job

    async def _run_initial_check(self) -> None:
        try:
            await self.monitoring_service.run_all_tenants()
        except Exception as e:
            self.logger.error("initial_check_failed", error=str(e), exc_info=True)

    def get_jobs_status(self) -> dict:
        """Get status of all scheduled jobs.

        Returns:
            Dict with job information keyed by tenant_id
        """
        jobs = {}
        for tenant_id, job_id in self._job_ids.items():
            job = self.scheduler.get_job(job_id)
            if job:
                next_run = getattr(job, "next_run_time", None)
                jobs[tenant_id] = {
                    "job_id": job_id,
                    "next_run": next_run.isoformat() if next_run else None,
                    "trigger": str(job.trigger),
                }
        return jobs
