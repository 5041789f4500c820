"""Background housekeeping jobs for the escalation subsystem."""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dutyalarm.config import settings
from dutyalarm.escalation.coordinator import EscalationCoordinator
from dutyalarm.utils.logging import get_logger

logger = get_logger(__name__)


class EscalationScheduler:
    """Runs the periodic retention sweep and health log."""

    def __init__(
        self,
        coordinator: EscalationCoordinator,
        sweep_interval_seconds: Optional[int] = None
    ):
        self.coordinator = coordinator
        self.sweep_interval_seconds = (
            sweep_interval_seconds or settings.ALERT_SWEEP_INTERVAL_SECONDS
        )
        self.scheduler = AsyncIOScheduler()
        self.is_running = False

    async def start(self) -> None:
        """Start the escalation scheduler."""
        if self.is_running:
            logger.warning("Escalation scheduler already running")
            return

        self.scheduler.add_job(
            self._expire_stale_alerts,
            trigger=IntervalTrigger(seconds=self.sweep_interval_seconds),
            id="expire_stale_alerts",
            name="Expire Unaccepted Alerts",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30
        )

        self.scheduler.add_job(
            self._health_check,
            trigger=IntervalTrigger(minutes=5),
            id="escalation_health_check",
            name="Escalation Health Check",
            max_instances=1
        )

        self.scheduler.start()
        self.is_running = True

        logger.info("Escalation scheduler started", sweep_interval=self.sweep_interval_seconds)

    async def stop(self) -> None:
        """Stop the escalation scheduler."""
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Escalation scheduler stopped")

    async def _expire_stale_alerts(self) -> None:
        try:
            expired = await self.coordinator.expire_stale_alerts()
            if expired > 0:
                logger.info("Expired unaccepted alerts", count=expired)

        except Exception as e:
            logger.error("Error expiring alerts", error=str(e))

    async def _health_check(self) -> None:
        logger.debug(
            "Escalation health check",
            active_alerts=len(self.coordinator.registry),
            pending_timers=self.coordinator.deadlines.pending_count
        )

    def get_job_status(self) -> dict:
        """Get status of scheduled jobs."""
        if not self.is_running:
            return {"status": "stopped", "jobs": []}

        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            })

        return {
            "status": "running",
            "jobs": jobs
        }

    async def trigger_sweep(self) -> int:
        """Manually run the retention sweep."""
        expired = await self.coordinator.expire_stale_alerts()
        logger.info("Manual alert sweep triggered", count=expired)
        return expired
