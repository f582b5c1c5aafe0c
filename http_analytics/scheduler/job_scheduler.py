"""Timer registry for probe jobs, report crons and housekeeping."""

import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger


logger = structlog.get_logger(__name__)

CRON_FIELDS = ("minute", "hour", "day", "month", "day_of_week")


def parse_cron_expression(cron_expression: str) -> CronTrigger:
    """Build a trigger from "minute hour day month day_of_week".

    ``day_of_week`` follows APScheduler numbering (0 = Monday); names such as
    ``mon`` are unambiguous and preferred.
    """
    parts = cron_expression.split()
    if len(parts) != len(CRON_FIELDS):
        raise ValueError(f"Invalid cron expression: {cron_expression}")
    return CronTrigger(**dict(zip(CRON_FIELDS, parts)))


@dataclass
class ScheduledJob:
    job_id: str
    kind: str  # cron | interval
    description: Optional[str] = None
    expression: Optional[str] = None
    seconds: Optional[float] = None
    added_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class JobScheduler:
    """Owns every timer in the process, backed by APScheduler.

    The registry and APScheduler are updated together: replacing or removing
    a job cancels the old timer before the entry changes, so no timer
    outlives its entry.
    """

    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self.jobs: Dict[str, ScheduledJob] = {}
        self.running = False

    async def start(self):
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.start()
        self.running = True
        logger.info("Job scheduler started", pending_jobs=len(self.jobs))

    async def stop(self):
        if not self.running:
            return

        self.scheduler.remove_all_jobs()
        self.scheduler.shutdown(wait=False)
        self.jobs.clear()
        self.running = False
        logger.info("Job scheduler stopped")

    def has_job(self, job_id: str) -> bool:
        return job_id in self.jobs

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _register(
        self,
        entry: ScheduledJob,
        func: Callable,
        trigger: BaseTrigger,
        args: Optional[tuple],
        kwargs: Optional[Dict[str, Any]],
    ) -> ScheduledJob:
        if entry.job_id in self.jobs:
            logger.info("Replacing existing job", job_id=entry.job_id)
            self.remove_job(entry.job_id)

        # A slow tick never overlaps the next one; missed runs collapse into one.
        self.scheduler.add_job(
            func=func,
            trigger=trigger,
            id=entry.job_id,
            name=entry.description or entry.job_id,
            args=args or (),
            kwargs=kwargs or {},
            coalesce=True,
            max_instances=1,
        )
        self.jobs[entry.job_id] = entry
        return entry

    def add_cron_job(
        self,
        job_id: str,
        func: Callable,
        cron_expression: str,
        args: Optional[tuple] = None,
        kwargs: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> ScheduledJob:
        trigger = parse_cron_expression(cron_expression)
        entry = ScheduledJob(job_id=job_id, kind="cron", description=description, expression=cron_expression)
        self._register(entry, func, trigger, args, kwargs)
        logger.info("Added cron job", job_id=job_id, cron=cron_expression, description=description)
        return entry

    def add_interval_job(
        self,
        job_id: str,
        func: Callable,
        seconds: float,
        args: Optional[tuple] = None,
        kwargs: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> ScheduledJob:
        """Run ``func`` every ``seconds``; the first run is one interval from now."""
        trigger = IntervalTrigger(seconds=seconds)
        entry = ScheduledJob(job_id=job_id, kind="interval", description=description, seconds=float(seconds))
        self._register(entry, func, trigger, args, kwargs)
        logger.info("Added interval job", job_id=job_id, interval_seconds=seconds, description=description)
        return entry

    def remove_job(self, job_id: str) -> bool:
        entry = self.jobs.pop(job_id, None)
        if entry is None:
            logger.debug("No such job to remove", job_id=job_id)
            return False

        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            logger.warning("Job already gone from scheduler", job_id=job_id)
        logger.info("Removed job", job_id=job_id)
        return True

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def _toggle(self, job_id: str, *, pause: bool) -> bool:
        if job_id not in self.jobs:
            logger.warning("Job not found", job_id=job_id)
            return False

        action = self.scheduler.pause_job if pause else self.scheduler.resume_job
        try:
            action(job_id)
        except JobLookupError as e:
            logger.error("Could not change job state", job_id=job_id, pause=pause, error=str(e))
            return False
        logger.info("Paused job" if pause else "Resumed job", job_id=job_id)
        return True

    def pause_job(self, job_id: str) -> bool:
        return self._toggle(job_id, pause=True)

    def resume_job(self, job_id: str) -> bool:
        return self._toggle(job_id, pause=False)

    async def run_job_once(self, job_id: str) -> bool:
        """Run a registered job right now, outside its schedule."""
        scheduler_job = self.scheduler.get_job(job_id) if job_id in self.jobs else None
        if scheduler_job is None:
            logger.warning("Job not found", job_id=job_id)
            return False

        try:
            result = scheduler_job.func(*scheduler_job.args, **scheduler_job.kwargs)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Manual job run failed", job_id=job_id, error=str(e))
            return False

        logger.info("Executed job manually", job_id=job_id)
        return True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        entry = self.jobs.get(job_id)
        scheduler_job = self.scheduler.get_job(job_id) if entry else None
        if scheduler_job is None:
            return None

        next_run = getattr(scheduler_job, "next_run_time", None)
        return {
            "job_id": job_id,
            "name": scheduler_job.name,
            "type": entry.kind,
            "schedule": entry.expression if entry.kind == "cron" else entry.seconds,
            "next_run": next_run.isoformat() if next_run else None,
            "added_at": entry.added_at.isoformat(),
            "description": entry.description,
            "paused": self.running and next_run is None,
        }

    def list_jobs(self) -> List[Dict[str, Any]]:
        return [s for s in (self.get_job_status(j) for j in self.jobs) if s]

    def get_scheduler_status(self) -> Dict[str, Any]:
        upcoming = [t for t in (getattr(j, "next_run_time", None) for j in self.scheduler.get_jobs()) if t]
        next_run = min(upcoming, default=None)
        return {
            "running": self.running,
            "job_count": len(self.jobs),
            "next_run": next_run.isoformat() if next_run else None,
        }
