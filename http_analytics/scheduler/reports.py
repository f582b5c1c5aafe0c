"""Calendar-scheduled digests and the hourly agent health check."""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

import structlog

from ..config import ReportScheduleConfig
from .job_scheduler import JobScheduler

if TYPE_CHECKING:
    from ..agent.agent import HTTPAnalyticsAgent

logger = structlog.get_logger(__name__)

REPORT_WINDOWS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}


async def run_scheduled_report(agent: "HTTPAnalyticsAgent", period: str) -> Optional[str]:
    """Generate one digest over the trailing window for ``period``.

    Failures are logged and never raised; the next occurrence runs as usual.
    """
    end = datetime.now(timezone.utc)
    start = end - REPORT_WINDOWS[period]
    logger.info("Generating scheduled AI report", period=period)
    try:
        report = await agent.generate_report(start, end)
    except Exception as e:
        logger.error("Error generating scheduled report", period=period, error=str(e))
        return None

    logger.info("Scheduled report generated", period=period, report=report)
    return report


async def run_health_check(agent: "HTTPAnalyticsAgent") -> bool:
    # Must stay a coroutine: APScheduler runs plain functions in a worker thread.
    running = bool(agent.is_running)
    logger.info("Agent health check", endpoints_monitored=len(agent.targets), is_running=running)
    if not running:
        logger.warning("AI agent is not running")
    return running


def setup_scheduled_reports(
    agent: "HTTPAnalyticsAgent",
    scheduler: JobScheduler,
    config: ReportScheduleConfig,
) -> list[str]:
    """Register the report and health-check jobs. Returns the job ids."""
    if not config.enabled:
        logger.info("Scheduled reports disabled")
        return []

    crons = {
        "daily": config.daily_cron,
        "weekly": config.weekly_cron,
        "monthly": config.monthly_cron,
    }
    job_ids: list[str] = []
    for period, cron in crons.items():
        job_id = f"report:{period}"
        scheduler.add_cron_job(
            job_id=job_id,
            func=run_scheduled_report,
            cron_expression=cron,
            args=(agent, period),
            description=f"{period.capitalize()} AI report",
        )
        job_ids.append(job_id)

    scheduler.add_cron_job(
        job_id="health-check",
        func=run_health_check,
        cron_expression=config.health_check_cron,
        args=(agent,),
        description="Hourly agent health check",
    )
    job_ids.append("health-check")

    logger.info("Scheduled reports configured", **crons, health_check=config.health_check_cron)
    return job_ids
