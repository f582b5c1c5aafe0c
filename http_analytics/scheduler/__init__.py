"""Scheduler module for probe timers, reports and alert rules."""

from .alert_rules import AlertRules, setup_alert_rules
from .job_scheduler import JobScheduler
from .reports import setup_scheduled_reports

__all__ = ["AlertRules", "JobScheduler", "setup_alert_rules", "setup_scheduled_reports"]
