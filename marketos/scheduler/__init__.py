"""
Scheduled jobs
"""
from .jobs import (
    open_job_store,
    run_alert_cycle_job,
    run_daily_report_job,
    run_retention_job,
    run_sync_job,
    run_weekly_report_job,
    users_with_active_chats,
)

__all__ = [
    "open_job_store",
    "run_alert_cycle_job",
    "run_daily_report_job",
    "run_retention_job",
    "run_sync_job",
    "run_weekly_report_job",
    "users_with_active_chats",
]
