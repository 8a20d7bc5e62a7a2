"""
Prefect Workflow Orchestration - Scheduled Jobs

Cron-triggered flows around marketos.scheduler.jobs:
- hourly marketplace sync
- alert generation and Telegram dispatch every 4 hours
- daily and weekly reports
- nightly retention sweep

Run `python workflows/scheduled_jobs.py` to serve every deployment with the
cron triggers from SchedulerSettings (Europe/Moscow by default).
"""

from typing import Optional

from prefect import flow, get_run_logger, serve, task
from prefect.client.schemas.schedules import CronSchedule

from marketos.config import get_settings
from marketos.config.logging import configure_logging
from marketos.scheduler import jobs

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="sync_all_integrations",
    description="Refresh every active integration from its marketplace",
    retries=2,
    retry_delay_seconds=120,
)
async def sync_all_integrations_task() -> dict:
    logger = get_run_logger()
    async with jobs.open_job_store(job="sync") as store:
        report = await jobs.run_sync_job(store)
    if report is None:
        raise RuntimeError("Sync job failed, see application logs")

    logger.info(f"Sync complete: {report.succeeded} succeeded, {report.failed} failed, {report.skipped} skipped")
    return {
        "succeeded": report.succeeded,
        "failed": report.failed,
        "skipped": report.skipped,
        "results": [r.model_dump(mode="json") for r in report.results],
    }


@task(
    name="alert_cycle",
    description="Generate rule alerts and dispatch undelivered ones",
    retries=1,
    retry_delay_seconds=60,
)
async def alert_cycle_task() -> dict:
    logger = get_run_logger()
    async with jobs.open_job_store(job="alert_cycle") as store:
        totals = await jobs.run_alert_cycle_job(store)
    logger.info(f"Alert cycle: {totals['created']} created, {totals['sent']} sent, {totals['failed']} undelivered")
    return totals


@task(name="daily_report", description="Send today's KPI report", retries=1, retry_delay_seconds=60)
async def daily_report_task() -> int:
    async with jobs.open_job_store(job="daily_report") as store:
        return await jobs.run_daily_report_job(store)


@task(name="weekly_report", description="Send the weekly report", retries=1, retry_delay_seconds=60)
async def weekly_report_task() -> int:
    async with jobs.open_job_store(job="weekly_report") as store:
        return await jobs.run_weekly_report_job(store)


@task(name="retention_sweep", description="Purge expired alerts, SEO snapshots and rollups")
async def retention_task(days: Optional[int] = None) -> dict:
    async with jobs.open_job_store(job="retention") as store:
        return await jobs.run_retention_job(store, days=days)


# =============================================================================
# FLOWS
# =============================================================================

@flow(name="marketplace_sync", description="Hourly marketplace sync")
async def marketplace_sync_flow() -> dict:
    configure_logging()
    return await sync_all_integrations_task()


@flow(name="alert_cycle", description="Alert generation and Telegram dispatch")
async def alert_cycle_flow() -> dict:
    configure_logging()
    return await alert_cycle_task()


@flow(name="daily_report", description="Daily KPI report")
async def daily_report_flow() -> int:
    configure_logging()
    return await daily_report_task()


@flow(name="weekly_report", description="Weekly KPI, dead stock and hidden loss report")
async def weekly_report_flow() -> int:
    configure_logging()
    return await weekly_report_task()


@flow(name="retention_sweep", description="Nightly retention sweep")
async def retention_flow(days: Optional[int] = None) -> dict:
    configure_logging()
    return await retention_task(days)


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

def build_deployments() -> list:
    schedule = settings.scheduler

    def cron(expression: str) -> list:
        return [CronSchedule(cron=expression, timezone=schedule.timezone)]

    return [
        marketplace_sync_flow.to_deployment(name="hourly-sync", schedules=cron(schedule.sync_cron)),
        alert_cycle_flow.to_deployment(name="alert-cycle", schedules=cron(schedule.alerts_cron)),
        daily_report_flow.to_deployment(name="daily-report", schedules=cron(schedule.daily_report_cron)),
        weekly_report_flow.to_deployment(name="weekly-report", schedules=cron(schedule.weekly_report_cron)),
        retention_flow.to_deployment(name="retention-sweep", schedules=cron(schedule.cleanup_cron)),
    ]


if __name__ == "__main__":
    serve(*build_deployments())
