"""
Scheduled job bodies.

Each job receives a Store, does its work, and logs instead of raising so a
failing trigger never takes the scheduler down. Work per user is isolated:
one user's failure does not stop the others.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Dict, List, Optional
import uuid

import structlog
from sqlalchemy import select

from marketos.alerts import AlertRuleEngine
from marketos.analytics import AnalyticsService
from marketos.config import get_settings
from marketos.config.logging import log_context
from marketos.database import Database
from marketos.database.models import Alert, ProductAnalytics, SeoSnapshot, TelegramUser
from marketos.database.store import Store
from marketos.notifications import NotificationDispatcher, Notifier, create_notifier
from marketos.notifications.reports import daily_report, weekly_report
from marketos.serving.cache import analytics_cache, close_redis, init_redis
from marketos.sync import SyncOrchestrator, SyncReport
from marketos.utils import utcnow

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def open_job_store(database: Optional[Database] = None, job: Optional[str] = None) -> AsyncIterator[Store]:
    """
    Store and Redis for one job run.

    A database passed in stays owned by the caller; otherwise one is
    connected here and disposed on exit. Redis is optional, as in the API
    lifespan: without it cache invalidation is a no-op.
    Events logged inside carry the job name.
    """
    owned = database is None
    with log_context(job=job):
        if owned:
            database = Database()
            await database.connect()
        try:
            await init_redis()
        except Exception as e:
            logger.warning("Redis init failed, cached analytics will not be invalidated", error=str(e))
        try:
            yield Store(database)
        finally:
            await close_redis()
            if owned:
                await database.dispose()


async def users_with_active_chats(store: Store) -> List[uuid.UUID]:
    rows = await store.fetch(
        select(TelegramUser.user_id)
        .where(TelegramUser.is_active.is_(True))
        .distinct()
        .order_by(TelegramUser.user_id)
    )
    return [user_id for (user_id,) in rows]


async def run_sync_job(store: Store, orchestrator: Optional[SyncOrchestrator] = None) -> Optional[SyncReport]:
    """Hourly: sync every active integration, then drop cached analytics."""
    try:
        orchestrator = orchestrator or SyncOrchestrator(store)
        report = await orchestrator.sync_all_integrations()
        await analytics_cache.invalidate_all()
        return report
    except Exception as e:
        logger.error("Sync job failed", error=str(e), exc_info=True)
        return None


async def run_alert_cycle_job(
    store: Store,
    notifier: Optional[Notifier] = None,
    engine: Optional[AlertRuleEngine] = None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Every 4 hours: generate rule alerts and push undelivered ones to Telegram."""
    totals = {"users": 0, "created": 0, "sent": 0, "failed": 0}
    try:
        engine = engine or AlertRuleEngine(store)
        dispatcher = NotificationDispatcher(store, notifier or create_notifier())
        users = await users_with_active_chats(store)
    except Exception as e:
        logger.error("Alert cycle failed to start", error=str(e), exc_info=True)
        return totals

    for user_id in users:
        with log_context(user_id=str(user_id)):
            try:
                created = await engine.generate_alerts(user_id, now=now)
                dispatched = await dispatcher.dispatch_pending(user_id, now=now)
            except Exception as e:
                logger.error("Alert cycle failed for user", error=str(e), exc_info=True)
                continue
        totals["users"] += 1
        totals["created"] += sum(created.values())
        totals["sent"] += dispatched.sent
        totals["failed"] += dispatched.failed

    logger.info("Alert cycle completed", **totals)
    return totals


async def run_daily_report_job(
    store: Store,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> int:
    """Daily: today's KPI to every user with an active chat. Returns reports delivered."""
    delivered = 0
    try:
        analytics = AnalyticsService(store)
        dispatcher = NotificationDispatcher(store, notifier or create_notifier())
        users = await users_with_active_chats(store)
    except Exception as e:
        logger.error("Daily report job failed to start", error=str(e), exc_info=True)
        return delivered

    today = (now or utcnow()).date()
    start = datetime.combine(today, datetime.min.time())
    end = datetime.combine(today, datetime.max.time())

    for user_id in users:
        try:
            kpi = await analytics.get_kpi(user_id, start, end)
            if await dispatcher.send_report(user_id, daily_report(kpi)):
                delivered += 1
        except Exception as e:
            logger.error("Daily report failed", user_id=str(user_id), error=str(e), exc_info=True)

    logger.info("Daily reports sent", users=len(users), delivered=delivered)
    return delivered


async def run_weekly_report_job(
    store: Store,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> int:
    """Weekly: 7-day KPI, dead stock count and hidden-loss total."""
    delivered = 0
    try:
        analytics = AnalyticsService(store)
        dispatcher = NotificationDispatcher(store, notifier or create_notifier())
        users = await users_with_active_chats(store)
    except Exception as e:
        logger.error("Weekly report job failed to start", error=str(e), exc_info=True)
        return delivered

    end = now or utcnow()
    start = end - timedelta(days=7)

    for user_id in users:
        try:
            kpi = await analytics.get_kpi(user_id, start, end)
            dead_stock = await analytics.count_dead_stock(user_id)
            losses = await analytics.get_hidden_losses(user_id, start, end)
            text = weekly_report(kpi, dead_stock, sum(item.total_hidden_loss for item in losses))
            if await dispatcher.send_report(user_id, text):
                delivered += 1
        except Exception as e:
            logger.error("Weekly report failed", user_id=str(user_id), error=str(e), exc_info=True)

    logger.info("Weekly reports sent", users=len(users), delivered=delivered)
    return delivered


async def run_retention_job(
    store: Store,
    now: Optional[datetime] = None,
    days: Optional[int] = None,
) -> Dict[str, int]:
    """
    Daily: purge resolved alerts, SEO snapshots and product rollups older
    than the retention period. Unresolved alerts are kept regardless of age.
    """
    days = get_settings().retention.days if days is None else days
    cutoff = (now or utcnow()) - timedelta(days=days)
    deleted = {"alerts": 0, "seo_snapshots": 0, "product_analytics": 0}
    try:
        deleted["alerts"] = await store.delete(Alert, Alert.resolved.is_(True), Alert.created_at < cutoff)
        deleted["seo_snapshots"] = await store.delete(SeoSnapshot, SeoSnapshot.date < cutoff)
        deleted["product_analytics"] = await store.delete(ProductAnalytics, ProductAnalytics.date < cutoff.date())
    except Exception as e:
        logger.error("Retention job failed", error=str(e), exc_info=True)
        return deleted

    logger.info("Retention sweep completed", cutoff=cutoff.isoformat(), **deleted)
    return deleted
