"""
Monitoring Scheduler

Wires the MeterPoller into APScheduler and exposes the no-argument entry
point used by the scheduler.
"""

import logging
from typing import Optional

from gridwatch.config import settings
from .poller import MeterPoller

logger = logging.getLogger(__name__)

METER_CHECK_JOB_ID = "meter_abnormality_check"

_default_poller: Optional[MeterPoller] = None


def build_poller() -> MeterPoller:
    """Assemble a poller on the configured database and notification providers."""
    from gridwatch.database import get_session_maker
    from gridwatch.escalation.engine import EscalationEngine
    from gridwatch.escalation.repository import SqlNotificationRepository
    from gridwatch.escalation.timers import AsyncioTimerService
    from gridwatch.meters.repository import SqlReadingRepository
    from gridwatch.notifications.notifier import get_notifier

    session_maker = get_session_maker()
    readings = SqlReadingRepository(session_maker)
    engine = EscalationEngine(
        notifications=SqlNotificationRepository(session_maker),
        readings=readings,
        notifier=get_notifier(),
        timers=AsyncioTimerService(),
        alert_timezone=settings.ALERT_TIMEZONE,
    )
    return MeterPoller(readings, engine)


def get_poller() -> MeterPoller:
    global _default_poller
    if _default_poller is None:
        _default_poller = build_poller()
    return _default_poller


async def check_meter_abnormalities() -> dict:
    """
    Run one poll cycle with the default poller.

    Returns {total_meters, meters_with_abnormalities, alerts_sent, timestamp, ...}.
    """
    summary = await get_poller().run_cycle()
    return summary.to_dict()


async def _run_scheduled_cycle(poller: MeterPoller) -> None:
    try:
        await poller.run_cycle()
    except Exception as e:
        logger.error(f"Meter abnormality check failed: {e}")


def setup_apscheduler(scheduler, poller: Optional[MeterPoller] = None, interval_seconds: Optional[int] = None):
    """
    Configure APScheduler with the meter check job.

    Usage:
        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        scheduler = AsyncIOScheduler()
        setup_apscheduler(scheduler)
        scheduler.start()

    Args:
        scheduler: APScheduler instance (AsyncIOScheduler)
        poller: poller to drive; defaults to the configured one
        interval_seconds: tick interval; defaults to POLL_INTERVAL_SECONDS
    """
    poller = poller or get_poller()
    interval = interval_seconds or settings.POLL_INTERVAL_SECONDS

    scheduler.add_job(
        _run_scheduled_cycle,
        "interval",
        seconds=interval,
        args=[poller],
        id=METER_CHECK_JOB_ID,
        name="Meter Abnormality Check",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info(f"Meter abnormality check scheduled every {interval}s")
    return poller
