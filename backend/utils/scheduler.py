"""
Reserveo - Background Scheduler
Runs the periodic jobs: waitlist offer expiry, check-in reminders,
infraction detection, automatic warnings, block expiry, waitlist
cleanup and scheduled group deactivation.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.cron import CronTrigger
from typing import Optional, Dict, Any, Callable, Awaitable
import logging
import time

from database.firebase_db import get_db, FirebaseDB
from utils.helpers import utcnow, local_tz

# Configure logging
logger = logging.getLogger(__name__)


async def _expire_waitlist_offers() -> int:
    # Import here to avoid circular imports
    from services.waitlist_service import get_waitlist_service
    return await get_waitlist_service().expire_offers()


async def _send_checkin_reminders() -> int:
    from services.checkin_service import get_checkin_service
    return await get_checkin_service().send_checkin_reminders()


async def _detect_checkin_infractions() -> int:
    from services.checkin_service import get_checkin_service
    return await get_checkin_service().detect_checkin_infractions()


async def _detect_checkout_infractions() -> int:
    from services.checkin_service import get_checkin_service
    return await get_checkin_service().detect_checkout_infractions()


async def _generate_warnings() -> int:
    from services.checkin_service import get_checkin_service
    return await get_checkin_service().generate_automatic_warnings()


async def _expire_user_blocks() -> int:
    from services.checkin_service import get_checkin_service
    return await get_checkin_service().expire_user_blocks()


async def _cleanup_waitlist() -> int:
    from services.waitlist_service import get_waitlist_service
    result = await get_waitlist_service().cleanup_expired_entries()
    return result["total"]


async def _apply_group_deactivations() -> int:
    from services.admin_service import get_admin_service
    return await get_admin_service().apply_scheduled_deactivations()


# name -> (coroutine, description)
JOBS: Dict[str, tuple] = {
    "expire_waitlist_offers": (_expire_waitlist_offers, "Expire unanswered waitlist offers"),
    "send_checkin_reminders": (_send_checkin_reminders, "Send check-in reminders"),
    "detect_checkin_infractions": (_detect_checkin_infractions, "Detect missed check-ins"),
    "detect_checkout_infractions": (_detect_checkout_infractions, "Detect missed check-outs"),
    "generate_warnings": (_generate_warnings, "Generate warnings and temporary blocks"),
    "expire_user_blocks": (_expire_user_blocks, "Deactivate expired user blocks"),
    "cleanup_waitlist": (_cleanup_waitlist, "Close stale waitlist entries"),
    "apply_group_deactivations": (_apply_group_deactivations, "Apply scheduled group deactivations"),
}


async def run_job(name: str) -> Dict[str, Any]:
    """
    Run one job and record the outcome in cron_logs.

    Raises:
        KeyError: If the job name is unknown
    """
    job: Callable[[], Awaitable[int]] = JOBS[name][0]
    started = time.monotonic()
    result: Dict[str, Any] = {"job_name": name, "started_at": utcnow()}

    try:
        affected = await job()
        result.update(status="success", records_affected=affected or 0, error=None)
        if affected:
            logger.info(f"Job {name}: {affected} record(s) affected")
    except Exception as e:
        logger.error(f"Job {name} failed: {e}", exc_info=True)
        result.update(status="error", records_affected=0, error=str(e))

    result["duration_ms"] = int((time.monotonic() - started) * 1000)
    try:
        await get_db().create_document(FirebaseDB.COLLECTION_CRON_LOGS, dict(result))
    except Exception as e:
        logger.error(f"Could not write cron log for {name}: {e}")
    return result


class ReserveoScheduler:
    """
    Background scheduler for periodic tasks.
    Interval jobs run all day; daily jobs run at fixed local times.
    """

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone=local_tz())
        self._is_running = False

    def _add(self, name: str, trigger):
        self.scheduler.add_job(
            run_job,
            trigger=trigger,
            args=[name],
            id=name,
            name=JOBS[name][1],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def start(self):
        """Start the background scheduler."""
        if self._is_running:
            logger.warning("Scheduler is already running")
            return

        self._add("expire_waitlist_offers", IntervalTrigger(minutes=1))
        self._add("send_checkin_reminders", IntervalTrigger(minutes=5))
        self._add("detect_checkin_infractions", IntervalTrigger(minutes=5))
        self._add("generate_warnings", IntervalTrigger(minutes=15))
        self._add("expire_user_blocks", IntervalTrigger(hours=1))
        self._add("apply_group_deactivations", CronTrigger(hour=0, minute=5))
        self._add("detect_checkout_infractions", CronTrigger(hour=0, minute=30))
        self._add("cleanup_waitlist", CronTrigger(hour=1, minute=0))

        self.scheduler.start()
        self._is_running = True
        logger.info(f"Background scheduler started ({len(JOBS)} jobs)")

    def stop(self):
        """Stop the background scheduler."""
        if not self._is_running:
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Background scheduler stopped")

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._is_running

    def get_jobs(self) -> list:
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self.scheduler.get_jobs()
        ]


# Singleton instance
_scheduler_instance: Optional[ReserveoScheduler] = None


def get_scheduler() -> ReserveoScheduler:
    """Get the scheduler singleton instance."""
    global _scheduler_instance
    if _scheduler_instance is None:
        _scheduler_instance = ReserveoScheduler()
    return _scheduler_instance


def start_scheduler():
    """Start the background scheduler."""
    scheduler = get_scheduler()
    scheduler.start()


def stop_scheduler():
    """Stop the background scheduler."""
    scheduler = get_scheduler()
    scheduler.stop()
