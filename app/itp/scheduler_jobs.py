# ============================================================================
# ITP Tracker - Scheduler (APScheduler-based)
# ============================================================================
# Two independent cron triggers on the application's event loop:
#   - daily ITP reminder run (default 08:00)
#   - monthly notification cleanup (default 1st @ 00:00)
# Manual runs go through the same ReminderJob.run().
# ============================================================================

import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional, Set

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import get_config, get_timezone, get_local_now, parse_time_input
from .engine import ReminderJob
from .models import NotificationRepository
from .timeutil import months_before

logger = logging.getLogger("itp.scheduler")

REMINDER_JOB_ID = "itp_reminder_daily"
CLEANUP_JOB_ID = "notification_cleanup_monthly"


def cleanup_old_notifications(now: Optional[datetime] = None, months: Optional[int] = None) -> int:
    """Delete ledger rows older than the retention window. Returns the count."""
    now = now or get_local_now()
    months = months if months is not None else int(get_config("retention_months", 6))
    cutoff = months_before(now, months)
    deleted = NotificationRepository.delete_older_than(cutoff)
    logger.info(f"[ITP] Cleanup completed. Deleted {deleted} notifications older than {cutoff:%Y-%m-%d %H:%M}.")
    return deleted


def build_reminder_trigger(tz=None) -> CronTrigger:
    hour, minute = parse_time_input(get_config("reminder_time", "08:00"), (8, 0))
    return CronTrigger(hour=hour, minute=minute, timezone=tz or get_timezone())


def build_cleanup_trigger(tz=None) -> CronTrigger:
    hour, minute = parse_time_input(get_config("cleanup_time", "00:00"), (0, 0))
    day = int(get_config("cleanup_day", 1))
    return CronTrigger(day=day, hour=hour, minute=minute, timezone=tz or get_timezone())


class ReminderScheduler:
    """
    Owns the AsyncIOScheduler and the two recurring ITP jobs.

    The scheduler shares the event loop with the HTTP server, so a running
    reminder batch yields at every pacing sleep and adapter call.
    """

    def __init__(self, job: ReminderJob):
        self.job = job
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._inflight: Set[asyncio.Task] = set()
        self._scheduled_task: Optional[asyncio.Task] = None

    def _init_scheduler(self):
        """Initialize the APScheduler instance."""
        self._scheduler = AsyncIOScheduler(
            timezone=get_timezone(),
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            },
        )
        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    def _on_job_executed(self, event):
        logger.info(f"Job {event.job_id} executed successfully")

    def _on_job_error(self, event):
        logger.error(f"Job {event.job_id} failed: {event.exception}")

    # ------------------------------------------------------------------
    # Lifecycle: start / stop
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Register both jobs and start the scheduler. Must run inside the event loop."""
        if not get_config("cron_enabled", True):
            logger.info("Cron jobs are disabled in configuration")
            return False

        if self._running:
            logger.info("Scheduler already running")
            return True

        if self._scheduler is None:
            self._init_scheduler()

        tz = get_timezone()
        self._scheduler.add_job(
            self._run_scheduled_reminder,
            trigger=build_reminder_trigger(tz),
            id=REMINDER_JOB_ID,
            name="ITP Reminder",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._run_scheduled_cleanup,
            trigger=build_cleanup_trigger(tz),
            id=CLEANUP_JOB_ID,
            name="Notification Cleanup",
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            f"Scheduler started (timezone {tz.key}, reminder lookahead {get_config('itp_reminder_days')} days)"
        )
        for job_id, next_run in self.next_run_times().items():
            logger.info(f"   {job_id} next run: {next_run}")
        return True

    def stop(self) -> bool:
        """Stop both triggers. Runs already started are separate tasks and keep
        going; callers drain them with wait_idle()."""
        if not self._running:
            logger.info("Scheduler already stopped")
            return True

        for job_id in (REMINDER_JOB_ID, CLEANUP_JOB_ID):
            if self._scheduler.get_job(job_id):
                self._scheduler.remove_job(job_id)
                logger.info(f"{job_id} stopped")

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._running = False
        logger.info("Scheduler stopped")
        return True

    def pause_job(self, job_id: str) -> bool:
        if not self._running or not self._scheduler.get_job(job_id):
            return False
        self._scheduler.pause_job(job_id)
        logger.info(f"{job_id} paused")
        return True

    def resume_job(self, job_id: str) -> bool:
        if not self._running or not self._scheduler.get_job(job_id):
            return False
        self._scheduler.resume_job(job_id)
        logger.info(f"{job_id} resumed")
        return True

    def is_running(self) -> bool:
        return self._running and self._scheduler is not None and self._scheduler.running

    def next_run_times(self) -> Dict[str, Optional[str]]:
        if not self._scheduler:
            return {}
        result = {}
        for job in self._scheduler.get_jobs():
            result[job.id] = job.next_run_time.isoformat() if job.next_run_time else None
        return result

    def status(self) -> Dict:
        return {
            "enabled": bool(get_config("cron_enabled", True)),
            "running": self.is_running(),
            "timezone": get_timezone().key,
            "jobState": self.job.state,
            "activeRuns": self.job.active_runs,
            "inFlight": len(self._inflight),
            "nextRuns": self.next_run_times(),
        }

    # ------------------------------------------------------------------
    # Job bodies
    # ------------------------------------------------------------------

    def _spawn_run(self) -> asyncio.Task:
        """Start a reminder run as a task owned by this scheduler, not by the
        APScheduler executor, so shutdown(wait=False) cannot cancel it."""
        task = asyncio.get_running_loop().create_task(self.job.run())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def _on_scheduled_done(self, task: asyncio.Task):
        if task.cancelled():
            logger.error("[ITP] Scheduled reminder run was cancelled")
            return
        if task.exception() is not None:
            logger.error(f"[ITP] Scheduled reminder run crashed: {task.exception()}")
            return
        result = task.result()
        if not result.get("success"):
            logger.error(f"[ITP] Scheduled reminder run reported failure: {result.get('error')}")

    async def _run_scheduled_reminder(self):
        if self._scheduled_task is not None and not self._scheduled_task.done():
            logger.warning("[ITP] Previous scheduled reminder run still in progress, skipping this trigger")
            return
        logger.info("[ITP] Running scheduled ITP reminder job")
        self._scheduled_task = self._spawn_run()
        self._scheduled_task.add_done_callback(self._on_scheduled_done)

    def _run_scheduled_cleanup(self):
        logger.info("[ITP] Running scheduled cleanup job")
        cleanup_old_notifications()

    async def run_now(self) -> Dict:
        """Run the reminder job immediately, bypassing the schedule."""
        logger.info("[ITP] Running ITP reminder job manually")
        # A dropped HTTP request must not cancel the batch
        return await asyncio.shield(self._spawn_run())

    async def wait_idle(self, timeout: float) -> bool:
        """Wait for in-flight reminder runs to finish. False if the deadline hit."""
        pending = {t for t in self._inflight if not t.done() and t is not asyncio.current_task()}
        if not pending:
            return True
        logger.info(f"Waiting up to {timeout}s for {len(pending)} in-flight reminder run(s)")
        done, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.error(f"{len(still_pending)} reminder run(s) still running at shutdown deadline")
            return False
        return True
