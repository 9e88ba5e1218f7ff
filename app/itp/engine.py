"""
ITP Tracker — Reminder Engine

Eligibility selection, the same-day dedup guard and the batch job that
sends reminders to every eligible client.
"""
import asyncio
import itertools
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .config import get_config, get_local_now
from .models import Client, ClientRepository, NotificationRepository
from .timeutil import start_of_day, end_of_day, add_days, days_remaining

logger = logging.getLogger("itp.engine")

STATE_IDLE = "idle"
STATE_SELECTING = "selecting"
STATE_PROCESSING = "processing"
STATE_SUMMARIZING = "summarizing"

OUTCOME_SUCCESS = "success"
OUTCOME_FAILED = "failed"
OUTCOME_ERROR = "error"
OUTCOME_SKIPPED = "skipped"


def find_eligible_clients(today: datetime, lookahead_days: int) -> List[Client]:
    """
    Active clients whose ITP expires between the start of today and the end
    of today + lookahead_days (both inclusive), most urgent first.
    """
    window_start = start_of_day(today)
    window_end = end_of_day(add_days(today, lookahead_days))
    return ClientRepository.find_active_expiring_between(window_start, window_end)


def already_notified_today(client_id: str, today: datetime) -> bool:
    """True if any channel already delivered successfully to this client today."""
    row = NotificationRepository.find_first_sent_between(
        client_id, start_of_day(today), end_of_day(today)
    )
    return row is not None


class ReminderJob:
    """
    Batch orchestrator for one reminder run.

    idle -> selecting -> processing -> summarizing -> idle, tracked per run
    so overlapping runs (manual + scheduled) report their own progress.
    run() never raises: unexpected failures come back as {"success": False, ...}.
    """

    def __init__(self, dispatcher, clock: Callable[[], datetime] = None,
                 lookahead_days: Optional[int] = None, pacing_seconds: Optional[float] = None,
                 sleep: Callable = asyncio.sleep):
        self.dispatcher = dispatcher
        self.clock = clock or get_local_now
        self._lookahead_days = lookahead_days
        self._pacing_seconds = pacing_seconds
        self._sleep = sleep
        # run id -> {"state": ..., "position": ...}; overlapping runs each get an entry
        self._runs: Dict[int, Dict] = {}
        self._run_ids = itertools.count(1)

    @property
    def state(self) -> str:
        """State of the most recently started run still in progress."""
        if not self._runs:
            return STATE_IDLE
        return self._runs[max(self._runs)]["state"]

    @property
    def position(self) -> Optional[int]:
        if not self._runs:
            return None
        return self._runs[max(self._runs)]["position"]

    @property
    def active_runs(self) -> int:
        return len(self._runs)

    @property
    def lookahead_days(self) -> int:
        if self._lookahead_days is not None:
            return self._lookahead_days
        return int(get_config("itp_reminder_days", 7))

    @property
    def pacing_seconds(self) -> float:
        if self._pacing_seconds is not None:
            return self._pacing_seconds
        return float(get_config("reminder_pacing_seconds", 0.5))

    async def run(self) -> Dict:
        # One "now" for the whole run so day boundaries don't move mid-batch
        run_started = self.clock()
        run_id = next(self._run_ids)
        progress = self._runs[run_id] = {"state": STATE_SELECTING, "position": None}
        logger.info(f"[ITP] Starting reminder job at {run_started.isoformat()}")

        try:
            lookahead = self.lookahead_days
            clients = await asyncio.to_thread(find_eligible_clients, run_started, lookahead)
            logger.info(f"[ITP] Found {len(clients)} clients with ITP expiring in the next {lookahead} days")

            if not clients:
                logger.info("[ITP] No clients found. Job completed.")
                return {
                    "success": True,
                    "message": "No clients with expiring ITP",
                    "count": 0,
                    "startedAt": run_started.isoformat(),
                }

            progress["state"] = STATE_PROCESSING
            results = []
            counts = {OUTCOME_SUCCESS: 0, OUTCOME_FAILED: 0, OUTCOME_ERROR: 0, OUTCOME_SKIPPED: 0}

            for index, client in enumerate(clients):
                progress["position"] = index
                result = await self._process_client(client, run_started)
                counts[result["status"]] += 1
                results.append(result)

                if result["status"] != OUTCOME_SKIPPED and index < len(clients) - 1:
                    await self._sleep(self.pacing_seconds)

            progress["state"] = STATE_SUMMARIZING
            summary = {
                "totalClients": len(clients),
                "successCount": counts[OUTCOME_SUCCESS],
                "failureCount": counts[OUTCOME_FAILED] + counts[OUTCOME_ERROR],
                "errorCount": counts[OUTCOME_ERROR],
                "skipCount": counts[OUTCOME_SKIPPED],
            }
            logger.info(
                "[ITP] Reminder job summary: total=%d success=%d failed=%d errors=%d skipped=%d",
                summary["totalClients"], summary["successCount"], summary["failureCount"],
                summary["errorCount"], summary["skipCount"],
            )
            return {
                "success": True,
                "message": "ITP reminder job completed",
                "summary": summary,
                "results": results,
                "startedAt": run_started.isoformat(),
                "finishedAt": self.clock().isoformat(),
            }

        except Exception as e:
            logger.error(f"[ITP] Reminder job failed: {e}", exc_info=True)
            return {
                "success": False,
                "message": "ITP reminder job failed",
                "error": str(e),
                "startedAt": run_started.isoformat(),
            }
        finally:
            self._runs.pop(run_id, None)

    async def _process_client(self, client: Client, run_started: datetime) -> Dict:
        """Dedup, dispatch and classify one client. Storage errors in the
        dedup lookup propagate and abort the run."""
        base = {"clientId": client.id, "client": client.name, "licensePlate": client.license_plate}

        if await asyncio.to_thread(already_notified_today, client.id, run_started):
            logger.warning(f"[ITP] Skipping {client.name} - Already notified today")
            return {**base, "status": OUTCOME_SKIPPED, "reason": "Already notified today"}

        try:
            days = days_remaining(client.itp_expiration, run_started)
            logger.info(f"[ITP] Sending notifications to {client.name} ({client.license_plate}) - {days} days remaining")
            outcomes = await self.dispatcher.dispatch_both(client, days)
        except Exception as e:
            logger.error(f"[ITP] Error processing client {client.name}: {e}", exc_info=True)
            return {**base, "status": OUTCOME_ERROR, "error": str(e)}

        sms, email = outcomes["sms"], outcomes["email"]
        if sms.success or email.success:
            logger.info(f"[ITP] Successfully sent notifications to {client.name}")
            return {
                **base,
                "status": OUTCOME_SUCCESS,
                "daysRemaining": days,
                "sms": "sent" if sms.success else "failed",
                "email": "sent" if email.success else "failed",
            }

        logger.error(f"[ITP] Failed to send notifications to {client.name}")
        return {
            **base,
            "status": OUTCOME_FAILED,
            "daysRemaining": days,
            "sms": "failed",
            "email": "failed",
            "errors": {"sms": sms.error, "email": email.error},
        }
