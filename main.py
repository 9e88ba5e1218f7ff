# ================================================================
# ITP Tracker — Backend
# Inspection-expiry reminders: scheduler + notification API
# ================================================================
#
# Run:  uvicorn main:app --host 0.0.0.0 --port 3000
#
# Startup builds the delivery channels once and injects them into the
# dispatcher; shutdown stops the triggers, lets an in-flight run finish
# (bounded by SHUTDOWN_TIMEOUT_SECONDS) and only then releases transports.
# ================================================================

import datetime
import logging

from fastapi import FastAPI

from app.itp import (
    NotificationDispatcher,
    ReminderJob,
    ReminderScheduler,
    init_itp_schema,
    register_itp_routes,
)
from app.itp.config import get_config
from app.itp.delivery import EmailChannel, SMSChannel

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("itp.main")


def create_app(dispatcher: NotificationDispatcher = None, scheduler: ReminderScheduler = None) -> FastAPI:
    """Build the FastAPI app. Tests pass their own dispatcher/scheduler."""
    if dispatcher is None:
        dispatcher = NotificationDispatcher(SMSChannel(), EmailChannel())
    if scheduler is None:
        scheduler = ReminderScheduler(ReminderJob(dispatcher))

    itp_app = FastAPI(title="ITP Tracker API")
    itp_app.state.dispatcher = dispatcher
    itp_app.state.scheduler = scheduler

    @itp_app.on_event("startup")
    async def _startup():
        init_itp_schema()
        if scheduler.start():
            logger.info("Cron jobs initialized")
        else:
            logger.info("Cron jobs are disabled")

    @itp_app.on_event("shutdown")
    async def _shutdown():
        logger.info("Starting graceful shutdown...")
        scheduler.stop()
        await scheduler.wait_idle(float(get_config("shutdown_timeout_seconds", 10)))
        dispatcher.sms_channel.close()
        dispatcher.email_channel.close()
        logger.info("Graceful shutdown completed")

    @itp_app.get("/health")
    async def health():
        return {
            "success": True,
            "message": "Server is running",
            "timestamp": datetime.datetime.now().isoformat(),
            "scheduler": scheduler.is_running(),
        }

    register_itp_routes(itp_app, dispatcher, scheduler)
    return itp_app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=3000,
        timeout_graceful_shutdown=int(get_config("shutdown_timeout_seconds", 10)),
    )
