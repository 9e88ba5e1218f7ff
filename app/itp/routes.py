"""
ITP Tracker — API Routes

Operator-facing endpoints for the reminder engine: run now, test send,
retry, ledger listing and scheduler status.
"""
import asyncio

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .delivery import DeliveryError
from .dispatcher import NotificationDispatcher
from .models import ClientRepository, NotificationRepository, CHANNELS, CHANNEL_SMS
from .scheduler_jobs import ReminderScheduler


def register_itp_routes(app: FastAPI, dispatcher: NotificationDispatcher, scheduler: ReminderScheduler):
    """Register all ITP reminder endpoints."""

    @app.post("/api/itp/run")
    async def api_run_reminders(request: Request):
        return await scheduler.run_now()

    @app.get("/api/itp/scheduler")
    async def api_scheduler_status(request: Request):
        return {"success": True, "data": scheduler.status()}

    @app.post("/api/notifications/test")
    async def api_test_notification(request: Request):
        data = await request.json()
        client_id = data.get("clientId")
        kind = (data.get("type") or "").upper()

        if kind not in CHANNELS + ("BOTH",):
            return JSONResponse(
                {"success": False, "message": "Invalid notification type. Use: SMS, EMAIL, or BOTH"},
                status_code=400,
            )

        client = ClientRepository.get_by_id(client_id) if client_id else None
        if client is None:
            return JSONResponse({"success": False, "message": "Client not found"}, status_code=404)

        if kind == "BOTH":
            result = {}
            for channel in CHANNELS:
                result[channel.lower()] = await dispatcher.dispatch_single(client.id, channel)
            ok = any(r["success"] for r in result.values())
        else:
            result = await dispatcher.dispatch_single(client.id, kind)
            ok = result["success"]

        return {
            "success": ok,
            "message": "Test notification sent" if ok else "Test notification failed",
            "data": result,
        }

    @app.post("/api/notifications/{notification_id}/retry")
    async def api_retry_notification(notification_id: int, request: Request):
        notification = NotificationRepository.get_by_id(notification_id)
        if notification is None:
            return JSONResponse({"success": False, "message": "Notification not found"}, status_code=404)

        result = await dispatcher.dispatch_single(notification.client_id, notification.channel)
        return {
            "success": result["success"],
            "message": "Notification resent" if result["success"] else "Notification retry failed",
            "data": result,
        }

    @app.get("/api/notifications/{notification_id}/delivery-status")
    async def api_delivery_status(notification_id: int, request: Request):
        notification = await asyncio.to_thread(NotificationRepository.get_by_id, notification_id)
        if notification is None:
            return JSONResponse({"success": False, "message": "Notification not found"}, status_code=404)
        if notification.channel != CHANNEL_SMS or not notification.provider_id:
            return JSONResponse(
                {"success": False, "message": "Delivery status is only available for sent SMS notifications"},
                status_code=400,
            )

        try:
            status = await asyncio.to_thread(dispatcher.sms_channel.check_status, notification.provider_id)
        except DeliveryError as e:
            return JSONResponse({"success": False, "message": str(e)}, status_code=502)
        return {"success": True, "data": status}

    @app.get("/api/notifications/stats")
    async def api_notification_stats(request: Request):
        stats = NotificationRepository.stats()
        stats["recent"] = NotificationRepository.get_recent(limit=5)["items"]
        return {"success": True, "data": stats}

    @app.get("/api/notifications/client/{client_id}")
    async def api_client_notifications(client_id: str, request: Request):
        rows = NotificationRepository.get_for_client(client_id)
        return {"success": True, "data": [n.to_dict() for n in rows]}

    @app.get("/api/notifications")
    async def api_list_notifications(request: Request, page: int = 1, limit: int = 20,
                                     channel: str = "", status: str = "", clientId: str = ""):
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        listing = NotificationRepository.get_recent(
            limit=limit,
            offset=(page - 1) * limit,
            channel=channel.upper() or None,
            status=status or None,
            client_id=clientId or None,
        )
        total = listing["total"]
        return {
            "success": True,
            "data": {
                "notifications": listing["items"],
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "totalPages": (total + limit - 1) // limit,
                },
            },
        }
