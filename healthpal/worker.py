"""
ARQ Background Worker
Sends appointment reminders and prunes old notifications
"""

import logging
import os
from datetime import datetime, timedelta

from arq.cron import cron

from . import models  # noqa: F401 - register models before any query
from .database import SessionLocal
from .domain.notifications.service import NotificationService, ReminderType
from .models import Notification
from .reminders import get_redis_settings
from .websocket.relay import RedisPublisher

logger = logging.getLogger(__name__)

NOTIFICATION_RETENTION_DAYS = int(os.getenv("NOTIFICATION_RETENTION_DAYS", "30"))


async def send_appointment_reminder_task(ctx, appointment_id: str, reminder_type: str):
    """
    Background task to remind a patient of an upcoming appointment

    Args:
        ctx: ARQ context
        appointment_id: Appointment to remind about
        reminder_type: APPOINTMENT_24H | APPOINTMENT_1H | APPOINTMENT_15M
    """
    logger.info(f"⏰ Reminder {reminder_type} for appointment {appointment_id}")
    db = SessionLocal()
    try:
        dispatch = await NotificationService(db, ctx.get("publisher")).send_appointment_reminder(
            appointment_id, ReminderType(reminder_type)
        )
        if not dispatch:
            return {"sent": False}
        return {"sent": True, "delivery": dispatch.result.value}
    finally:
        db.close()


async def cleanup_old_notifications_task(ctx):
    """Daily cron job deleting read notifications past the retention window (unread ones are kept)"""
    cutoff = datetime.utcnow() - timedelta(days=NOTIFICATION_RETENTION_DAYS)
    db = SessionLocal()
    try:
        deleted = (
            db.query(Notification)
            .filter(Notification.created_at < cutoff, Notification.is_read.is_(True))
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info(f"🧹 Deleted {deleted} read notifications older than {NOTIFICATION_RETENTION_DAYS} days")
        return {"deleted": deleted}
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Notification cleanup failed: {e}")
        raise
    finally:
        db.close()


async def startup(ctx):
    """Socket events from this process reach users through the API process relay"""
    ctx["publisher"] = RedisPublisher()
    logger.info("🚀 Worker started, real-time events go through Redis pub/sub")


async def shutdown(ctx):
    publisher = ctx.get("publisher")
    if publisher:
        await publisher.close()


class WorkerSettings:
    """ARQ Worker Settings"""

    functions = [send_appointment_reminder_task, cleanup_old_notifications_task]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()

    max_jobs = int(os.getenv("ARQ_MAX_JOBS", "20"))
    job_timeout = int(os.getenv("ARQ_JOB_TIMEOUT", "60"))
    keep_result = int(os.getenv("ARQ_KEEP_RESULT", "3600"))
    health_check_interval = 60
    max_tries = 3

    cron_jobs = [cron(cleanup_old_notifications_task, hour=0, minute=0)]
