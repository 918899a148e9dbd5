"""
APScheduler setup for appointment reminders.
Runs in a background thread inside the API process.
"""

import asyncio
import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def appointment_reminder_job():
    """Background job that sends 24h / 2h appointment reminders"""
    try:
        from ..services.appointment_service import get_appointment_service
        from ..services.notification_service import get_notification_service
        from ..services.reminder_service import ReminderService

        logger.info(f"[{datetime.now()}] 🔔 Running appointment reminder check...")
        service = ReminderService(get_appointment_service(), get_notification_service())
        result = asyncio.run(service.send_due_reminders())

        if result.get('reminders_sent', 0) > 0:
            logger.info(f"✅ Appointment reminders sent: {result['reminders_sent']} notification(s)")
        else:
            logger.info(f"ℹ️  No reminders due ({result.get('checked', 0)} upcoming appointment(s) checked)")
        if result.get('failed'):
            logger.warning(f"⚠️  {result['failed']} reminder(s) failed")

    except Exception as e:
        logger.error(f"❌ Appointment reminder job failed: {str(e)}", exc_info=True)


def start_scheduler():
    """Start the background scheduler for reminder checks"""
    if not settings.ENABLE_REMINDERS:
        logger.info("Appointment reminders disabled (ENABLE_REMINDERS=false)")
        return
    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    try:
        interval_minutes = settings.REMINDER_INTERVAL_MINUTES
        scheduler.add_job(
            appointment_reminder_job,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id='appointment_reminder_check',
            name='Appointment Reminder Check',
            replace_existing=True,
            misfire_grace_time=60
        )

        scheduler.start()
        logger.info("✅ Scheduler started successfully")
        logger.info(f"   - Appointment reminders: every {interval_minutes} minute(s)")

    except Exception as e:
        logger.error(f"❌ Failed to start scheduler: {str(e)}", exc_info=True)


def stop_scheduler():
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("✅ Scheduler stopped")
