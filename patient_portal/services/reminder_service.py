"""
Appointment reminders: one notification 24 hours before and one 2 hours before
each upcoming appointment, each sent once (tracked by reminders.sent24h / sent2h).
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import logging

from ..core.config import settings
from ..models.database_models import Appointment

logger = logging.getLogger(__name__)

# (flag, window before the start)
REMINDER_WINDOWS = [
    ('sent2h', timedelta(hours=2)),
    ('sent24h', timedelta(hours=24)),
]


def appointment_start(appointment: Appointment, tz_offset: Optional[int] = None) -> Optional[datetime]:
    """
    Start time from MM/DD/YYYY + 'hh:mm AM' in hospital wall-clock time
    (UTC + tz_offset hours, default settings.TZ_OFFSET). None if either part is
    unparseable.
    """
    details = appointment.appointment_details
    try:
        start = datetime.strptime(f"{details.date} {details.time_slot}", "%m/%d/%Y %I:%M %p")
    except ValueError:
        return None
    if tz_offset is None:
        tz_offset = settings.TZ_OFFSET
    return start.replace(tzinfo=timezone(timedelta(hours=tz_offset)))


def due_reminder(appointment: Appointment, now: datetime, tz_offset: Optional[int] = None) -> Optional[str]:
    """The reminder flag to send now, or None."""
    start = appointment_start(appointment, tz_offset)
    if start is None or start <= now:
        return None

    reminders = appointment.reminders
    sent = {'sent24h': reminders.sent_24h, 'sent2h': reminders.sent_2h}
    for flag, window in REMINDER_WINDOWS:
        if start - now <= window and not sent[flag]:
            return flag
    return None


class ReminderService:
    def __init__(self, appointment_service, notification_service, tz_offset: Optional[int] = None):
        self.appointments = appointment_service
        self.notifications = notification_service
        self.tz_offset = tz_offset

    async def send_due_reminders(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.now(timezone.utc)
        upcoming = await self.appointments.list_all_upcoming()

        sent = 0
        failed = 0
        for user_id, appointment, flag in collect_due(upcoming, now, self.tz_offset):
            try:
                await self._send(user_id, appointment, flag)
                sent += 1
            except Exception as e:
                failed += 1
                logger.error(f"Reminder {flag} for appointment {appointment.id} failed: {e}")

        return {'checked': len(upcoming), 'reminders_sent': sent, 'failed': failed}

    async def _send(self, user_id: str, appointment: Appointment, flag: str):
        details = appointment.appointment_details
        lead = "tomorrow" if flag == 'sent24h' else "in about 2 hours"
        await self.notifications.create_notification(
            user_id,
            title="Appointment reminder",
            message=f"Your appointment is {lead}: {details.date} at {details.time_slot}, {details.location}.",
            notification_type="appointment_reminder",
            data={'appointmentId': appointment.id, 'reminder': flag},
            priority="high" if flag == 'sent2h' else "normal",
        )
        # A 2h reminder also covers the 24h one
        flags = ['sent24h', 'sent2h'] if flag == 'sent2h' else [flag]
        await self.appointments.mark_reminder_sent(user_id, appointment.id, *flags)


def collect_due(entries: List[dict], now: datetime, tz_offset: Optional[int] = None) -> List[tuple]:
    """(user_id, appointment, flag) for every reminder due at `now`."""
    due = []
    for entry in entries:
        flag = due_reminder(entry['appointment'], now, tz_offset)
        if flag:
            due.append((entry['user_id'], entry['appointment'], flag))
    return due
