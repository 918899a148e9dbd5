"""
Per-day counters at analytics/dailyStats/{YYYY-MM-DD}.

Counters are bumped from inside user-facing workflows, so a failure here is
logged and never propagated.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from ..database.gateway import get_gateway
from ..database.paths import path_for
from ..models.database_models import DailyStats

logger = logging.getLogger(__name__)

# counter name -> path inside the day's stats node
COUNTERS = {
    'appointments_total': ('appointments', 'total'),
    'appointments_completed': ('appointments', 'completed'),
    'appointments_cancelled': ('appointments', 'cancelled'),
    'appointments_no_show': ('appointments', 'noShow'),
    'chats_total': ('chatSupport', 'totalChats'),
    'chats_resolved': ('chatSupport', 'resolved'),
    'chats_escalated': ('chatSupport', 'escalated'),
    'user_registrations': ('userRegistrations',),
    'prescriptions_uploaded': ('prescriptionsUploaded',),
}


def today_key(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime('%Y-%m-%d')


def _increment(current: Any, keys: tuple, amount: int) -> Dict[str, Any]:
    node = dict(current) if isinstance(current, dict) else DailyStats().to_store()
    target = node
    for key in keys[:-1]:
        child = target.get(key)
        target[key] = dict(child) if isinstance(child, dict) else {}
        target = target[key]
    target[keys[-1]] = (target.get(keys[-1]) or 0) + amount
    return node


class AnalyticsService:
    def __init__(self, gateway=None):
        self.db = gateway or get_gateway()

    async def increment(self, counter: str, amount: int = 1, day: Optional[str] = None) -> bool:
        """Atomically bump one daily counter. Returns False (and logs) on failure."""
        keys = COUNTERS.get(counter)
        if keys is None:
            logger.warning(f"[Analytics] Unknown counter '{counter}'")
            return False

        day = day or today_key()
        try:
            await self.db.transaction(
                path_for('daily_stats', date=day),
                lambda current: _increment(current, keys, amount)
            )
            return True
        except Exception as e:
            logger.warning(f"[Analytics] Could not bump {counter} for {day}: {e}")
            return False

    async def get_daily_stats(self, day: Optional[str] = None) -> DailyStats:
        data = await self.db.read(path_for('daily_stats', date=day or today_key()))
        return DailyStats.model_validate(data or {})


# Singleton instance
_analytics_service = None

def get_analytics_service() -> AnalyticsService:
    global _analytics_service
    if _analytics_service is None:
        _analytics_service = AnalyticsService()
    return _analytics_service
