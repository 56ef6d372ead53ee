from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from dormmate.config import settings


APP_TIMEZONE = settings.app_timezone or 'Asia/Kolkata'
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def today(self) -> date:
        return self.now().date()

    def naive_now(self) -> datetime:
        # Columns are stored without tzinfo, in the app timezone.
        return self.now().replace(tzinfo=None)

    def utc_now(self) -> datetime:
        """Naive UTC, matching the ``created_at`` column defaults."""
        return self.now().astimezone(timezone.utc).replace(tzinfo=None)

    def weekday_name(self) -> str:
        return self.now().strftime('%A')


default_time_provider = TimeProvider()
