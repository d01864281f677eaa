"""Exchange-local wall clock.

All pipeline timestamps are naive datetimes in the exchange timezone so that
trading-hours checks and "today" boundaries agree with what is stored.
"""

from datetime import datetime, time
from zoneinfo import ZoneInfo

from alertbridge.core.config import settings


def now() -> datetime:
    """Current exchange-local time without tzinfo."""
    return datetime.now(ZoneInfo(settings.trading.timezone)).replace(tzinfo=None)


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string into a ``time``."""
    hour, minute = value.split(":")
    return time(int(hour), int(minute))
