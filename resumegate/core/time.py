"""Time helpers shared by the accounting and subscription code."""

from datetime import UTC, date, datetime, timedelta
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in database columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def local_now() -> datetime:
    """Timezone-aware wall-clock time in the server's local zone."""
    return datetime.now().astimezone()


def day_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")


def month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


def month_start(moment: datetime) -> date:
    return moment.date().replace(day=1)


def seconds_until_midnight(moment: datetime) -> int:
    """Seconds left until the next local midnight, never less than 1."""
    tomorrow = (moment + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max(1, int((tomorrow - moment).total_seconds()))


def seconds_until_month_end(moment: datetime) -> int:
    """Seconds left until 00:00 on the first of next month, never less than 1."""
    if moment.month == 12:
        boundary = moment.replace(year=moment.year + 1, month=1, day=1)
    else:
        boundary = moment.replace(month=moment.month + 1, day=1)
    boundary = boundary.replace(hour=0, minute=0, second=0, microsecond=0)
    return max(1, int((boundary - moment).total_seconds()))


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day to the target month's length."""
    total = moment.month - 1 + months
    year = moment.year + total // 12
    month = total % 12 + 1
    if month == 12:
        next_first = date(year + 1, 1, 1)
    else:
        next_first = date(year, month + 1, 1)
    last_day = (next_first - timedelta(days=1)).day
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))
