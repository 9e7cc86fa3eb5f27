import calendar
from datetime import datetime, date, time, timezone, tzinfo

from config import settings


def business_now(tz: tzinfo | None = None) -> datetime:
    """Return the current instant expressed at the deployment's business offset."""
    return datetime.now(tz or settings.business_timezone)


def to_business_time(moment: datetime, tz: tzinfo | None = None) -> datetime:
    """Normalize an instant to the business offset; naive values are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz or settings.business_timezone)


def business_today(tz: tzinfo | None = None) -> date:
    return business_now(tz).date()


def wall_clock(moment: datetime) -> time:
    """Time-of-day of an already-normalized instant, without tzinfo."""
    return moment.time()


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last calendar day of a month."""
    if not 1 <= int(month) <= 12:
        raise ValueError("month must be between 1 and 12")
    last_day = calendar.monthrange(int(year), int(month))[1]
    return date(int(year), int(month), 1), date(int(year), int(month), last_day)
