"""Calendar helpers for the bill history filter.

Bills are stored with UTC timestamps; the shop works in its own local day.
"""
import calendar
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from .errors import ValidationError

FIRST_YEAR = 2020
LAST_YEAR = 2099


def zone(name) -> ZoneInfo:
    return name if isinstance(name, ZoneInfo) else ZoneInfo(name)


def today(tz) -> date:
    return datetime.now(zone(tz)).date()


def to_local(moment: datetime, tz) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone(tz))


def to_utc_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def day_bounds(start: date, end: date, tz):
    """UTC bounds covering ``start`` 00:00 through ``end`` 23:59:59.999999 local."""
    tzinfo = zone(tz)
    lower = datetime.combine(start, time.min, tzinfo=tzinfo)
    upper = datetime.combine(end, time.max, tzinfo=tzinfo)
    return to_utc_naive(lower), to_utc_naive(upper)


def shift_to_year(d: date, year: int) -> date:
    if not FIRST_YEAR <= year <= LAST_YEAR:
        raise ValidationError(f"Year must be between {FIRST_YEAR} and {LAST_YEAR}")
    if (d.month, d.day) == (2, 29) and not calendar.isleap(year):
        return d.replace(year=year, day=28)
    return d.replace(year=year)


def year_options():
    return list(range(FIRST_YEAR, LAST_YEAR + 1))


def parse_date(raw, default: date) -> date:
    if not raw:
        return default
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError:
        raise ValidationError(f"'{raw}' is not a date (YYYY-MM-DD)") from None
