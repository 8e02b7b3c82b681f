"""
Period Service - date ranges and period buckets

Ledger timestamps are stored as naive UTC. Reports speak in calendar days of
the configured reporting timezone, so every range is built from local dates
and converted to a half-open UTC interval [start, end).
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, Iterable, List, Optional

from dateutil import tz
from dateutil.relativedelta import relativedelta

from balance_service.core.config import settings
from balance_service.core.errors import ValidationError


class Granularity(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Trailing windows in days, today included
PERIOD_PRESETS = {
    "today": 1,
    "day": 1,
    "daily": 1,
    "week": 7,
    "weekly": 7,
    "month": 30,
    "monthly": 30,
    "year": 365,
    "yearly": 365,
}

_STEPS = {
    Granularity.DAILY: relativedelta(days=1),
    Granularity.WEEKLY: relativedelta(weeks=1),
    Granularity.MONTHLY: relativedelta(months=1),
}


def report_zone(name: str = None):
    zone = tz.gettz(name or settings.REPORT_TIMEZONE)
    if zone is None:
        raise ValidationError(f"Unknown timezone: {name or settings.REPORT_TIMEZONE}")
    return zone


def to_utc_naive(moment: datetime) -> datetime:
    """Normalize an aware or naive-UTC datetime to naive UTC"""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(tz.UTC).replace(tzinfo=None)


def local_midnight_utc(day: date, zone) -> datetime:
    """UTC instant of local midnight starting `day`"""
    local = datetime.combine(day, time.min).replace(tzinfo=zone)
    return local.astimezone(tz.UTC).replace(tzinfo=None)


def local_date(moment: datetime, zone) -> date:
    """Calendar day of a naive-UTC instant in the reporting timezone"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz.UTC)
    return moment.astimezone(zone).date()


def local_today(zone, now: datetime = None) -> date:
    return local_date(now or datetime.utcnow(), zone)


@dataclass(frozen=True)
class DateRange:
    """Half-open UTC interval; None on either side means unbounded"""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    first_day: Optional[date] = None
    last_day: Optional[date] = None

    @property
    def is_unbounded(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, moment: datetime) -> bool:
        moment = to_utc_naive(moment)
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True

    def as_dict(self) -> dict:
        return {
            "startDate": self.first_day.isoformat() if self.first_day else None,
            "endDate": self.last_day.isoformat() if self.last_day else None,
        }


ALL_TIME = DateRange()


def days_range(start_day: date, end_day: date, zone=None) -> DateRange:
    """Inclusive local days -> [start 00:00, end+1 00:00) in UTC"""
    zone = zone or report_zone()
    if end_day < start_day:
        raise ValidationError("endDate must not be before startDate")
    return DateRange(
        start=local_midnight_utc(start_day, zone),
        end=local_midnight_utc(end_day + timedelta(days=1), zone),
        first_day=start_day,
        last_day=end_day,
    )


def day_range(day: date, zone=None) -> DateRange:
    """Single-date mode is range mode with start == end"""
    return days_range(day, day, zone)


def preset_range(period: str, zone=None, today: date = None) -> DateRange:
    zone = zone or report_zone()
    key = (period or "").strip().lower()
    if key not in PERIOD_PRESETS:
        raise ValidationError(
            f"Unknown period '{period}'. Expected one of: {', '.join(sorted(PERIOD_PRESETS))}"
        )
    today = today or local_today(zone)
    return days_range(today - timedelta(days=PERIOD_PRESETS[key] - 1), today, zone)


def resolve_range(
    day: date = None,
    start_date: date = None,
    end_date: date = None,
    period: str = None,
    zone=None,
    today: date = None,
    default: str = "all",
) -> DateRange:
    """
    Translate report query parameters into a DateRange.

    Precedence: explicit date, then startDate/endDate, then period preset,
    then the endpoint default ("all" for all time, "today" for the current day).
    A lone startDate runs to today; a lone endDate is bounded on the right only.
    """
    zone = zone or report_zone()
    if day is not None:
        return day_range(day, zone)
    if start_date is not None or end_date is not None:
        if start_date is None:
            return DateRange(
                end=local_midnight_utc(end_date + timedelta(days=1), zone),
                last_day=end_date,
            )
        return days_range(start_date, end_date or today or local_today(zone), zone)
    if period:
        return preset_range(period, zone, today)
    if default == "today":
        return day_range(today or local_today(zone), zone)
    return ALL_TIME


def period_start(day: date, granularity: Granularity) -> date:
    if granularity == Granularity.DAILY:
        return day
    if granularity == Granularity.WEEKLY:
        return day - timedelta(days=day.weekday())  # weeks start on Monday
    return day.replace(day=1)


@dataclass
class Bucket:
    start_day: date
    end_day: date  # exclusive
    items: List = field(default_factory=list)


def bucket(
    items: Iterable,
    granularity: Granularity,
    date_range: DateRange = ALL_TIME,
    zone=None,
    key: Callable = lambda txn: txn.date,
    fill_empty: bool = False,
) -> List[Bucket]:
    """
    Partition items into [periodStart, periodStart + length) buckets.

    Each item maps to exactly one period start, so no item is counted twice;
    items outside `date_range` are dropped. Buckets come back ordered.
    """
    zone = zone or report_zone()
    granularity = Granularity(granularity)
    step = _STEPS[granularity]
    buckets = {}

    for item in items:
        moment = key(item)
        if moment is None or not date_range.contains(moment):
            continue
        start = period_start(local_date(moment, zone), granularity)
        if start not in buckets:
            buckets[start] = Bucket(start_day=start, end_day=start + step)
        buckets[start].items.append(item)

    if fill_empty and date_range.first_day and date_range.last_day:
        current = period_start(date_range.first_day, granularity)
        while current <= date_range.last_day:
            if current not in buckets:
                buckets[current] = Bucket(start_day=current, end_day=current + step)
            current = current + step

    return [buckets[start] for start in sorted(buckets)]
