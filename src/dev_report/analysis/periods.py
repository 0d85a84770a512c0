"""Reporting periods: calendar windows for each report kind."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from dev_report.errors import ValidationError
from dev_report.models import ReportingPeriod, ReportKind

MONDAY = 0
SUNDAY = 6

PRESETS = ("today", "yesterday", "this_week", "this_month", "this_quarter", "this_year", "custom")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def local_now() -> datetime:
    """Current local time, timezone-aware, truncated to seconds."""
    return datetime.now().astimezone().replace(microsecond=0)


def _localize(value: datetime) -> datetime:
    # Naive values are read as local wall-clock time.
    if value.tzinfo is None:
        return value.astimezone()
    return value


def _anchor(wall: datetime, reference: datetime) -> datetime:
    """Attach ``reference``'s calendar to a naive wall-clock time.

    ``datetime.astimezone()`` yields a fixed offset, which is only right
    for the instant it was taken at. When ``reference`` carries the system
    clock's offset, the boundary is re-resolved against the local zone so
    a daylight-saving change in between does not shift it by an hour.
    Zone-aware tzinfos (``zoneinfo``) compute their own offset.
    """
    tz = reference.tzinfo
    if isinstance(tz, timezone) and reference.utcoffset() == reference.astimezone().utcoffset():
        return wall.astimezone()
    return wall.replace(tzinfo=tz)


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(value: datetime, week_start: int = SUNDAY) -> datetime:
    offset = (value.weekday() - week_start) % 7
    return start_of_day(value - timedelta(days=offset))


def start_of_month(value: datetime) -> datetime:
    return start_of_day(value).replace(day=1)


def start_of_quarter(value: datetime) -> datetime:
    first_month = 3 * ((value.month - 1) // 3) + 1
    return start_of_month(value).replace(month=first_month)


def start_of_year(value: datetime) -> datetime:
    return start_of_month(value).replace(month=1)


def resolve_period(
    kind: ReportKind,
    cross_day: bool = False,
    custom_range: Optional[tuple[datetime, datetime]] = None,
    now: Optional[datetime] = None,
    week_start: int = SUNDAY,
) -> ReportingPeriod:
    """Compute the reporting period for a report kind.

    A daily report with ``cross_day`` starts at the beginning of the
    previous day, so commits made after local midnight still land in the
    day they belong to. Every other kind starts at the beginning of the
    calendar unit containing ``now``. A custom range is used verbatim.
    """
    if custom_range is not None:
        since, until = (_localize(v) for v in custom_range)
        if since > until:
            raise ValidationError(
                f"Custom range starts after it ends ({format_timestamp(since)} > {format_timestamp(until)})"
            )
        return ReportingPeriod(since=since, until=until)

    now = _localize(now) if now is not None else local_now()
    # Calendar arithmetic happens on wall-clock time.
    wall = now.replace(tzinfo=None)

    if kind == ReportKind.daily:
        since = start_of_day(wall)
        if cross_day:
            since = start_of_day(wall - timedelta(days=1))
    elif kind == ReportKind.weekly:
        since = start_of_week(wall, week_start)
    elif kind == ReportKind.monthly:
        since = start_of_month(wall)
    elif kind == ReportKind.quarterly:
        since = start_of_quarter(wall)
    elif kind == ReportKind.yearly:
        since = start_of_year(wall)
    else:
        since = start_of_day(wall)

    return ReportingPeriod(since=_anchor(since, now), until=now)


def resolve_preset(
    preset: str,
    cross_day: bool = False,
    custom_since: Optional[datetime] = None,
    custom_until: Optional[datetime] = None,
    now: Optional[datetime] = None,
    week_start: int = SUNDAY,
) -> ReportingPeriod:
    """Compute a period from a named preset such as ``yesterday`` or ``this_month``."""
    if preset not in PRESETS:
        raise ValidationError(f"Unknown time range preset: {preset}")

    now = _localize(now) if now is not None else local_now()
    wall = now.replace(tzinfo=None)

    if preset == "yesterday":
        day = start_of_day(wall - timedelta(days=1))
        return ReportingPeriod(
            since=_anchor(day, now),
            until=_anchor(day.replace(hour=23, minute=59, second=59), now),
        )
    if preset == "custom":
        since = _localize(custom_since) if custom_since else _anchor(start_of_day(wall), now)
        until = _localize(custom_until) if custom_until else now
        return resolve_period(ReportKind.daily, custom_range=(since, until))

    kind = {
        "today": ReportKind.daily,
        "this_week": ReportKind.weekly,
        "this_month": ReportKind.monthly,
        "this_quarter": ReportKind.quarterly,
        "this_year": ReportKind.yearly,
    }[preset]
    return resolve_period(kind, cross_day=cross_day, now=now, week_start=week_start)


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def period_label(kind: ReportKind, period: ReportingPeriod, custom: bool = False) -> str:
    """Human-readable period text used in prompts."""
    span = f"{format_timestamp(period.since)} to {format_timestamp(period.until)}"
    if custom:
        return span
    return f"{kind.label} ({span})"
