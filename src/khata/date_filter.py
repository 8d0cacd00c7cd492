"""Creation-time windows over the event log.

Windows are whole local days: [start 00:00:00.000, end 23:59:59.999].
"""

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional, Sequence

from .models.event import FinanceEvent
from .models.views import DateFilter

_DAY_START = time(0, 0, 0)
_DAY_END = time(23, 59, 59, 999000)


def local_now(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    """Current (or given) instant expressed in ``tz``, or the system zone when None."""
    if now is None:
        now = datetime.now(tz) if tz is not None else datetime.now().astimezone()
    elif now.tzinfo is None:
        now = now.replace(tzinfo=tz) if tz is not None else now.astimezone()
    return now.astimezone(tz) if tz is not None else now.astimezone()


def local_date(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar date of ``moment`` in ``tz`` (system zone when None)."""
    return local_now(moment, tz).date()


def _at(day: date, clock: time, tz: Optional[tzinfo]) -> datetime:
    if tz is not None:
        return datetime.combine(day, clock, tzinfo=tz)
    return datetime.combine(day, clock).astimezone()


def day_window(day: date, tz: Optional[tzinfo] = None) -> tuple[datetime, datetime]:
    return _at(day, _DAY_START, tz), _at(day, _DAY_END, tz)


def resolve_window(
    date_filter: DateFilter,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[tuple[datetime, datetime]]:
    """Normalize a filter into an inclusive (start, end) window.

    Returns None when no filtering applies: mode ``all``, ``custom`` without
    a date, or ``range`` missing either bound.
    """
    mode = date_filter.mode
    if mode == "today":
        return day_window(local_now(now, tz).date(), tz)
    if mode == "yesterday":
        return day_window(local_now(now, tz).date() - timedelta(days=1), tz)
    if mode == "custom":
        if date_filter.custom_date is None:
            return None
        return day_window(date_filter.custom_date, tz)
    if mode == "range":
        if date_filter.start_date is None or date_filter.end_date is None:
            return None
        start, _ = day_window(date_filter.start_date, tz)
        _, end = day_window(date_filter.end_date, tz)
        return start, end
    return None


def filter_events_by_date(
    events: Sequence[FinanceEvent],
    date_filter: Optional[DateFilter],
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> list[FinanceEvent]:
    """Keep events whose ``created_at`` falls inside the filter window.

    Degenerate filters return the input unchanged.
    """
    if date_filter is None:
        return list(events)
    window = resolve_window(date_filter, now=now, tz=tz)
    if window is None:
        return list(events)
    start, end = window
    return [e for e in events if start <= e.created_at <= end]
