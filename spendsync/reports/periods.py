"""
Period Filters

DESIGN DECISION: Every function here is deterministic given its
arguments. "now" is always passed in by the caller, never read from the
clock mid-computation, so a summary card and a chart rendered for the
same moment can never disagree and tests can pin time.

Boundaries are inclusive and cover whole days:
    start = 00:00:00.000000 of the first day
    end   = 23:59:59.999999 of the last day

Timezones: boundaries are computed in the timezone of `now` (or naive if
`now` is naive). Expense timestamps are aligned to that reference before
comparison by align_to(), the only place naive/aware mixing is handled.
"""

import calendar
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from spendsync.models.expense import Expense


# Category filter value meaning "do not filter by category"
ALL_CATEGORIES = "__all__"


class Period(str, Enum):
    """Named reporting periods."""
    WEEK = "week"             # Monday to Sunday
    BI_WEEKLY = "bi-weekly"   # 1st-15th or 16th-end of month
    MONTH = "month"           # calendar month
    ROLLING = "rolling"       # last N days including today


def align_to(ts: datetime, reference: datetime) -> datetime:
    """
    Express `ts` in the same timezone flavor as `reference`.

    naive ts, naive ref  -> unchanged
    aware ts, naive ref  -> converted to system local time, tz dropped
    naive ts, aware ref  -> interpreted as wall time in ref's timezone
    aware ts, aware ref  -> converted to ref's timezone
    """
    if reference.tzinfo is None:
        if ts.tzinfo is None:
            return ts
        return ts.astimezone().replace(tzinfo=None)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=reference.tzinfo)
    return ts.astimezone(reference.tzinfo)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def week_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Monday 00:00 to Sunday 23:59:59.999999 of the week containing `now`."""
    monday = start_of_day(now) - timedelta(days=now.weekday())
    return monday, end_of_day(monday + timedelta(days=6))


def biweekly_bounds(now: datetime) -> tuple[datetime, datetime]:
    """1st-15th if `now` is on or before the 15th, else 16th-last day."""
    if now.day <= 15:
        return start_of_day(now.replace(day=1)), end_of_day(now.replace(day=15))
    last_day = calendar.monthrange(now.year, now.month)[1]
    return start_of_day(now.replace(day=16)), end_of_day(now.replace(day=last_day))


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    last_day = calendar.monthrange(now.year, now.month)[1]
    return start_of_day(now.replace(day=1)), end_of_day(now.replace(day=last_day))


def rolling_window_bounds(now: datetime, days: int) -> tuple[datetime, datetime]:
    """The last `days` calendar days, today included."""
    if days < 1:
        raise ValueError(f"Rolling window must cover at least one day, got {days}")
    return start_of_day(now - timedelta(days=days - 1)), end_of_day(now)


def date_range_bounds(
    start: Union[date, datetime],
    end: Union[date, datetime],
    tz: Optional[tzinfo] = None,
) -> tuple[datetime, datetime]:
    """
    Start-of-day of `start` to end-of-day of `end`, inclusive.

    Plain dates get `tz` (None keeps them naive); datetimes keep their own.
    """
    if not isinstance(start, datetime):
        start = datetime.combine(start, time.min, tzinfo=tz)
    if not isinstance(end, datetime):
        end = datetime.combine(end, time.min, tzinfo=tz)
    lower, upper = start_of_day(start), end_of_day(end)
    if align_to(upper, lower) < lower:
        raise ValueError("Date range end is before its start")
    return lower, upper


def period_bounds(
    period: Period,
    now: datetime,
    days: Optional[int] = None,
) -> tuple[datetime, datetime]:
    if period == Period.WEEK:
        return week_bounds(now)
    if period == Period.BI_WEEKLY:
        return biweekly_bounds(now)
    if period == Period.MONTH:
        return month_bounds(now)
    if period == Period.ROLLING:
        if days is None:
            raise ValueError("A rolling period needs a number of days")
        return rolling_window_bounds(now, days)
    raise ValueError(f"Unknown period: {period}")


def within(ts: datetime, start: datetime, end: datetime) -> bool:
    """Inclusive containment, aligning `ts` to the bounds' timezone."""
    aligned = align_to(ts, start)
    return start <= aligned <= align_to(end, start)


def filter_by_period(
    expenses: list[Expense],
    period: Period,
    now: datetime,
    days: Optional[int] = None,
) -> list[Expense]:
    """Expenses whose timestamp falls inside the period containing `now`."""
    start, end = period_bounds(period, now, days)
    return [e for e in expenses if within(e.timestamp, start, end)]


class ExpenseFilter(BaseModel):
    """
    History filter. Every set criterion must match (AND semantics).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    product: Optional[str] = Field(
        default=None,
        description="Exact product name; None matches every product"
    )
    category: str = Field(
        default=ALL_CATEGORIES,
        description="Category name, or ALL_CATEGORIES"
    )
    start: Optional[date] = Field(
        default=None,
        description="First day included (start of day)"
    )
    end: Optional[date] = Field(
        default=None,
        description="Last day included (end of day)"
    )

    @model_validator(mode='after')
    def validate_range(self) -> 'ExpenseFilter':
        if self.start and self.end and self.end < self.start:
            raise ValueError("End date cannot be before start date")
        return self

    def matches(self, expense: Expense, tz: Optional[tzinfo] = None) -> bool:
        if self.product and expense.product.name != self.product:
            return False
        if self.category != ALL_CATEGORIES and expense.category != self.category:
            return False
        if self.start is not None:
            lower = datetime.combine(self.start, time.min, tzinfo=tz)
            if align_to(expense.timestamp, lower) < lower:
                return False
        if self.end is not None:
            upper = end_of_day(datetime.combine(self.end, time.min, tzinfo=tz))
            if align_to(expense.timestamp, upper) > upper:
                return False
        return True


def filter_expenses(
    expenses: list[Expense],
    criteria: ExpenseFilter,
    tz: Optional[tzinfo] = None,
) -> list[Expense]:
    """
    Apply a history filter; order of the input is preserved.

    Args:
        expenses: Collection to filter
        criteria: Product / category / date range to match
        tz: Timezone the filter's calendar days are expressed in
            (None = naive local wall time)
    """
    return [e for e in expenses if criteria.matches(e, tz)]
