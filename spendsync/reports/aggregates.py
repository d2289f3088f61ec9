"""
Aggregation Engine

Sums and rollups consumed by the summary cards and the charts. Like the
period filters, these only ever see data handed to them: no storage
access, no clock reads.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal

from pydantic import BaseModel, Field

from spendsync.models.expense import Expense
from spendsync.reports.periods import (
    Period,
    align_to,
    filter_by_period,
    period_bounds,
    rolling_window_bounds,
    within,
)


class CategoryTotal(BaseModel):
    """One slice of the category pie/bar chart."""

    name: str
    total: Decimal
    count: int = Field(ge=0)
    percentage: float = Field(ge=0.0, le=100.0)


class DailyTotal(BaseModel):
    """One bar of the stacked per-day chart."""

    day: date
    total: Decimal = Decimal("0")
    by_product: dict[str, Decimal] = Field(default_factory=dict)


class PeriodSummary(BaseModel):
    """Content of one summary card."""

    period: Period
    start: datetime
    end: datetime
    total: Decimal
    count: int = Field(ge=0)


def calculate_total(expenses: list[Expense]) -> Decimal:
    return sum((e.price for e in expenses), Decimal("0"))


def totals_by_category(expenses: list[Expense]) -> list[CategoryTotal]:
    """Per-category totals, largest first (ties by name)."""
    totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    counts: dict[str, int] = defaultdict(int)
    for expense in expenses:
        totals[expense.category] += expense.price
        counts[expense.category] += 1

    grand_total = sum(totals.values(), Decimal("0"))
    rows = [
        CategoryTotal(
            name=name,
            total=total,
            count=counts[name],
            percentage=float(total / grand_total * 100) if grand_total > 0 else 0.0,
        )
        for name, total in totals.items()
    ]
    rows.sort(key=lambda row: (-row.total, row.name))
    return rows


def totals_by_day(
    expenses: list[Expense],
    days: int,
    now: datetime,
) -> list[DailyTotal]:
    """
    One bucket per calendar day of the last `days` days, oldest first.

    Days without expenses are present with a zero total so the chart's
    x-axis has no gaps.
    """
    start, end = rolling_window_bounds(now, days)
    buckets = {
        (start + timedelta(days=offset)).date(): DailyTotal(day=(start + timedelta(days=offset)).date())
        for offset in range(days)
    }

    for expense in expenses:
        if not within(expense.timestamp, start, end):
            continue
        bucket = buckets[align_to(expense.timestamp, start).date()]
        bucket.total += expense.price
        name = expense.product.name
        bucket.by_product[name] = bucket.by_product.get(name, Decimal("0")) + expense.price

    return [buckets[day] for day in sorted(buckets)]


def product_names(expenses: list[Expense]) -> list[str]:
    """Distinct product names, sorted case-insensitively."""
    return sorted({e.product.name for e in expenses}, key=lambda name: (name.casefold(), name))


def summarize_periods(
    expenses: list[Expense],
    now: datetime,
) -> dict[Period, PeriodSummary]:
    """Week, bi-weekly and month summary cards for the same `now`."""
    summaries = {}
    for period in (Period.WEEK, Period.BI_WEEKLY, Period.MONTH):
        start, end = period_bounds(period, now)
        selected = filter_by_period(expenses, period, now)
        summaries[period] = PeriodSummary(
            period=period,
            start=start,
            end=end,
            total=calculate_total(selected),
            count=len(selected),
        )
    return summaries
