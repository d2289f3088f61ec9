"""Reporting and filtering package."""

from spendsync.reports.aggregates import (
    CategoryTotal,
    DailyTotal,
    PeriodSummary,
    calculate_total,
    product_names,
    summarize_periods,
    totals_by_category,
    totals_by_day,
)
from spendsync.reports.periods import (
    ALL_CATEGORIES,
    ExpenseFilter,
    Period,
    align_to,
    biweekly_bounds,
    date_range_bounds,
    filter_by_period,
    filter_expenses,
    month_bounds,
    period_bounds,
    rolling_window_bounds,
    week_bounds,
)

__all__ = [
    "ALL_CATEGORIES",
    "CategoryTotal",
    "DailyTotal",
    "ExpenseFilter",
    "Period",
    "PeriodSummary",
    "align_to",
    "biweekly_bounds",
    "calculate_total",
    "date_range_bounds",
    "filter_by_period",
    "filter_expenses",
    "month_bounds",
    "period_bounds",
    "product_names",
    "rolling_window_bounds",
    "summarize_periods",
    "totals_by_category",
    "totals_by_day",
    "week_bounds",
]
