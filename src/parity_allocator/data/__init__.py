"""Data containers and calendar helpers."""

from .calendars import FREQUENCIES, CalendarError, RebalanceCalendar, period_index, to_date, to_dates
from .series import AlignedSeries, align_price_series, load_prices_csv

__all__ = [
    "AlignedSeries",
    "CalendarError",
    "FREQUENCIES",
    "RebalanceCalendar",
    "align_price_series",
    "load_prices_csv",
    "period_index",
    "to_date",
    "to_dates",
]
