"""Calendar-period indices used to detect rebalance boundaries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Hashable, List, Sequence

import numpy as np
import pandas as pd

from ..exceptions import ValidationError

FREQUENCIES = ("daily", "weekly", "monthly", "quarterly", "annually", "never")


class CalendarError(ValidationError):
    """Raised when timestamps cannot be mapped onto a calendar."""


def to_date(value: Any) -> date:
    """Coerce strings, datetimes and ``numpy.datetime64`` values to a ``date``."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        stamp = pd.Timestamp(value)
    except (TypeError, ValueError) as exc:
        raise CalendarError(f"Cannot interpret {value!r} as a date") from exc
    if pd.isna(stamp):
        raise CalendarError(f"Cannot interpret {value!r} as a date")
    return stamp.date()


def to_dates(values: Sequence[Any]) -> List[date]:
    return [to_date(item) for item in values]


def period_index(day: date, frequency: str) -> Hashable:
    """Return the calendar bucket of ``day``; a new bucket marks a boundary.

    Weekly buckets use the ISO (year, week) pair so that boundaries never
    depend on wall-clock deltas.
    """

    if frequency == "weekly":
        iso = day.isocalendar()
        return (iso[0], iso[1])
    if frequency == "monthly":
        return (day.year, day.month)
    if frequency == "quarterly":
        return (day.year, (day.month - 1) // 3)
    if frequency == "annually":
        return day.year
    if frequency in {"daily", "never"}:
        return day.toordinal()
    raise CalendarError(f"Unsupported rebalance frequency '{frequency}'")


@dataclass(frozen=True)
class RebalanceCalendar:
    """Decides whether a rebalance boundary was crossed since the last one."""

    frequency: str

    def __post_init__(self) -> None:
        if self.frequency not in FREQUENCIES:
            raise CalendarError(
                f"frequency must be one of {', '.join(FREQUENCIES)}; got '{self.frequency}'"
            )

    def should_rebalance(self, current: date, last_rebalance: date) -> bool:
        if self.frequency == "never":
            return False
        if self.frequency == "daily":
            return True
        return period_index(current, self.frequency) != period_index(last_rebalance, self.frequency)

    def boundaries(self, dates: Sequence[date]) -> np.ndarray:
        """Boolean mask over ``dates`` flagging the days a rebalance would fire."""

        mask = np.zeros(len(dates), dtype=bool)
        if not dates:
            return mask
        last = dates[0]
        for idx in range(1, len(dates)):
            if self.should_rebalance(dates[idx], last):
                mask[idx] = True
                last = dates[idx]
        return mask


__all__ = [
    "CalendarError",
    "FREQUENCIES",
    "RebalanceCalendar",
    "period_index",
    "to_date",
    "to_dates",
]
