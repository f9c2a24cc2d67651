"""Reporting-period policy shared by every report."""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Literal

from bizledger.app.core.errors import ValidationError

DefaultWindow = Literal["year_to_date", "all_time"]


@dataclass(frozen=True)
class DateWindow:
    """Inclusive date range. ``None`` on either side means unbounded."""

    start: date | None = None
    end: date | None = None

    def as_period(self) -> dict[str, str | None]:
        return {
            "start_date": self.start.isoformat() if self.start else None,
            "end_date": self.end.isoformat() if self.end else None,
        }


def resolve_window(
    start_date: date | None,
    end_date: date | None,
    *,
    today: date | None = None,
    default: DefaultWindow = "year_to_date",
) -> DateWindow:
    """Turn optional request dates into the window a report covers.

    With neither bound given the window is the start of the current
    calendar year through today (or unbounded for ``default="all_time"``).
    A single bound yields an open-ended window.
    """
    if start_date is not None and end_date is not None and start_date > end_date:
        raise ValidationError(
            f"start_date {start_date.isoformat()} is after end_date {end_date.isoformat()}"
        )
    if start_date is None and end_date is None and default == "year_to_date":
        today = today or date.today()
        return DateWindow(date(today.year, 1, 1), today)
    return DateWindow(start_date, end_date)


def month_window(year: int, month: int) -> DateWindow:
    last_day = calendar.monthrange(year, month)[1]
    return DateWindow(date(year, month, 1), date(year, month, last_day))


def year_window(year: int) -> DateWindow:
    if year < 1 or year > 9999:
        raise ValidationError(f"Invalid year: {year}")
    return DateWindow(date(year, 1, 1), date(year, 12, 31))
