from dataclasses import dataclass
from datetime import date
from typing import Optional

from recurrence import days_in_month, local_today


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def month_period(year: int, month: int, slug: str = "month") -> Period:
    last_day = days_in_month(year, month)
    return Period(slug, date(year, month, 1), date(year, month, last_day))


def _shift_month(day: date, months: int) -> tuple[int, int]:
    total = day.month - 1 + months
    return day.year + total // 12, total % 12 + 1


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    month: Optional[str] = None,
    today: Optional[date] = None,
) -> Period:
    """Turn query parameters into a concrete date range.

    ``month`` (``YYYY-MM``) wins over ``period``. Unknown slugs fall back to
    the current month.
    """
    today = today or local_today()
    if month:
        try:
            year_part, month_part = month.split("-")
            return month_period(int(year_part), int(month_part))
        except ValueError as exc:
            raise ValueError("Month must be formatted as YYYY-MM") from exc
    if period == "all":
        return Period("all", date.min, date.max)
    if period == "last_month":
        return month_period(*_shift_month(today, -1), slug="last_month")
    if period == "next_month":
        return month_period(*_shift_month(today, 1), slug="next_month")
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    return month_period(today.year, today.month, slug="this_month")
