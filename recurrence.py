import logging
import math
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from models import Record, RecurrenceUnit
from store import LedgerStore


logger = logging.getLogger(__name__)


MAX_SERIES_LENGTH = 1200


class LedgerValidationError(ValueError):
    pass


class SeriesIntegrityError(RuntimeError):
    pass


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def advance_date(value: date, unit: RecurrenceUnit, interval: int) -> date:
    if interval < 1:
        raise LedgerValidationError("Recurrence interval must be at least 1")
    if unit == RecurrenceUnit.daily:
        return value + timedelta(days=interval)
    if unit == RecurrenceUnit.weekly:
        return value + timedelta(weeks=interval)
    if unit == RecurrenceUnit.monthly:
        return _add_months(value, interval)
    if unit == RecurrenceUnit.yearly:
        return _add_months(value, 12 * interval)
    raise LedgerValidationError(f"Unsupported recurrence unit: {unit!r}")


def months_between(start: date, end: date) -> int:
    """Calendar months touched by ``start..end``; a partial end month counts."""
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def instance_count(template: Record, horizon_default: int) -> int:
    if template.recurrence_end_date is None:
        return horizon_default
    spanned = months_between(template.date, template.recurrence_end_date)
    return max(1, math.ceil(spanned / template.recurrence_interval))


def schedule_dates(
    start: date, unit: RecurrenceUnit, interval: int, total: int
) -> list[date]:
    dates = [start]
    try:
        for _ in range(1, total):
            dates.append(advance_date(dates[-1], unit, interval))
    except LedgerValidationError:
        raise
    except (OverflowError, ValueError) as exc:
        raise LedgerValidationError(
            "Recurring series runs past the last representable date"
        ) from exc
    return dates


def _series_label(description: str, total: int) -> str:
    suffix = f" 1/{total}"
    if description.endswith(suffix):
        return description[: -len(suffix)]
    return description


class RecurringSeriesGenerator:
    def __init__(
        self, store: LedgerStore, horizon_default: Optional[int] = None
    ) -> None:
        self.store = store
        self.horizon_default = horizon_default or get_settings().default_horizon

    def _validate(self, template: Record) -> None:
        if template.recurrence_unit is None:
            raise LedgerValidationError("Recurring transactions need a recurrence unit")
        try:
            RecurrenceUnit(template.recurrence_unit)
        except ValueError as exc:
            raise LedgerValidationError(
                f"Unsupported recurrence unit: {template.recurrence_unit!r}"
            ) from exc
        if not template.recurrence_interval or template.recurrence_interval < 1:
            raise LedgerValidationError("Recurrence interval must be at least 1")
        if template.amount_cents is None or template.amount_cents <= 0:
            raise LedgerValidationError("Amount must be positive")
        if template.date is None:
            raise LedgerValidationError("Recurring transactions need a start date")

    def generate(self, template: Record, as_of: Optional[date] = None) -> list[Record]:
        """Materialize the series rooted at ``template``.

        A template that was already relabeled is resumed: only missing
        occurrences are created and the root is left alone. An occurrence
        counts as present when its date or its ``n/N`` label is already in the
        series, so an instance moved to another day is not recreated. Returns
        the touched records in date order.
        """
        self._validate(template)
        total = instance_count(template, self.horizon_default)
        if total > MAX_SERIES_LENGTH:
            raise LedgerValidationError(
                f"Recurring series cannot exceed {MAX_SERIES_LENGTH} occurrences"
            )
        unit = RecurrenceUnit(template.recurrence_unit)
        dates = schedule_dates(
            template.date, unit, template.recurrence_interval, total
        )
        touched: list[Record] = []
        created = 0

        if template.id is None:
            self.store.insert(template)
        if template.series_id is None:
            label = template.description
            template.description = f"{label} 1/{total}"
            template.is_recurring = False
            template.series_id = template.id
            if not self.store.update(template):
                raise SeriesIntegrityError(
                    f"Template {template.id} could not be saved as a series root"
                )
            touched.append(template)
        else:
            label = _series_label(template.description, total)

        series_id = template.series_id
        labels = {member.description for member in self.store.find_series(series_id)}
        for index, cursor in enumerate(dates[1:], start=2):
            description = f"{label} {index}/{total}"
            if description in labels:
                continue
            if self.store.find_by_series_and_date(series_id, cursor):
                continue
            instance = Record(
                type=template.type,
                amount_cents=template.amount_cents,
                description=description,
                category=template.category,
                date=cursor,
                is_recurring=False,
                recurrence_interval=1,
                series_id=series_id,
                received=False,
            )
            self.store.insert(instance)
            touched.append(instance)
            created += 1

        logger.info(
            f"series_generated: series_id={series_id} created={created} "
            f"total={total} as_of={as_of}"
        )
        return sorted(touched, key=lambda record: record.date)

    def generate_due_instances(self, as_of: Optional[date] = None) -> list[Record]:
        as_of = as_of or local_today()
        templates = self.store.find_due_templates(as_of)
        touched: list[Record] = []
        for template in templates:
            touched.extend(self.generate(template, as_of))
        logger.info(
            f"due_generation: as_of={as_of} templates={len(templates)} "
            f"records={len(touched)}"
        )
        return touched
