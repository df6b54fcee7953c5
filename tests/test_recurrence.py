from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from models import Record, RecurrenceUnit, TransactionType
from recurrence import (
    MAX_SERIES_LENGTH,
    LedgerValidationError,
    RecurringSeriesGenerator,
    SeriesIntegrityError,
    advance_date,
    days_in_month,
    instance_count,
    months_between,
    schedule_dates,
)
from schemas import RecordIn, RecordUpdate
from services import TransactionService
from store import LedgerStore

daily = RecurrenceUnit.daily
weekly = RecurrenceUnit.weekly
monthly = RecurrenceUnit.monthly
yearly = RecurrenceUnit.yearly


def _rent(**overrides) -> RecordIn:
    fields = dict(
        type=TransactionType.expense,
        amount=Decimal("1200.00"),
        description="Rent",
        category="Housing",
        date=date(2024, 1, 15),
        is_recurring=True,
        recurrence_unit=RecurrenceUnit.monthly,
        recurrence_interval=1,
        recurrence_end_date=date(2024, 5, 15),
    )
    fields.update(overrides)
    return RecordIn(**fields)


def _count(session) -> int:
    return session.execute(select(func.count(Record.id))).scalar_one()


def test_advance_monthly_clamps_to_month_end():
    assert advance_date(date(2024, 1, 31), monthly, 1) == date(2024, 2, 29)
    assert advance_date(date(2023, 1, 31), monthly, 1) == date(2023, 2, 28)
    assert advance_date(date(2024, 3, 31), monthly, 1) == date(2024, 4, 30)


def test_advance_monthly_carries_into_year_in_one_step():
    assert advance_date(date(2024, 11, 30), monthly, 3) == date(2025, 2, 28)
    assert advance_date(date(2024, 1, 31), monthly, 13) == date(2025, 2, 28)
    assert advance_date(date(2024, 12, 31), monthly, 2) == date(2025, 2, 28)


def test_advance_yearly_clamps_leap_day():
    assert advance_date(date(2024, 2, 29), yearly, 1) == date(2025, 2, 28)
    assert advance_date(date(2024, 2, 29), yearly, 4) == date(2028, 2, 29)


def test_advance_daily_and_weekly():
    assert advance_date(date(2024, 12, 30), daily, 3) == date(2025, 1, 2)
    assert advance_date(date(2024, 2, 26), weekly, 2) == date(2024, 3, 11)


def test_advance_does_not_mutate_input():
    start = date(2024, 1, 31)
    advance_date(start, RecurrenceUnit.monthly, 1)
    assert start == date(2024, 1, 31)


def test_advance_rejects_non_positive_interval():
    with pytest.raises(LedgerValidationError):
        advance_date(date(2024, 1, 1), RecurrenceUnit.daily, 0)


@pytest.mark.parametrize("unit", [RecurrenceUnit.monthly, RecurrenceUnit.yearly])
def test_advance_never_overflows_into_next_month(unit):
    day = date(2023, 12, 1)
    while day < date(2025, 1, 1):
        for interval in (1, 2, 5, 11, 12, 13, 25):
            result = advance_date(day, unit, interval)
            months = interval if unit == RecurrenceUnit.monthly else 12 * interval
            expected_month = (day.month - 1 + months) % 12 + 1
            assert result.month == expected_month
            last_day = days_in_month(result.year, result.month)
            assert result.day == min(day.day, last_day)
        day += timedelta(days=1)


def test_months_between_counts_partial_end_month():
    assert months_between(date(2024, 1, 15), date(2024, 5, 15)) == 5
    assert months_between(date(2024, 1, 31), date(2024, 2, 1)) == 2
    assert months_between(date(2024, 11, 1), date(2025, 2, 1)) == 4


def test_instance_count_uses_interval_and_floor_of_one():
    template = Record(
        date=date(2024, 1, 15),
        recurrence_interval=2,
        recurrence_end_date=date(2024, 6, 1),
    )
    assert instance_count(template, 12) == 3

    template.recurrence_end_date = None
    assert instance_count(template, 12) == 12

    template.recurrence_interval = 1
    template.recurrence_end_date = date(2023, 1, 1)
    assert instance_count(template, 12) == 1


def test_generate_monthly_series_with_end_date(session):
    records = TransactionService(session).submit(_rent())

    assert [r.date for r in records] == [
        date(2024, 1, 15),
        date(2024, 2, 15),
        date(2024, 3, 15),
        date(2024, 4, 15),
        date(2024, 5, 15),
    ]
    assert [r.description for r in records] == [f"Rent {i}/5" for i in range(1, 6)]
    root = records[0]
    assert root.series_id == root.id
    assert all(r.series_id == root.id for r in records)
    assert not any(r.is_recurring for r in records)
    assert all(r.amount_cents == 120000 for r in records)
    assert all(r.category == "Housing" for r in records)


def test_generate_without_end_date_uses_default_horizon(session):
    records = TransactionService(session).submit(
        _rent(recurrence_end_date=None, date=date(2024, 1, 31))
    )
    assert len(records) == 12
    assert records[-1].description == "Rent 12/12"
    assert records[1].date == date(2024, 2, 29)
    # The cursor advances from the previous occurrence, so the clamped day sticks.
    assert records[2].date == date(2024, 3, 29)


def test_daily_series_without_end_date_is_twelve_days(session):
    records = TransactionService(session).submit(
        _rent(recurrence_unit=RecurrenceUnit.daily, recurrence_end_date=None)
    )
    assert [r.date for r in records] == [
        date(2024, 1, 15) + timedelta(days=i) for i in range(12)
    ]


def test_generate_is_idempotent(session):
    service = TransactionService(session)
    first = service.submit(_rent())
    root = first[0]

    second = RecurringSeriesGenerator(LedgerStore(session)).generate(root)

    assert second == []
    assert {r.id for r in second} <= {r.id for r in first}
    assert _count(session) == 5
    assert root.description == "Rent 1/5"
    dates = session.execute(
        select(Record.date).where(Record.series_id == root.id)
    ).scalars().all()
    assert len(dates) == len(set(dates))


def test_generate_resumes_partial_series(session):
    store = LedgerStore(session)
    records = TransactionService(session).submit(_rent())
    root = records[0]
    store.delete_by_ids([records[2].id, records[3].id])
    assert _count(session) == 3

    resumed = RecurringSeriesGenerator(store).generate(root)

    assert [(r.date, r.description) for r in resumed] == [
        (date(2024, 3, 15), "Rent 3/5"),
        (date(2024, 4, 15), "Rent 4/5"),
    ]
    assert _count(session) == 5
    assert root.description == "Rent 1/5"


def test_generate_rejects_template_without_unit_before_writing(session):
    template = Record(
        type=TransactionType.expense,
        amount_cents=1000,
        description="Gym",
        category="Health",
        date=date(2024, 1, 1),
        is_recurring=True,
        recurrence_unit=None,
        recurrence_interval=1,
    )
    with pytest.raises(LedgerValidationError):
        RecurringSeriesGenerator(LedgerStore(session)).generate(template)
    assert _count(session) == 0


def test_generate_honours_horizon_override(session):
    template = Record(
        type=TransactionType.income,
        amount_cents=500000,
        description="Salary",
        category="Work",
        date=date(2024, 1, 5),
        is_recurring=True,
        recurrence_unit=RecurrenceUnit.weekly,
        recurrence_interval=2,
    )
    generator = RecurringSeriesGenerator(LedgerStore(session), horizon_default=3)
    records = generator.generate(template)
    assert [r.date for r in records] == [
        date(2024, 1, 5),
        date(2024, 1, 19),
        date(2024, 2, 2),
    ]
    assert records[-1].description == "Salary 3/3"


def test_generate_due_instances_expands_only_open_templates(session):
    store = LedgerStore(session)
    open_template = Record(
        type=TransactionType.expense,
        amount_cents=4990,
        description="Internet",
        category="Utilities",
        date=date(2024, 3, 10),
        is_recurring=True,
        recurrence_unit=RecurrenceUnit.monthly,
        recurrence_interval=1,
        recurrence_end_date=date(2024, 6, 10),
    )
    expired_template = Record(
        type=TransactionType.expense,
        amount_cents=999,
        description="Old plan",
        category="Utilities",
        date=date(2023, 1, 10),
        is_recurring=True,
        recurrence_unit=RecurrenceUnit.monthly,
        recurrence_interval=1,
        recurrence_end_date=date(2023, 3, 10),
    )
    store.insert(open_template)
    store.insert(expired_template)

    generated = TransactionService(session).generate_due_instances(date(2024, 4, 1))

    assert len(generated) == 4
    assert {r.series_id for r in generated} == {open_template.id}
    assert expired_template.is_recurring is True
    assert expired_template.series_id is None

    again = TransactionService(session).generate_due_instances(date(2024, 4, 1))
    assert again == []


def test_resume_does_not_recreate_an_instance_moved_to_another_day(session):
    service = TransactionService(session)
    records = service.submit(
        _rent(
            description="Retainer",
            date=date(2025, 1, 1),
            recurrence_end_date=date(2025, 3, 1),
        )
    )
    service.update(records[2].id, RecordUpdate(date=date(2025, 3, 3)))

    assert service.resume_series(records[0].id) == []

    series = LedgerStore(session).find_series(records[0].id)
    assert [(r.date, r.description) for r in series] == [
        (date(2025, 1, 1), "Retainer 1/3"),
        (date(2025, 2, 1), "Retainer 2/3"),
        (date(2025, 3, 3), "Retainer 3/3"),
    ]


def _yearly_template(end: date, interval: int = 1) -> Record:
    return Record(
        type=TransactionType.income,
        amount_cents=10_000,
        description="Dividend",
        category="Investments",
        date=date(2024, 1, 1),
        is_recurring=True,
        recurrence_unit=RecurrenceUnit.yearly,
        recurrence_interval=interval,
        recurrence_end_date=end,
    )


def test_generate_rejects_series_longer_than_the_cap_before_writing(session):
    with pytest.raises(LedgerValidationError):
        RecurringSeriesGenerator(LedgerStore(session)).generate(
            _yearly_template(date(2900, 1, 1))
        )
    assert _count(session) == 0


def test_generate_rejects_series_past_the_last_date_before_writing(session):
    template = _yearly_template(date(9999, 1, 1), interval=100)
    assert instance_count(template, 12) <= MAX_SERIES_LENGTH

    with pytest.raises(LedgerValidationError):
        RecurringSeriesGenerator(LedgerStore(session)).generate(template)
    assert _count(session) == 0


def test_schedule_dates_wraps_overflow_as_validation_error():
    assert schedule_dates(date(2024, 1, 31), monthly, 1, 3) == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 29),
    ]
    with pytest.raises(LedgerValidationError):
        schedule_dates(date(9990, 1, 1), yearly, 5, 3)


def test_generate_raises_when_root_cannot_be_saved(session):
    template = _yearly_template(date(2026, 1, 1))
    LedgerStore(session, user_id=2).insert(template)

    with pytest.raises(SeriesIntegrityError):
        RecurringSeriesGenerator(LedgerStore(session, user_id=1)).generate(template)
    session.rollback()
    assert _count(session) == 1
