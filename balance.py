from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from models import Record, TransactionType


@dataclass(frozen=True)
class DailyBalance:
    date: date
    balance_cents: int
    records: tuple[Record, ...]


@dataclass(frozen=True)
class DayTotals:
    received_income_cents: int
    expected_income_cents: int
    expense_cents: int


def project_daily_balances(
    records: Iterable[Record], starting_balance_cents: int
) -> list[DailyBalance]:
    """Running realized balance, one snapshot per date that has records.

    Income counts only once received; expenses always count.
    """
    by_date: dict[date, list[Record]] = defaultdict(list)
    for record in records:
        by_date[record.date].append(record)

    running = starting_balance_cents
    timeline: list[DailyBalance] = []
    for day in sorted(by_date):
        day_records = sorted(by_date[day], key=lambda record: record.id or "")
        running += sum(record.realized_delta_cents for record in day_records)
        timeline.append(DailyBalance(day, running, tuple(day_records)))
    return timeline


def day_totals(records: Iterable[Record]) -> DayTotals:
    received = expected = expenses = 0
    for record in records:
        if record.type == TransactionType.expense:
            expenses += record.amount_cents
        elif record.received:
            received += record.amount_cents
        else:
            expected += record.amount_cents
    return DayTotals(received, expected, expenses)
