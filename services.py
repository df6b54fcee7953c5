from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from balance import DailyBalance, day_totals, project_daily_balances
from models import DeleteMode, Record, TransactionType, UserSettings
from periods import Period
from recurrence import (
    LedgerValidationError,
    RecurringSeriesGenerator,
    SeriesIntegrityError,
)
from schemas import RecordIn, RecordUpdate, to_cents
from store import LedgerStore, get_current_user_id


logger = logging.getLogger(__name__)


class RecordNotFound(ValueError):
    pass


class SeriesDeletion:
    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    def _load(self, record_id: str) -> Record:
        record = self.store.find_by_id(record_id)
        if record is None:
            raise RecordNotFound("Transaction not found")
        return record

    def delete_single(self, record_id: str) -> int:
        record = self._load(record_id)
        count = self.store.delete_by_ids([record.id])
        logger.info(f"records_deleted: mode=single target={record_id} count={count}")
        return count

    def delete_series(self, record_id: str) -> int:
        record = self._load(record_id)
        series_key = record.series_id or record.id
        ids = [record.id, series_key]
        ids.extend(member.id for member in self.store.find_series(series_key))
        # The root may already be gone; delete_by_ids ignores unknown ids.
        count = self.store.delete_by_ids(ids)
        logger.info(f"records_deleted: mode=series target={record_id} count={count}")
        return count

    def delete_forward(self, record_id: str) -> int:
        record = self._load(record_id)
        if record.series_id is None:
            return self.delete_series(record_id)

        series = self.store.find_series(record.series_id)
        position = next(
            (idx for idx, member in enumerate(series) if member.id == record.id),
            None,
        )
        if position is None:
            raise SeriesIntegrityError(
                f"Transaction {record.id} is missing from its series {record.series_id}"
            )
        count = self.store.delete_by_ids(member.id for member in series[position:])
        logger.info(f"records_deleted: mode=forward target={record_id} count={count}")
        return count


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = LedgerStore(session, self.user_id)

    def submit(self, data: RecordIn) -> list[Record]:
        record = Record(
            type=data.type,
            amount_cents=data.amount_cents,
            description=data.description.strip(),
            category=data.category.strip(),
            date=data.date,
            received=data.received if data.type == TransactionType.income else False,
            is_recurring=data.is_recurring,
            recurrence_unit=data.recurrence_unit if data.is_recurring else None,
            recurrence_interval=data.recurrence_interval if data.is_recurring else 1,
            recurrence_end_date=(
                data.recurrence_end_date if data.is_recurring else None
            ),
        )
        if record.amount_cents <= 0:
            raise LedgerValidationError("Amount must be positive")
        if data.is_recurring:
            return RecurringSeriesGenerator(self.store).generate(record)
        self.store.insert(record)
        return [record]

    def generate_due_instances(self, as_of: Optional[date] = None) -> list[Record]:
        return RecurringSeriesGenerator(self.store).generate_due_instances(as_of)

    def resume_series(self, record_id: str) -> list[Record]:
        record = self.get(record_id)
        if record.series_id is None and not record.is_recurring:
            raise LedgerValidationError("Transaction is not part of a recurring series")
        root = record if record.series_id is None else self.store.find_by_id(
            record.series_id
        )
        if root is None:
            raise RecordNotFound("Series root not found")
        return RecurringSeriesGenerator(self.store).generate(root)

    def get(self, record_id: str) -> Record:
        record = self.store.find_by_id(record_id)
        if record is None:
            raise RecordNotFound("Transaction not found")
        return record

    def list_for_period(self, period: Period) -> list[Record]:
        return self.store.list_between(period.start, period.end)

    def update(self, record_id: str, data: RecordUpdate) -> Record:
        record = self.get(record_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "date" in changes and record.series_id and changes["date"] != record.date:
            clash = self.store.find_by_series_and_date(
                record.series_id, changes["date"]
            )
            if clash is not None and clash.id != record.id:
                raise LedgerValidationError(
                    "Another transaction of this series is already on that date"
                )
        if "amount" in changes:
            record.amount_cents = to_cents(changes.pop("amount"))
        for field in ("description", "category"):
            if field in changes:
                changes[field] = changes[field].strip()
        for field, value in changes.items():
            setattr(record, field, value)
        if record.type == TransactionType.expense:
            record.received = False
        self.store.update(record)
        return record

    def set_received(self, record_id: str, received: bool) -> Record:
        record = self.get(record_id)
        if record.type != TransactionType.income:
            raise LedgerValidationError("Only income can be marked as received")
        record.received = received
        self.store.update(record)
        return record

    def mark_all_received(self, period: Period) -> int:
        result = self.session.execute(
            update(Record)
            .where(
                Record.user_id == self.user_id,
                Record.type == TransactionType.income,
                Record.received.is_(False),
                Record.date.between(period.start, period.end),
            )
            .values(received=True)
            .execution_options(synchronize_session="fetch")
        )
        self.session.commit()
        count = result.rowcount or 0
        logger.info(
            f"income_marked_received: start={period.start} end={period.end} "
            f"count={count}"
        )
        return count

    def delete(self, record_id: str, mode: DeleteMode = DeleteMode.single) -> int:
        deletion = SeriesDeletion(self.store)
        if mode == DeleteMode.forward:
            return deletion.delete_forward(record_id)
        if mode == DeleteMode.series:
            return deletion.delete_series(record_id)
        return deletion.delete_single(record_id)


class SettingsService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _row(self) -> Optional[UserSettings]:
        return self.session.scalar(
            select(UserSettings).where(UserSettings.user_id == self.user_id)
        )

    def get_initial_balance(self) -> int:
        row = self._row()
        return row.initial_balance_cents if row else 0

    def set_initial_balance(self, balance_cents: int) -> int:
        row = self._row()
        if row is None:
            row = UserSettings(user_id=self.user_id)
            self.session.add(row)
        row.initial_balance_cents = balance_cents
        self.session.commit()
        return row.initial_balance_cents


class TimelineService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = LedgerStore(session, self.user_id)

    @staticmethod
    def balance_timeline(
        records: Iterable[Record], starting_balance_cents: int
    ) -> list[DailyBalance]:
        return project_daily_balances(records, starting_balance_cents)

    def opening_balance(self, period: Period) -> int:
        initial = SettingsService(self.session, self.user_id).get_initial_balance()
        return initial + self.store.realized_total_before(period.start)

    def for_period(self, period: Period) -> tuple[int, list[DailyBalance]]:
        opening = self.opening_balance(period)
        records = self.store.list_between(period.start, period.end)
        return opening, self.balance_timeline(records, opening)

    def monthly_stats(self, period: Period) -> dict[str, int]:
        records = self.store.list_between(period.start, period.end)
        totals = day_totals(records)
        income = totals.received_income_cents + totals.expected_income_cents
        return {
            "income": income,
            "received_income": totals.received_income_cents,
            "expected_income": totals.expected_income_cents,
            "expenses": totals.expense_cents,
            "net": totals.received_income_cents - totals.expense_cents,
            "income_count": sum(
                1 for record in records if record.type == TransactionType.income
            ),
            "expense_count": sum(
                1 for record in records if record.type == TransactionType.expense
            ),
        }
