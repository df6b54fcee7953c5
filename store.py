from datetime import date
from typing import Iterable, Optional

from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.orm import Session

from models import Record, TransactionType, new_record_id


def get_current_user_id() -> int:
    return 1


class LedgerStore:
    """Keyed record storage on top of a SQLAlchemy session.

    Every write commits immediately. Callers composing several writes get no
    rollback of earlier ones when a later one fails.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def insert(self, record: Record) -> str:
        if record.id is None:
            record.id = new_record_id()
        record.user_id = self.user_id
        self.session.add(record)
        self.session.commit()
        return record.id

    def update(self, record: Record) -> int:
        if record.user_id != self.user_id or record not in self.session:
            return 0
        self.session.commit()
        return 1

    def find_by_id(self, record_id: str) -> Optional[Record]:
        return self.session.scalar(
            select(Record).where(Record.user_id == self.user_id, Record.id == record_id)
        )

    def find_by_series_and_date(self, series_id: str, on: date) -> Optional[Record]:
        return self.session.scalar(
            select(Record)
            .where(
                Record.user_id == self.user_id,
                Record.series_id == series_id,
                Record.date == on,
            )
            .limit(1)
        )

    def find_series(self, series_id: str) -> list[Record]:
        stmt = (
            select(Record)
            .where(Record.user_id == self.user_id, Record.series_id == series_id)
            .order_by(Record.date, Record.id)
        )
        return list(self.session.scalars(stmt).all())

    def find_due_templates(self, as_of: date) -> list[Record]:
        stmt = (
            select(Record)
            .where(
                Record.user_id == self.user_id,
                Record.is_recurring.is_(True),
                Record.series_id.is_(None),
                or_(
                    Record.recurrence_end_date.is_(None),
                    Record.recurrence_end_date >= as_of,
                ),
            )
            .order_by(Record.date, Record.id)
        )
        return list(self.session.scalars(stmt).all())

    def delete_by_ids(self, ids: Iterable[str]) -> int:
        id_list = list(dict.fromkeys(ids))
        if not id_list:
            return 0
        result = self.session.execute(
            delete(Record)
            .where(Record.user_id == self.user_id, Record.id.in_(id_list))
            .execution_options(synchronize_session="fetch")
        )
        self.session.commit()
        return result.rowcount or 0

    def list_between(self, start: date, end: date) -> list[Record]:
        stmt = (
            select(Record)
            .where(Record.user_id == self.user_id, Record.date.between(start, end))
            .order_by(Record.date, Record.id)
        )
        return list(self.session.scalars(stmt).all())

    def realized_total_before(self, day: date) -> int:
        delta = case(
            (Record.type == TransactionType.expense, -Record.amount_cents),
            (Record.received.is_(True), Record.amount_cents),
            else_=0,
        )
        total = self.session.execute(
            select(func.coalesce(func.sum(delta), 0)).where(
                Record.user_id == self.user_id, Record.date < day
            )
        ).scalar_one()
        return int(total or 0)
