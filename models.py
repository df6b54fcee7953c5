from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class RecurrenceUnit(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class DeleteMode(str, Enum):
    single = "single"
    forward = "forward"
    series = "series"


def new_record_id() -> str:
    return str(uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Record(Base, TimestampMixin):
    __tablename__ = "records"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_record_id
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_unit: Mapped[Optional[RecurrenceUnit]] = mapped_column(
        SAEnum(RecurrenceUnit)
    )
    recurrence_interval: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False
    )
    recurrence_end_date: Mapped[Optional[date]] = mapped_column(Date)
    # Root of the series this record belongs to; the root points at itself.
    # Not a foreign key: single deletes of a root must not cascade.
    series_id: Mapped[Optional[str]] = mapped_column(String(36))
    received: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_records_user_date", "user_id", "date"),
        Index("ix_records_series_date", "series_id", "date"),
        CheckConstraint("amount_cents > 0", name="ck_records_amount_positive"),
        CheckConstraint("recurrence_interval > 0", name="ck_records_interval_positive"),
    )

    @property
    def realized_delta_cents(self) -> int:
        if self.type == TransactionType.expense:
            return -self.amount_cents
        if self.received:
            return self.amount_cents
        return 0


class UserSettings(Base, TimestampMixin):
    __tablename__ = "user_settings"
    __table_args__ = (UniqueConstraint("user_id", name="uq_user_settings_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    initial_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
