import datetime as dt
import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import RecurrenceUnit, TransactionType
from recurrence import MAX_SERIES_LENGTH, months_between


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RecordIn(BaseModel):
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=180)
    category: str = Field(..., min_length=1, max_length=100)
    date: date
    received: bool = False
    is_recurring: bool = False
    recurrence_unit: Optional[RecurrenceUnit] = None
    recurrence_interval: int = Field(default=1, ge=1)
    recurrence_end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_recurrence(self) -> "RecordIn":
        if self.is_recurring:
            if self.recurrence_unit is None:
                raise ValueError("Recurring transactions need a recurrence unit")
            if (
                self.recurrence_end_date is not None
                and self.recurrence_end_date < self.date
            ):
                raise ValueError("Recurrence end date must not precede the start date")
            if self.recurrence_end_date is not None:
                spanned = months_between(self.date, self.recurrence_end_date)
                if math.ceil(spanned / self.recurrence_interval) > MAX_SERIES_LENGTH:
                    raise ValueError(
                        f"Recurring series cannot exceed {MAX_SERIES_LENGTH} "
                        "occurrences"
                    )
        return self

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)


class RecordUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    date: Optional[dt.date] = None
    received: Optional[bool] = None


class RecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TransactionType
    amount_cents: int
    description: str
    category: str
    date: date
    is_recurring: bool
    recurrence_unit: Optional[RecurrenceUnit]
    recurrence_interval: int
    recurrence_end_date: Optional[date]
    series_id: Optional[str]
    received: bool


class ReceivedIn(BaseModel):
    received: bool = True


class DailyBalanceOut(BaseModel):
    date: date
    balance_cents: int
    received_income_cents: int
    expected_income_cents: int
    expense_cents: int
    records: list[RecordOut]


class TimelineOut(BaseModel):
    start: date
    end: date
    opening_balance_cents: int
    days: list[DailyBalanceOut]


class SettingsIn(BaseModel):
    initial_balance: Decimal

    @property
    def initial_balance_cents(self) -> int:
        return to_cents(self.initial_balance)


class SettingsOut(BaseModel):
    initial_balance_cents: int
