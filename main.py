import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy.orm import Session

from balance import DailyBalance, day_totals
from config import get_settings
from database import SessionLocal, session_scope
from models import DeleteMode
from periods import Period, resolve_period
from schemas import (
    DailyBalanceOut,
    ReceivedIn,
    RecordIn,
    RecordOut,
    RecordUpdate,
    SettingsIn,
    SettingsOut,
    TimelineOut,
)
from services import (
    LedgerValidationError,
    RecordNotFound,
    SeriesIntegrityError,
    SettingsService,
    TimelineService,
    TransactionService,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Recurring Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_recurring_catch_up(source: str = "manual") -> int:
    logger.info(f"recurring_catch_up: source={source}")
    with session_scope() as session:
        generated = TransactionService(session).generate_due_instances()
    logger.info(f"recurring_catch_up: source={source} records={len(generated)}")
    return len(generated)


@app.on_event("startup")
def startup_event():
    run_recurring_catch_up("startup")


def period_from_request(request: Request) -> Period:
    params = request.query_params
    try:
        return resolve_period(
            params.get("period"),
            params.get("start"),
            params.get("end"),
            month=params.get("month"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _serialize_day(day: DailyBalance) -> DailyBalanceOut:
    totals = day_totals(day.records)
    return DailyBalanceOut(
        date=day.date,
        balance_cents=day.balance_cents,
        received_income_cents=totals.received_income_cents,
        expected_income_cents=totals.expected_income_cents,
        expense_cents=totals.expense_cents,
        records=[RecordOut.model_validate(record) for record in day.records],
    )


@app.get("/api/transactions", response_model=list[RecordOut])
def list_transactions(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    return TransactionService(db).list_for_period(period)


@app.post("/api/transactions", response_model=list[RecordOut], status_code=201)
def create_transaction(data: RecordIn, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).submit(data)
    except LedgerValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/transactions/generate-recurring", response_model=list[RecordOut])
def generate_recurring(as_of: Optional[date] = None, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).generate_due_instances(as_of)
    except LedgerValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/transactions/mark-received")
def mark_all_received(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    count = TransactionService(db).mark_all_received(period)
    return {"updated": count}


@app.get("/api/transactions/{transaction_id}", response_model=RecordOut)
def get_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).get(transaction_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/api/transactions/{transaction_id}", response_model=RecordOut)
def update_transaction(
    transaction_id: str, data: RecordUpdate, db: Session = Depends(get_db)
):
    try:
        return TransactionService(db).update(transaction_id, data)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except LedgerValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/transactions/{transaction_id}/received", response_model=RecordOut)
def set_received(
    transaction_id: str, data: ReceivedIn, db: Session = Depends(get_db)
):
    try:
        return TransactionService(db).set_received(transaction_id, data.received)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except LedgerValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post(
    "/api/transactions/{transaction_id}/resume-series",
    response_model=list[RecordOut],
)
def resume_series(transaction_id: str, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).resume_series(transaction_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except LedgerValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: str,
    mode: DeleteMode = DeleteMode.single,
    db: Session = Depends(get_db),
):
    try:
        count = TransactionService(db).delete(transaction_id, mode)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SeriesIntegrityError as exc:
        logger.error(f"delete_aborted: target={transaction_id} reason={exc}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"deleted": count}


@app.get("/api/timeline", response_model=TimelineOut)
def balance_timeline(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    opening, days = TimelineService(db).for_period(period)
    return TimelineOut(
        start=period.start,
        end=period.end,
        opening_balance_cents=opening,
        days=[_serialize_day(day) for day in days],
    )


@app.get("/api/stats/monthly")
def monthly_stats(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    stats = TimelineService(db).monthly_stats(period)
    return {"start": period.start, "end": period.end, **stats}


@app.get("/api/settings", response_model=SettingsOut)
def get_settings_endpoint(db: Session = Depends(get_db)):
    return SettingsOut(
        initial_balance_cents=SettingsService(db).get_initial_balance()
    )


@app.put("/api/settings", response_model=SettingsOut)
def update_settings_endpoint(data: SettingsIn, db: Session = Depends(get_db)):
    balance = SettingsService(db).set_initial_balance(data.initial_balance_cents)
    return SettingsOut(initial_balance_cents=balance)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
