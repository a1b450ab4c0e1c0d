import logging
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request
from sqlalchemy.orm import Session

from auth import bearer_token, issue_owner_token, resolve_owner_token
from config import get_settings
from database import Database
from errors import DuplicateExpenseNumber, NotFound, StoreUnavailable, ValidationError
from money import format_minor_units, round_minor_units
from periods import resolve_date_range
from schemas import (
    CurrencySummaryOut,
    ExpenseOut,
    ExpensePageOut,
    IdentityIn,
    NextNumberOut,
    ProfileUpdateIn,
    SequenceOut,
    SessionOut,
    UserOut,
)
from sequences import SequenceAllocator
from services import (
    CurrencySummary,
    ExpenseFilters,
    ExpenseQueryService,
    ExpenseService,
    UserService,
    summarize_by_currency,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Ledger")
app.state.database = None


@app.on_event("startup")
def startup_event():
    if app.state.database is None:
        app.state.database = Database(
            settings.database_url, pool_size=settings.pool_size
        )
    app.state.database.open()
    app.state.database.create_all()
    logger.info("Database opened")


@app.on_event("shutdown")
def shutdown_event():
    if app.state.database is not None:
        app.state.database.close()
        logger.info("Database closed")


def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def current_owner_id(authorization: Optional[str] = Header(default=None)) -> int:
    owner_id = resolve_owner_token(bearer_token(authorization))
    if owner_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return owner_id


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, DuplicateExpenseNumber):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, StoreUnavailable):
        return HTTPException(status_code=503, detail="Service temporarily unavailable")
    return HTTPException(status_code=500, detail="Internal error")


LEDGER_ERRORS = (ValidationError, DuplicateExpenseNumber, NotFound, StoreUnavailable)


def summary_out(summary: CurrencySummary) -> CurrencySummaryOut:
    return CurrencySummaryOut(
        currency=summary.currency,
        total_minor_units=summary.total_minor_units,
        count=summary.count,
        average_minor_units=round_minor_units(summary.average_minor_units),
        display_total=format_minor_units(summary.total_minor_units, summary.currency),
        display_average=format_minor_units(
            summary.average_minor_units, summary.currency
        ),
    )


def filters_from_request(request: Request) -> ExpenseFilters:
    params = request.query_params
    try:
        date_range = resolve_date_range(
            params.get("period"), params.get("start"), params.get("end")
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ExpenseFilters.from_range(date_range, params.get("q"))


def _int_param(request: Request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}") from exc


@app.post("/api/auth/session", response_model=SessionOut)
def create_session(identity: IdentityIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).register(identity)
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc
    return SessionOut(
        token=issue_owner_token(user.id), user=UserOut.model_validate(user)
    )


@app.get("/api/auth/me", response_model=UserOut)
def me(owner_id: int = Depends(current_owner_id), db: Session = Depends(get_db)):
    try:
        return UserService(db).get(owner_id)
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc


@app.post("/api/auth/profile", response_model=UserOut)
def update_profile(
    data: ProfileUpdateIn,
    owner_id: int = Depends(current_owner_id),
    db: Session = Depends(get_db),
):
    try:
        return UserService(db).update_display_name(owner_id, data.name)
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc


@app.post("/api/sequences/user", response_model=SequenceOut)
def allocate_user_sequence(
    _owner_id: int = Depends(current_owner_id), db: Session = Depends(get_db)
):
    try:
        return SequenceOut(sequence=SequenceAllocator(db).allocate_user_sequence())
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc


@app.get("/api/expenses", response_model=ExpensePageOut)
def list_expenses(
    request: Request,
    owner_id: int = Depends(current_owner_id),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    page = _int_param(request, "page", 1)
    limit = _int_param(request, "limit", settings.default_page_size)
    query = ExpenseQueryService(db, owner_id)
    try:
        result = query.list(filters, page=page, page_size=limit)
        summary = query.currency_summary(filters)
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc

    return ExpensePageOut(
        items=[ExpenseOut.model_validate(expense) for expense in result.items],
        total_count=result.total_count,
        page_count=result.page_count,
        page=result.page,
        page_size=result.page_size,
        summary=[summary_out(s) for s in summary],
    )


@app.get("/api/expenses/summary", response_model=list[CurrencySummaryOut])
def expense_summary(
    request: Request,
    owner_id: int = Depends(current_owner_id),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    try:
        expenses = ExpenseQueryService(db, owner_id).all_matching(filters)
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc
    return [summary_out(s) for s in summarize_by_currency(expenses)]


@app.get("/api/expenses/next-number", response_model=NextNumberOut)
def next_expense_number(
    owner_id: int = Depends(current_owner_id), db: Session = Depends(get_db)
):
    try:
        number = ExpenseService(db, owner_id).next_suggested_number()
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc
    return NextNumberOut(next_number=number)


@app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    payload: dict[str, Any] = Body(...),
    owner_id: int = Depends(current_owner_id),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, owner_id).create(payload)
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc


@app.get("/api/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(
    expense_id: int,
    owner_id: int = Depends(current_owner_id),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, owner_id).get(expense_id)
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc


@app.put("/api/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    payload: dict[str, Any] = Body(...),
    owner_id: int = Depends(current_owner_id),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, owner_id).update(expense_id, payload)
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc


@app.delete("/api/expenses/{expense_id}")
def delete_expense(
    expense_id: int,
    owner_id: int = Depends(current_owner_id),
    db: Session = Depends(get_db),
):
    try:
        ExpenseService(db, owner_id).delete(expense_id)
    except LEDGER_ERRORS as exc:
        raise http_error(exc) from exc
    return {"message": "Expense deleted successfully"}
