import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from budget import BudgetLine
from config import get_settings
from domain import Category, RecurrenceTemplate, Transaction
from errors import LedgerError
from fx_rates import FxRateService, PinnedRates
from money import Money, RoundingMode
from periods import DateRange, YearMonth, resolve_period
from projection import summarize
from scheduler import SchedulerManager
from schemas import (
    AmendmentIn,
    CategoryIn,
    CategoryLimitIn,
    CategoryMoveIn,
    CategoryRenameIn,
    RecurrenceTemplateIn,
    RecurrenceTemplateUpdateIn,
    TransactionIn,
)
from services import LedgerService, local_today
from storage import SqlStorage


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="iSaveMoney", version=APP_VERSION)

ERROR_MESSAGES = {
    "currency_mismatch": "Amounts in {actual} cannot be combined with {expected} without an exchange rate.",
    "cycle_detected": "A category cannot be placed inside one of its own subcategories.",
    "category_has_children": "Archive the subcategories of this category first.",
    "category_archived": "This category is archived and cannot take new entries.",
    "unknown_reference": "The referenced {kind} does not exist.",
    "invalid_recurrence_rule": "The repeat rule has an invalid {field}.",
    "amend_target_voided": "This entry has already been amended; edit the latest version instead.",
}

ERROR_STATUS = {
    "unknown_reference": 404,
    "invalid_recurrence_rule": 422,
    "currency_mismatch": 422,
}

_service: Optional[LedgerService] = None


def get_service() -> LedgerService:
    global _service
    if _service is None:
        _service = LedgerService(SqlStorage())
    return _service


scheduler_manager: Optional[SchedulerManager] = None


@app.on_event("startup")
def startup_event():
    global scheduler_manager
    scheduler_manager = SchedulerManager(get_service())
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    if scheduler_manager is not None:
        scheduler_manager.stop()


@app.exception_handler(LedgerError)
def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    details = exc.details()
    template = ERROR_MESSAGES.get(exc.code, "The request could not be completed.")
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.code, 409),
        content={
            "error": exc.code,
            "message": template.format(**details),
            "details": details,
        },
    )


@app.exception_handler(ValueError)
def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "invalid", "message": str(exc)})


def money_json(value: Optional[Money]) -> Optional[dict[str, object]]:
    if value is None:
        return None
    return {"minor_units": value.minor_units, "currency": value.currency}


def category_json(category: Category, service: LedgerService, depth: int = 0) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "parent_id": category.parent_id,
        "depth": depth,
        "archived": category.archived,
        "monthly_limit": money_json(category.monthly_limit),
        "effective_limit": money_json(service.effective_limit(category.id)),
    }


def transaction_json(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "amount": money_json(txn.amount),
        "category_id": txn.category_id,
        "note": txn.note,
        "kind": txn.kind.value,
        "amends": txn.amends,
        "voided": txn.voided,
        "superseded_by": txn.superseded_by,
        "template_id": txn.template_id,
    }


def template_json(template: RecurrenceTemplate) -> dict[str, object]:
    rule = template.rule
    return {
        "id": template.id,
        "amount": money_json(template.amount),
        "category_id": template.category_id,
        "start_date": template.start_date.isoformat(),
        "rule": {
            "frequency": rule.frequency.value,
            "interval": rule.interval,
            "end": {
                "kind": rule.end.kind.value,
                "count": rule.end.count,
                "until": rule.end.until.isoformat() if rule.end.until else None,
            },
            "weekday": rule.weekday,
            "day_of_month": rule.day_of_month,
        },
        "note": template.note,
        "active": template.active,
        "last_materialized_date": (
            template.last_materialized_date.isoformat()
            if template.last_materialized_date
            else None
        ),
    }


def budget_line_json(line: BudgetLine) -> dict[str, object]:
    return {
        "category_id": line.category_id,
        "name": line.name,
        "parent_id": line.parent_id,
        "depth": line.depth,
        "archived": line.archived,
        "spent": money_json(line.spent),
        "income": money_json(line.income),
        "net": money_json(line.net),
        "limit": money_json(line.limit),
        "remaining": money_json(line.remaining),
        "status": line.status.value,
    }


def period_from_request(request: Request) -> DateRange:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end, today=local_today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def rates_from_query(rate: list[str], rounding: Optional[RoundingMode]) -> Optional[PinnedRates]:
    """Parse ``rate=USD/EUR=0.92`` pairs; a rounding mode must accompany them."""
    if not rate:
        return None
    if rounding is None:
        raise HTTPException(status_code=400, detail="A rounding mode is required with rates")
    pairs = {}
    for item in rate:
        pair, _, value = item.partition("=")
        if not value:
            raise HTTPException(status_code=400, detail=f"Invalid rate: {item}")
        pairs[pair] = value
    return PinnedRates.from_mapping(pairs, rounding=rounding)


# Categories


@app.get("/api/categories")
def api_categories(
    include_archived: bool = True, service: LedgerService = Depends(get_service)
):
    return {
        "items": [
            category_json(category, service, depth)
            for depth, category in service.category_tree(include_archived=include_archived)
        ]
    }


@app.post("/api/categories", status_code=201)
def api_create_category(data: CategoryIn, service: LedgerService = Depends(get_service)):
    return category_json(service.create_category(data), service)


@app.post("/api/categories/{category_id}/rename")
def api_rename_category(
    category_id: int, data: CategoryRenameIn, service: LedgerService = Depends(get_service)
):
    return category_json(service.rename_category(category_id, data.name), service)


@app.post("/api/categories/{category_id}/limit")
def api_set_category_limit(
    category_id: int, data: CategoryLimitIn, service: LedgerService = Depends(get_service)
):
    limit = data.monthly_limit.to_money() if data.monthly_limit else None
    return category_json(service.set_category_limit(category_id, limit), service)


@app.post("/api/categories/{category_id}/move")
def api_move_category(
    category_id: int, data: CategoryMoveIn, service: LedgerService = Depends(get_service)
):
    return category_json(service.move_category(category_id, data.parent_id), service)


@app.post("/api/categories/{category_id}/archive")
def api_archive_category(category_id: int, service: LedgerService = Depends(get_service)):
    return category_json(service.archive_category(category_id), service)


@app.post("/api/categories/{category_id}/restore")
def api_restore_category(category_id: int, service: LedgerService = Depends(get_service)):
    return category_json(service.restore_category(category_id), service)


# Transactions


@app.get("/api/transactions")
def api_transactions(
    request: Request,
    category: list[int] = Query(default=[]),
    service: LedgerService = Depends(get_service),
):
    period = period_from_request(request)
    items = service.list_transactions(period, category or None)
    return {
        "start": period.start.isoformat(),
        "end": period.end.isoformat(),
        "items": [transaction_json(txn) for txn in items],
    }


@app.post("/api/transactions", status_code=201)
def api_record_transaction(data: TransactionIn, service: LedgerService = Depends(get_service)):
    return transaction_json(service.record_transaction(data))


@app.post("/api/transactions/{transaction_id}/amend", status_code=201)
def api_amend_transaction(
    transaction_id: int, data: AmendmentIn, service: LedgerService = Depends(get_service)
):
    return transaction_json(service.amend_transaction(transaction_id, data))


@app.get("/api/transactions/{transaction_id}/history")
def api_transaction_history(transaction_id: int, service: LedgerService = Depends(get_service)):
    return {"items": [transaction_json(txn) for txn in service.transaction_history(transaction_id)]}


# Recurrence templates


@app.get("/api/templates")
def api_templates(active_only: bool = False, service: LedgerService = Depends(get_service)):
    return {
        "items": [template_json(t) for t in service.recurrence_templates(active_only=active_only)]
    }


@app.post("/api/templates", status_code=201)
def api_create_template(
    data: RecurrenceTemplateIn, service: LedgerService = Depends(get_service)
):
    return template_json(service.create_recurrence_template(data))


@app.patch("/api/templates/{template_id}")
def api_update_template(
    template_id: int,
    data: RecurrenceTemplateUpdateIn,
    service: LedgerService = Depends(get_service),
):
    return template_json(service.update_recurrence_template(template_id, data))


@app.post("/api/templates/materialize")
def api_materialize(
    today: Optional[date] = None, service: LedgerService = Depends(get_service)
):
    count = service.materialize_due(today)
    logging.info(f"Materialized {count} occurrences on request")
    return {"posted": count}


# Projections


@app.get("/api/forecast")
def api_forecast(
    balance: int,
    currency: Optional[str] = None,
    as_of: Optional[date] = None,
    horizon_end: Optional[date] = None,
    rate: list[str] = Query(default=[]),
    rounding: Optional[RoundingMode] = None,
    service: LedgerService = Depends(get_service),
):
    as_of = as_of or local_today()
    horizon_end = horizon_end or as_of + timedelta(days=get_settings().forecast_horizon_days)
    starting = Money(balance, currency or service.base_currency)
    points = service.forecast(
        as_of, horizon_end, starting, rates=rates_from_query(rate, rounding)
    )
    summary = summarize(points, starting)
    return {
        "as_of": as_of.isoformat(),
        "horizon_end": horizon_end.isoformat(),
        "summary": {
            "starting_balance": money_json(summary.starting_balance),
            "ending_balance": money_json(summary.ending_balance),
            "lowest_balance": money_json(summary.lowest_balance),
            "lowest_date": summary.lowest_date.isoformat() if summary.lowest_date else None,
            "steps": summary.steps,
        },
        "points": [
            {
                "date": point.date.isoformat(),
                "balance": money_json(point.balance),
                "transaction": transaction_json(point.transaction),
            }
            for point in points
        ],
    }


@app.get("/api/budget/{year_month}")
def api_budget(
    year_month: str,
    include_projected: bool = False,
    rate: list[str] = Query(default=[]),
    rounding: Optional[RoundingMode] = None,
    service: LedgerService = Depends(get_service),
):
    month = YearMonth.parse(year_month)
    lines = service.evaluate_budget(
        month, include_projected, rates=rates_from_query(rate, rounding)
    )
    return {
        "year_month": str(month),
        "include_projected": include_projected,
        "items": [budget_line_json(line) for line in lines],
    }


@app.get("/api/fx/quote")
def api_fx_quote(base: str, quote: str, on: Optional[date] = None):
    try:
        fx = FxRateService().quote_for_date(base, quote, on or local_today())
    except RuntimeError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {
        "provider": fx.provider,
        "base": fx.base,
        "quote": fx.quote,
        "rate": str(fx.rate),
        "rate_date": fx.rate_date.isoformat(),
        "fetched_at": fx.fetched_at.isoformat(),
    }
