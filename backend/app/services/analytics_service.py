"""
services/analytics_service.py — Cash, profit and pending read-models.

This file is the single place that decides which entries count for cash and
which count for profit. Dashboards, tests and any future export must go
through counts_for_cash() / counts_for_profit(); do not re-derive the rules.

Cash (what moved through the till or the bank):
  - CashIn +amount, CashOut -amount.
  - Advance counts when it is recorded: +amount for Sales (received from a
    customer), -amount otherwise (paid to a vendor).
  - Credit counts 0 until realized. Its realization rows (CashIn/CashOut)
    carry the cash.
  - Realization rows of an Advance count 0: the money already moved.

Profit (what was earned or spent):
  - Non-realization CashIn/CashOut of the category.
  - Credit of the category (accrual: recognised when recorded).
  - Advance of the category once fully settled.
  - Realization rows never count; they would double the Credit/Advance.
  - Assets are capital spend and never reach profit.

Pending:
  - Unsettled, non-realization Credit/Advance with outstanding > 0, grouped
    by party, largest total first.

Trends and breakdowns (per-category inflow/outflow, daily cash flow, month
  over month, monthly profit, expense split) are built from cash_delta() and
  counts_for_profit() like everything else. Percentages are rounded half-up
  to 2 dp and are 0.00 when the base is zero.

Every read-model below is a pure function over a list of entries (ORM rows or
any object with the same attributes). Windows are inclusive on entry_date.
They never raise.

Layer rules:
  - No Flask imports. Response builders take user_id and session arguments.
  - Returns plain Python dicts and lists; amounts are Decimal until the
    response builders turn them into strings.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.entry import Category, EntryType, EXPENSE_CATEGORIES, PaymentMethod
from backend.app.models.party import Party
from backend.app.services.entry_rules import is_realization, realized_entry_type
from backend.app.services.entry_service import list_entries_for_user

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


# ── Classification helpers ─────────────────────────────────────────────────

def _index_by_id(entries: Iterable[Any]) -> dict[int, Any]:
    return {e.id: e for e in entries if getattr(e, "id", None) is not None}


def source_entry_type(entry: Any, index: dict[int, Any] | None = None) -> EntryType | None:
    """
    EntryType of the Credit/Advance a realization entry settled.

    Looks the source up by source_entry_id first, then falls back to the
    type written in the notes marker.
    """
    source_id = getattr(entry, "source_entry_id", None)
    if index is not None and source_id is not None and source_id in index:
        return index[source_id].entry_type
    return realized_entry_type(entry)


def cash_delta(entry: Any, index: dict[int, Any] | None = None) -> Decimal:
    """Signed effect of one entry on the cash balance."""
    if entry.entry_type == EntryType.CREDIT:
        return ZERO

    if entry.entry_type == EntryType.ADVANCE:
        return entry.amount if entry.category == Category.SALES else -entry.amount

    if is_realization(entry) and source_entry_type(entry, index) == EntryType.ADVANCE:
        return ZERO

    return entry.amount if entry.entry_type == EntryType.CASH_IN else -entry.amount


def counts_for_cash(entry: Any, index: dict[int, Any] | None = None) -> bool:
    return cash_delta(entry, index) != ZERO


def counts_for_profit(entry: Any) -> bool:
    if entry.category == Category.ASSETS:
        return False
    if entry.entry_type in (EntryType.CASH_IN, EntryType.CASH_OUT):
        return not is_realization(entry)
    if entry.entry_type == EntryType.CREDIT:
        return True
    # Advance: recognised only once the goods/services have been delivered.
    return bool(entry.settled)


def in_window(entry: Any, start_date: date | None = None, end_date: date | None = None) -> bool:
    if start_date is not None and entry.entry_date < start_date:
        return False
    if end_date is not None and entry.entry_date > end_date:
        return False
    return True


def _windowed(entries: Iterable[Any], start_date: date | None, end_date: date | None) -> list[Any]:
    return [e for e in entries if in_window(e, start_date, end_date)]


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole as a percentage rounded half-up to 2 dp; 0.00 when whole is zero."""
    if whole == ZERO:
        return ZERO
    return (part / whole * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def _month_bounds(month_start: date) -> tuple[date, date]:
    return month_start, month_start + relativedelta(months=1, days=-1)


def _ranked(rows: list[dict]) -> list[dict]:
    """Adds each row's share of the total and sorts largest amount first."""
    total = sum((row["amount"] for row in rows), ZERO)
    for row in rows:
        row["percentage"] = _percent(row["amount"], total)
    rows.sort(key=lambda row: (-row["amount"], row["category"]))
    return rows


# ── Cash read-models ───────────────────────────────────────────────────────

def cash_balance(entries: Iterable[Any]) -> Decimal:
    """All-time cash position over the whole ledger."""
    entries = list(entries)
    index = _index_by_id(entries)
    return sum((cash_delta(e, index) for e in entries), ZERO)


def cash_totals(
        entries: Iterable[Any],
        start_date: date | None = None,
        end_date: date | None = None,
) -> dict[str, Decimal]:
    """Inflow, outflow and net flow inside the window."""
    entries = list(entries)
    index = _index_by_id(entries)

    cash_in = ZERO
    cash_out = ZERO
    for entry in _windowed(entries, start_date, end_date):
        delta = cash_delta(entry, index)
        if delta > 0:
            cash_in += delta
        else:
            cash_out -= delta

    return {"cash_in": cash_in, "cash_out": cash_out, "net_flow": cash_in - cash_out}


def cash_by_payment_method(
        entries: Iterable[Any],
        start_date: date | None = None,
        end_date: date | None = None,
) -> dict[str, Decimal]:
    """Net cash per bucket. Credit rows (payment method None) never move money."""
    entries = list(entries)
    index = _index_by_id(entries)

    buckets = {PaymentMethod.CASH.value: ZERO, PaymentMethod.BANK.value: ZERO}
    for entry in _windowed(entries, start_date, end_date):
        delta = cash_delta(entry, index)
        if delta != ZERO and entry.payment_method in (PaymentMethod.CASH, PaymentMethod.BANK):
            buckets[PaymentMethod(entry.payment_method).value] += delta
    return buckets


def cash_by_category(
        entries: Iterable[Any],
        start_date: date | None = None,
        end_date: date | None = None,
) -> dict[str, Decimal]:
    entries = list(entries)
    index = _index_by_id(entries)

    breakdown = {category.value: ZERO for category in Category}
    for entry in _windowed(entries, start_date, end_date):
        breakdown[Category(entry.category).value] += cash_delta(entry, index)
    return breakdown


def _flow_by_category(
        entries: Iterable[Any],
        inflow: bool,
        start_date: date | None,
        end_date: date | None,
) -> list[dict]:
    entries = list(entries)
    index = _index_by_id(entries)

    amounts: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for entry in _windowed(entries, start_date, end_date):
        moved = cash_delta(entry, index)
        if not inflow:
            moved = -moved
        if moved <= ZERO:
            continue
        category = Category(entry.category).value
        amounts[category] += moved
        counts[category] += 1

    return _ranked([
        {"category": category, "amount": amount, "count": counts[category]}
        for category, amount in amounts.items()
    ])


def cash_in_by_category(
        entries: Iterable[Any],
        start_date: date | None = None,
        end_date: date | None = None,
) -> list[dict]:
    """
    Money received per category, largest first.

    Returns:
        [{"category": str, "amount": Decimal, "count": int,
          "percentage": Decimal}, ...]. Categories with no inflow are left out.
    """
    return _flow_by_category(entries, True, start_date, end_date)


def cash_out_by_category(
        entries: Iterable[Any],
        start_date: date | None = None,
        end_date: date | None = None,
) -> list[dict]:
    """Money paid out per category, largest first. Same shape as cash_in_by_category()."""
    return _flow_by_category(entries, False, start_date, end_date)


def cash_entry_count(
        entries: Iterable[Any],
        direction: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
) -> int:
    """
    Number of entries that moved cash inside the window.

    direction "in" counts inflows, "out" outflows, None both. Credit rows and
    realizations of an Advance move no cash and are never counted.
    """
    entries = list(entries)
    index = _index_by_id(entries)

    total = 0
    for entry in _windowed(entries, start_date, end_date):
        delta = cash_delta(entry, index)
        if direction == "in":
            total += delta > ZERO
        elif direction == "out":
            total += delta < ZERO
        else:
            total += delta != ZERO
    return total


def cash_flow_trend(entries: Iterable[Any], days: int = 30, today: date | None = None) -> list[dict]:
    """
    Daily inflow, outflow and net for the `days` days ending today, oldest first.

    Every day appears, including days without entries.
    """
    entries = list(entries)
    index = _index_by_id(entries)
    today = today or date.today()
    first_day = today - timedelta(days=days - 1)

    per_day = {
        first_day + timedelta(days=offset): {"cash_in": ZERO, "cash_out": ZERO}
        for offset in range(max(days, 0))
    }
    for entry in _windowed(entries, first_day, today):
        delta = cash_delta(entry, index)
        if delta > ZERO:
            per_day[entry.entry_date]["cash_in"] += delta
        elif delta < ZERO:
            per_day[entry.entry_date]["cash_out"] -= delta

    return [
        {"date": day, **flows, "net": flows["cash_in"] - flows["cash_out"]}
        for day, flows in sorted(per_day.items())
    ]


def monthly_comparison(entries: Iterable[Any], today: date | None = None) -> dict:
    """
    Cash flows of the current calendar month against the previous one.

    percent_change for cash_in and cash_out is relative to last month and
    0.00 when last month had none. The balance change is measured against
    the absolute value of last month's balance.
    """
    entries = list(entries)
    today = today or date.today()
    this_month = today.replace(day=1)
    last_month = this_month - relativedelta(months=1)

    def _month(month_start: date) -> dict[str, Decimal]:
        totals = cash_totals(entries, *_month_bounds(month_start))
        return {
            "cash_in": totals["cash_in"],
            "cash_out": totals["cash_out"],
            "balance": totals["net_flow"],
        }

    current = _month(this_month)
    previous = _month(last_month)

    return {
        "current": current,
        "previous": previous,
        "percent_change": {
            "cash_in": _percent(current["cash_in"] - previous["cash_in"], previous["cash_in"]),
            "cash_out": _percent(current["cash_out"] - previous["cash_out"], previous["cash_out"]),
            "balance": _percent(current["balance"] - previous["balance"], abs(previous["balance"])),
        },
    }


# ── Profit read-models ─────────────────────────────────────────────────────

def _profit_total(
        entries: Iterable[Any],
        categories: tuple[Category, ...],
        start_date: date | None,
        end_date: date | None,
) -> Decimal:
    return sum(
        (
            e.amount
            for e in _windowed(entries, start_date, end_date)
            if e.category in categories and counts_for_profit(e)
        ),
        ZERO,
    )


def revenue(entries, start_date: date | None = None, end_date: date | None = None) -> Decimal:
    return _profit_total(entries, (Category.SALES,), start_date, end_date)


def cogs(entries, start_date: date | None = None, end_date: date | None = None) -> Decimal:
    return _profit_total(entries, (Category.COGS,), start_date, end_date)


def opex(entries, start_date: date | None = None, end_date: date | None = None) -> Decimal:
    return _profit_total(entries, (Category.OPEX,), start_date, end_date)


def profit_metrics(
        entries: Iterable[Any],
        start_date: date | None = None,
        end_date: date | None = None,
) -> dict[str, Decimal]:
    """
    Profit & loss for the window.

    profit_margin is net_profit / revenue as a percentage rounded to 2 dp,
    and 0.00 when there is no revenue.
    """
    entries = list(entries)
    total_revenue = revenue(entries, start_date, end_date)
    total_cogs = cogs(entries, start_date, end_date)
    total_opex = opex(entries, start_date, end_date)

    gross_profit = total_revenue - total_cogs
    net_profit = gross_profit - total_opex

    return {
        "revenue": total_revenue,
        "cogs": total_cogs,
        "gross_profit": gross_profit,
        "operating_expenses": total_opex,
        "net_profit": net_profit,
        "profit_margin": _percent(net_profit, total_revenue),
    }


def expense_breakdown(
        entries: Iterable[Any],
        start_date: date | None = None,
        end_date: date | None = None,
) -> list[dict]:
    """
    COGS and Opex with their share of total expenses, largest first.

    Sales and Assets never appear. A category with nothing recognised in
    the window is left out.
    """
    entries = list(entries)
    rows = [
        {"category": category.value, "amount": _profit_total(entries, (category,), start_date, end_date)}
        for category in (Category.COGS, Category.OPEX)
    ]
    return _ranked([row for row in rows if row["amount"] > ZERO])


def profit_trend(entries: Iterable[Any], months: int = 6, today: date | None = None) -> list[dict]:
    """
    Revenue, expenses (COGS + Opex), profit and margin per calendar month.

    Covers the `months` months ending with the current one, oldest first.
    Month keys are "YYYY-MM".
    """
    entries = list(entries)
    this_month = (today or date.today()).replace(day=1)

    trend = []
    for back in range(months - 1, -1, -1):
        month_start, month_end = _month_bounds(this_month - relativedelta(months=back))
        metrics = profit_metrics(entries, month_start, month_end)
        expenses = metrics["cogs"] + metrics["operating_expenses"]
        trend.append({
            "month": month_start.strftime("%Y-%m"),
            "revenue": metrics["revenue"],
            "expenses": expenses,
            "profit": metrics["net_profit"],
            "margin": metrics["profit_margin"],
        })
    return trend


# ── Pending read-models ────────────────────────────────────────────────────

def _is_pending(entry: Any) -> bool:
    if entry.entry_type not in (EntryType.CREDIT, EntryType.ADVANCE):
        return False
    if entry.settled or is_realization(entry):
        return False
    return _outstanding(entry) > ZERO


def _outstanding(entry: Any) -> Decimal:
    return entry.remaining_amount if entry.remaining_amount is not None else entry.amount


def _group_by_party(entries: Iterable[Any]) -> list[dict]:
    """
    Groups pending entries by party_id.

    Returns:
        [{"party_id": int | None, "total": Decimal, "count": int,
          "entries": [entry, ...]}, ...] largest total first. Entries without
        a party form one group with party_id None.
    """
    groups: dict[int | None, list[Any]] = defaultdict(list)
    for entry in entries:
        groups[getattr(entry, "party_id", None)].append(entry)

    result = [
        {
            "party_id": party_id,
            "total": sum((_outstanding(e) for e in members), ZERO),
            "count": len(members),
            "entries": members,
        }
        for party_id, members in groups.items()
    ]
    result.sort(key=lambda g: g["total"], reverse=True)
    return result


def pending_collections(entries: Iterable[Any]) -> list[dict]:
    """Credit sales still to be collected from customers."""
    return _group_by_party(
        e for e in entries
        if _is_pending(e) and e.entry_type == EntryType.CREDIT and e.category == Category.SALES
    )


def pending_bills(entries: Iterable[Any]) -> list[dict]:
    """Credit purchases and expenses still to be paid to vendors."""
    return _group_by_party(
        e for e in entries
        if _is_pending(e) and e.entry_type == EntryType.CREDIT and e.category in EXPENSE_CATEGORIES
    )


def pending_advances(entries: Iterable[Any]) -> dict[str, list[dict]]:
    """
    Advances not yet delivered against.

    received: money taken from customers (Sales) for goods still owed.
    paid:     money given to vendors for goods/services still to arrive.
    """
    advances = [e for e in entries if _is_pending(e) and e.entry_type == EntryType.ADVANCE]
    return {
        "received": _group_by_party(e for e in advances if e.category == Category.SALES),
        "paid": _group_by_party(e for e in advances if e.category != Category.SALES),
    }


# ── Response builders ──────────────────────────────────────────────────────

def _check_window(start_date: date | None, end_date: date | None) -> None:
    if start_date is not None and end_date is not None and start_date > end_date:
        raise AppError(
            ErrorCode.INVALID_DATE_RANGE,
            "start_date must be on or before end_date.",
            400,
            field="start_date",
        )


def _stringify(values: dict[str, Decimal]) -> dict[str, str]:
    return {key: str(value) for key, value in values.items()}


def _jsonable(value: Any) -> Any:
    """Decimals to strings and dates to ISO strings, through nested dicts and lists."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    return value


def _party_names(user_id: str, session: Session) -> dict[int, str]:
    stmt = select(Party.id, Party.name).where(Party.user_id == user_id)
    return {row.id: row.name for row in session.execute(stmt).all()}


def _serialize_groups(groups: list[dict], party_map: dict[int, str]) -> list[dict]:
    return [
        {
            "party_id": g["party_id"],
            "party_name": party_map.get(g["party_id"]) if g["party_id"] is not None else None,
            "total": str(g["total"]),
            "count": g["count"],
            "entry_ids": [e.id for e in g["entries"]],
        }
        for g in groups
    ]


def _groups_total(groups: list[dict]) -> Decimal:
    return sum((g["total"] for g in groups), ZERO)


def get_cash_pulse(
        user_id: str,
        session: Session,
        start_date: date | None = None,
        end_date: date | None = None,
        today: date | None = None,
) -> dict:
    """
    Builds the payload for GET /analytics/cash-pulse.

    `balance` is always the all-time position; the flow figures, breakdowns
    and entry counts respect the window. `trend` covers the last 30 days and
    `monthly_comparison` the current and previous calendar months, both
    anchored on `today`.
    """
    _check_window(start_date, end_date)
    entries = list_entries_for_user(user_id, session)

    return {
        "balance": str(cash_balance(entries)),
        **_stringify(cash_totals(entries, start_date, end_date)),
        "by_payment_method": _stringify(cash_by_payment_method(entries, start_date, end_date)),
        "by_category": _stringify(cash_by_category(entries, start_date, end_date)),
        "cash_in_by_category": _jsonable(cash_in_by_category(entries, start_date, end_date)),
        "cash_out_by_category": _jsonable(cash_out_by_category(entries, start_date, end_date)),
        "entry_count": {
            "in": cash_entry_count(entries, "in", start_date, end_date),
            "out": cash_entry_count(entries, "out", start_date, end_date),
            "all": cash_entry_count(entries, None, start_date, end_date),
        },
        "trend": _jsonable(cash_flow_trend(entries, today=today)),
        "monthly_comparison": _jsonable(monthly_comparison(entries, today=today)),
        "start_date": start_date.isoformat() if start_date else None,
        "end_date": end_date.isoformat() if end_date else None,
    }


def get_profit_lens(
        user_id: str,
        session: Session,
        start_date: date | None = None,
        end_date: date | None = None,
        today: date | None = None,
) -> dict:
    """
    Builds the payload for GET /analytics/profit-lens.

    The headline figures and expense_breakdown respect the window; `trend`
    is the last six calendar months ending with today's.
    """
    _check_window(start_date, end_date)
    entries = list_entries_for_user(user_id, session)

    return {
        **_stringify(profit_metrics(entries, start_date, end_date)),
        "expense_breakdown": _jsonable(expense_breakdown(entries, start_date, end_date)),
        "trend": _jsonable(profit_trend(entries, today=today)),
        "start_date": start_date.isoformat() if start_date else None,
        "end_date": end_date.isoformat() if end_date else None,
    }


def get_pending(user_id: str, session: Session) -> dict:
    """Builds the payload for GET /analytics/pending."""
    entries = list_entries_for_user(user_id, session)
    party_map = _party_names(user_id, session)

    collections = pending_collections(entries)
    bills = pending_bills(entries)
    advances = pending_advances(entries)

    return {
        "collections": {
            "total": str(_groups_total(collections)),
            "parties": _serialize_groups(collections, party_map),
        },
        "bills": {
            "total": str(_groups_total(bills)),
            "parties": _serialize_groups(bills, party_map),
        },
        "advances": {
            "received_total": str(_groups_total(advances["received"])),
            "paid_total": str(_groups_total(advances["paid"])),
            "received": _serialize_groups(advances["received"], party_map),
            "paid": _serialize_groups(advances["paid"], party_map),
        },
    }
