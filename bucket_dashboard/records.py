"""Income, bill and expense records.

Status changes are plain toggles set by the user (``expected``/``received``
for income, ``pending``/``paid`` for bills); applying the same status twice
is harmless. Paying an auto-deduct bill takes the amount out of its
payment bucket.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from . import db
from .budget import available_for_budget, total_monthly_expenses, total_monthly_income
from .buckets import deduct_from_bucket, find_bucket, get_bucket
from .defaults import BILL_FREQUENCIES, BILL_KINDS, INCOME_FREQUENCIES, PAYMENT_MODES, PAYMENT_TYPES
from .exceptions import NotFoundError, ValidationError
from .models import Bill, BillPayment, Expense, Income, to_decimal
from .rules import resolve_bucket_for_expense

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

_INCOME_FIELDS = {"label", "amount", "frequency", "day_of_month"}
_BILL_FIELDS = {
    "label",
    "amount",
    "kind",
    "frequency",
    "due_day",
    "payment_mode",
    "payment_bucket_id",
    "payment_type",
}


def _positive_amount(amount: Any) -> Decimal:
    try:
        value = to_decimal(amount)
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc)) from exc
    if value is None or value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value


def _label(label: str) -> str:
    if not label or not label.strip():
        raise ValidationError("Label cannot be empty")
    return label.strip()


def _day(value: Optional[int], field: str) -> Optional[int]:
    if value is None:
        return None
    try:
        day = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a whole number") from exc
    if not 1 <= day <= 31:
        raise ValidationError(f"{field} must be between 1 and 31")
    return day


def _choice(value: str, choices: Sequence[str], what: str) -> str:
    if value not in choices:
        raise ValidationError(f"Unknown {what}: {value}")
    return value


def _unknown_fields(changes: Mapping[str, Any], allowed: set) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")


def _sum_amounts(items) -> Decimal:
    return sum((item.amount for item in items), ZERO)


# ---------------------------------------------------------------------------
# Income
# ---------------------------------------------------------------------------

def _clean_income(values: Mapping[str, Any]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    if "label" in values:
        clean["label"] = _label(values["label"])
    if "amount" in values:
        clean["amount"] = _positive_amount(values["amount"])
    if "frequency" in values:
        clean["frequency"] = _choice(values["frequency"], INCOME_FREQUENCIES, "income frequency")
    if "day_of_month" in values:
        clean["day_of_month"] = _day(values["day_of_month"], "Day of month")
    return clean


def add_income(
    conn: sqlite3.Connection,
    owner_id: str,
    label: str,
    amount: Any,
    frequency: str = "monthly",
    day_of_month: Optional[int] = None,
) -> Income:
    values = _clean_income({
        "label": label,
        "amount": amount,
        "frequency": frequency,
        "day_of_month": day_of_month,
    })
    now = db.utc_now()
    row = db.insert_row(conn, "incomes", {"user_id": owner_id, **values, "created_at": now, "updated_at": now})
    return Income.from_row(row)


def update_income(conn: sqlite3.Connection, owner_id: str, income_id: str, **changes: Any) -> Income:
    """Edit an income's label, amount, frequency or day of month."""
    _unknown_fields(changes, _INCOME_FIELDS)
    values = _clean_income(changes)
    values["updated_at"] = db.utc_now()
    row = db.update_row(conn, "incomes", income_id, owner_id, values)
    if row is None:
        raise NotFoundError(f"Income {income_id} not found")
    return Income.from_row(row)


def list_incomes(conn: sqlite3.Connection, owner_id: str) -> List[Income]:
    return [Income.from_row(row) for row in db.find_all(conn, "incomes", owner_id)]


def _set_income_status(conn: sqlite3.Connection, owner_id: str, income_id: str, status: str) -> Income:
    row = db.update_row(conn, "incomes", income_id, owner_id, {"status": status, "updated_at": db.utc_now()})
    if row is None:
        raise NotFoundError(f"Income {income_id} not found")
    return Income.from_row(row)


def mark_income_received(conn: sqlite3.Connection, owner_id: str, income_id: str) -> Income:
    return _set_income_status(conn, owner_id, income_id, "received")


def mark_income_expected(conn: sqlite3.Connection, owner_id: str, income_id: str) -> Income:
    return _set_income_status(conn, owner_id, income_id, "expected")


def total_expected_income(conn: sqlite3.Connection, owner_id: str) -> Decimal:
    """Sum of income amounts not yet received, as entered (not normalised)."""
    return _sum_amounts(i for i in list_incomes(conn, owner_id) if i.status == "expected")


def total_received_income(conn: sqlite3.Connection, owner_id: str) -> Decimal:
    return _sum_amounts(i for i in list_incomes(conn, owner_id) if i.status == "received")


def delete_income(conn: sqlite3.Connection, owner_id: str, income_id: str) -> None:
    if not db.delete_row(conn, "incomes", income_id, owner_id):
        raise NotFoundError(f"Income {income_id} not found")


# ---------------------------------------------------------------------------
# Bills, debts and subscriptions
# ---------------------------------------------------------------------------

def _clean_bill(values: Mapping[str, Any]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    if "label" in values:
        clean["label"] = _label(values["label"])
    if "amount" in values:
        clean["amount"] = _positive_amount(values["amount"])
    if "kind" in values:
        clean["kind"] = _choice(values["kind"], BILL_KINDS, "bill kind")
    if "frequency" in values:
        clean["frequency"] = _choice(values["frequency"], BILL_FREQUENCIES, "bill frequency")
    if "due_day" in values:
        clean["due_day"] = _day(values["due_day"], "Due day")
    if "payment_mode" in values:
        clean["payment_mode"] = _choice(values["payment_mode"], PAYMENT_MODES, "payment mode")
    if "payment_type" in values:
        clean["payment_type"] = _choice(values["payment_type"], PAYMENT_TYPES, "payment type")
    if "payment_bucket_id" in values:
        clean["payment_bucket_id"] = values["payment_bucket_id"] or None
    return clean


def _check_payment_source(
    conn: sqlite3.Connection,
    owner_id: str,
    payment_mode: str,
    payment_bucket_id: Optional[str],
) -> None:
    if payment_mode == "auto_deduct" and not payment_bucket_id:
        raise ValidationError("Auto-deduct bills need a payment bucket")
    if payment_bucket_id:
        get_bucket(conn, owner_id, payment_bucket_id)


def add_bill(
    conn: sqlite3.Connection,
    owner_id: str,
    label: str,
    amount: Any,
    kind: str = "bill",
    frequency: str = "monthly",
    due_day: Optional[int] = None,
    payment_mode: str = "manual",
    payment_bucket_id: Optional[str] = None,
    payment_type: str = "fixed",
) -> Bill:
    values = _clean_bill({
        "label": label,
        "amount": amount,
        "kind": kind,
        "frequency": frequency,
        "due_day": due_day,
        "payment_mode": payment_mode,
        "payment_bucket_id": payment_bucket_id,
        "payment_type": payment_type,
    })
    _check_payment_source(conn, owner_id, values["payment_mode"], values["payment_bucket_id"])

    now = db.utc_now()
    row = db.insert_row(conn, "bills", {"user_id": owner_id, **values, "created_at": now, "updated_at": now})
    return Bill.from_row(row)


def update_bill(conn: sqlite3.Connection, owner_id: str, bill_id: str, **changes: Any) -> Bill:
    """Edit a bill.

    Switching to ``auto_deduct`` needs a payment bucket, either passed here
    or already on the bill.
    """
    _unknown_fields(changes, _BILL_FIELDS)
    values = _clean_bill(changes)
    with db.transaction(conn):
        bill = get_bill(conn, owner_id, bill_id)
        _check_payment_source(
            conn,
            owner_id,
            values.get("payment_mode", bill.payment_mode),
            values.get("payment_bucket_id", bill.payment_bucket_id),
        )
        values["updated_at"] = db.utc_now()
        row = db.update_row(conn, "bills", bill_id, owner_id, values)
    return Bill.from_row(row)


def list_bills(conn: sqlite3.Connection, owner_id: str, kind: Optional[str] = None) -> List[Bill]:
    filters = {"kind": kind} if kind else None
    return [Bill.from_row(row) for row in db.find_where(conn, "bills", owner_id, filters, order_by="due_day")]


def list_overdue_bills(conn: sqlite3.Connection, owner_id: str, today: Optional[date] = None) -> List[Bill]:
    """Pending bills whose due day has already passed this month."""
    day = (today or date.today()).day
    return [
        b for b in list_bills(conn, owner_id)
        if b.status == "pending" and b.due_day is not None and b.due_day < day
    ]


def list_upcoming_bills(
    conn: sqlite3.Connection,
    owner_id: str,
    days_ahead: int = 7,
    today: Optional[date] = None,
) -> List[Bill]:
    """Pending bills due from today through ``days_ahead`` days later.

    Due days are days of the month, so the window does not wrap into the
    next month.
    """
    day = (today or date.today()).day
    return [
        b for b in list_bills(conn, owner_id)
        if b.status == "pending" and b.due_day is not None and day <= b.due_day <= day + days_ahead
    ]


def total_pending_bills(conn: sqlite3.Connection, owner_id: str) -> Decimal:
    """Sum of unpaid bill amounts, as entered (not normalised)."""
    return _sum_amounts(b for b in list_bills(conn, owner_id) if b.status == "pending")


def get_bill(conn: sqlite3.Connection, owner_id: str, bill_id: str) -> Bill:
    row = db.find_by_id(conn, "bills", bill_id, owner_id)
    if row is None:
        raise NotFoundError(f"Bill {bill_id} not found")
    return Bill.from_row(row)


def _set_bill_status(conn: sqlite3.Connection, owner_id: str, bill_id: str, status: str) -> Bill:
    row = db.update_row(conn, "bills", bill_id, owner_id, {"status": status, "updated_at": db.utc_now()})
    if row is None:
        raise NotFoundError(f"Bill {bill_id} not found")
    return Bill.from_row(row)


def mark_bill_paid(conn: sqlite3.Connection, owner_id: str, bill_id: str) -> Bill:
    return _set_bill_status(conn, owner_id, bill_id, "paid")


def mark_bill_pending(conn: sqlite3.Connection, owner_id: str, bill_id: str) -> Bill:
    return _set_bill_status(conn, owner_id, bill_id, "pending")


def record_bill_payment(
    conn: sqlite3.Connection,
    owner_id: str,
    bill_id: str,
    amount: Any = None,
    paid_on: Optional[date] = None,
) -> BillPayment:
    """Record a payment against a bill and mark it paid.

    ``amount`` defaults to the bill amount for fixed bills; variable bills
    must say how much was paid. For auto-deduct bills whose payment bucket
    still exists, the amount is deducted from that bucket in the same
    transaction.
    """
    with db.transaction(conn):
        bill = get_bill(conn, owner_id, bill_id)
        if amount is None and bill.payment_type == "variable":
            raise ValidationError("Enter the amount paid for a variable bill")
        value = _positive_amount(amount if amount is not None else bill.amount)

        source_bucket_id = None
        if bill.payment_mode == "auto_deduct" and bill.payment_bucket_id:
            if find_bucket(conn, owner_id, bill.payment_bucket_id) is not None:
                deduct_from_bucket(conn, owner_id, bill.payment_bucket_id, value)
                source_bucket_id = bill.payment_bucket_id

        row = db.insert_row(conn, "bill_payments", {
            "user_id": owner_id,
            "bill_id": bill_id,
            "amount": value,
            "source_bucket_id": source_bucket_id,
            "paid_at": (paid_on or date.today()).isoformat(),
        })
        _set_bill_status(conn, owner_id, bill_id, "paid")

    logger.info("Recorded payment of %s for bill %s", value, bill.label)
    return BillPayment.from_row(row)


def list_bill_payments(conn: sqlite3.Connection, owner_id: str, bill_id: str) -> List[BillPayment]:
    rows = db.find_where(conn, "bill_payments", owner_id, {"bill_id": bill_id}, order_by="paid_at")
    return [BillPayment.from_row(row) for row in rows]


def delete_bill(conn: sqlite3.Connection, owner_id: str, bill_id: str) -> None:
    if not db.delete_row(conn, "bills", bill_id, owner_id):
        raise NotFoundError(f"Bill {bill_id} not found")


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------

def add_expense(
    conn: sqlite3.Connection,
    owner_id: str,
    label: str,
    amount: Any,
    category: Optional[str] = None,
    bucket_id: Optional[str] = None,
    spent_on: Optional[date] = None,
) -> Expense:
    """Record an expense.

    Without an explicit ``bucket_id`` the bucket comes from the owner's
    rules, falling back to the default bucket.
    """
    clean_label = _label(label)
    if bucket_id:
        get_bucket(conn, owner_id, bucket_id)
    else:
        bucket_id = resolve_bucket_for_expense(conn, owner_id, clean_label, category)

    row = db.insert_row(conn, "expenses", {
        "user_id": owner_id,
        "date": (spent_on or date.today()).isoformat(),
        "amount": _positive_amount(amount),
        "label": clean_label,
        "category": category,
        "bucket_id": bucket_id,
    })
    return Expense.from_row(row)


def list_expenses(conn: sqlite3.Connection, owner_id: str, bucket_id: Optional[str] = None) -> List[Expense]:
    """Expenses that have not been deleted, newest first."""
    filters: Dict[str, Any] = {"deleted_at": None}
    if bucket_id:
        filters["bucket_id"] = bucket_id
    rows = db.find_where(conn, "expenses", owner_id, filters, order_by="date", ascending=False)
    return [Expense.from_row(row) for row in rows]


def soft_delete_expense(conn: sqlite3.Connection, owner_id: str, expense_id: str) -> Expense:
    """Hide an expense from listings and totals until it is restored."""
    with db.transaction(conn):
        if db.find_one(conn, "expenses", owner_id, {"id": expense_id, "deleted_at": None}) is None:
            raise NotFoundError(f"Expense {expense_id} not found")
        row = db.update_row(conn, "expenses", expense_id, owner_id, {"deleted_at": db.utc_now()})
    logger.info("Deleted expense %s (restorable)", expense_id)
    return Expense.from_row(row)


def restore_expense(conn: sqlite3.Connection, owner_id: str, expense_id: str) -> Expense:
    with db.transaction(conn):
        row = db.find_by_id(conn, "expenses", expense_id, owner_id)
        if row is None or row["deleted_at"] is None:
            raise NotFoundError(f"Deleted expense {expense_id} not found")
        row = db.update_row(conn, "expenses", expense_id, owner_id, {"deleted_at": None})
    return Expense.from_row(row)


def list_deleted_expenses(conn: sqlite3.Connection, owner_id: str, limit: int = 20) -> List[Expense]:
    """Most recently deleted expenses first, for undo."""
    rows = conn.execute(
        "SELECT * FROM expenses WHERE user_id = ? AND deleted_at IS NOT NULL "
        "ORDER BY deleted_at DESC, rowid DESC LIMIT ?",
        (owner_id, limit),
    ).fetchall()
    return [Expense.from_row(dict(row)) for row in rows]


def delete_expense(conn: sqlite3.Connection, owner_id: str, expense_id: str) -> None:
    """Remove an expense permanently, deleted or not."""
    if not db.delete_row(conn, "expenses", expense_id, owner_id):
        raise NotFoundError(f"Expense {expense_id} not found")


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------

def remaining_budget(conn: sqlite3.Connection, owner_id: str) -> Decimal:
    """Monthly income minus monthly bills, debts and subscriptions (never negative)."""
    income = total_monthly_income(list_incomes(conn, owner_id))
    obligations = total_monthly_expenses(list_bills(conn, owner_id))
    return available_for_budget(income, obligations)
