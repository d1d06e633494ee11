"""Monthly budget totals: income, fixed obligations and what is left for buckets."""

from __future__ import annotations

import calendar
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable, Optional, Sequence, Tuple

from .models import Bill, Bucket, Income, to_decimal

ZERO = Decimal("0")

# Average periods per month
MONTHLY_FACTORS = {
    "weekly": Decimal("4.33"),
    "biweekly": Decimal("2.17"),
    "monthly": Decimal("1"),
}
MONTHLY_DIVISORS = {
    "quarterly": Decimal("3"),
    "yearly": Decimal("12"),
}


def normalize_to_monthly(amount, frequency: str) -> Decimal:
    """Convert an amount paid at ``frequency`` into its monthly equivalent.

    One-time amounts do not recur, so they contribute nothing. Unknown
    frequencies are treated as monthly.
    """
    value = to_decimal(amount) or ZERO
    if frequency == "once":
        return ZERO
    if frequency in MONTHLY_DIVISORS:
        return value / MONTHLY_DIVISORS[frequency]
    return value * MONTHLY_FACTORS.get(frequency, Decimal("1"))


def total_monthly_income(incomes: Iterable[Income]) -> Decimal:
    return sum((normalize_to_monthly(i.amount, i.frequency) for i in incomes), ZERO)


def total_monthly_expenses(bills: Iterable[Bill]) -> Decimal:
    return sum((normalize_to_monthly(b.amount, b.frequency) for b in bills), ZERO)


def available_for_budget(total_income, total_expenses) -> Decimal:
    """Income left after fixed obligations, never below zero."""
    return max(ZERO, (to_decimal(total_income) or ZERO) - (to_decimal(total_expenses) or ZERO))


def days_in_month(day: Optional[date] = None) -> int:
    day = day or date.today()
    return calendar.monthrange(day.year, day.month)[1]


def daily_limit(monthly_amount, days: int) -> Decimal:
    """Whole-unit daily spending limit for a monthly amount."""
    if days <= 0:
        raise ValueError("days must be positive")
    value = to_decimal(monthly_amount) or ZERO
    return (value / days).quantize(Decimal("1"), rounding=ROUND_FLOOR)


def default_bucket_daily_limit(buckets: Sequence[Bucket], available, days: int) -> Decimal:
    """Daily limit derived from the default bucket.

    Uses the bucket's fixed target, or its percentage of ``available``.
    Without a default bucket, half of ``available`` is spread over the month.
    """
    available_amount = to_decimal(available) or ZERO
    default = next((b for b in buckets if b.is_default), None)
    if default is None:
        return daily_limit(available_amount / 2, days)
    if default.target_amount is not None and default.target_amount > 0:
        return daily_limit(default.target_amount, days)
    pct = default.percentage or ZERO
    return daily_limit(available_amount * pct / 100, days)


def percentage_total_check(buckets: Iterable[Bucket]) -> Tuple[bool, Decimal]:
    """Whether percentage buckets add up to 100.

    Only informational: the allocator normalises whatever the total is.
    Fixed buckets are ignored.
    """
    total = sum(
        (b.percentage for b in buckets
         if b.percentage is not None and not (b.target_amount is not None and b.target_amount > 0)),
        ZERO,
    )
    return abs(total - 100) < Decimal("0.01"), total
