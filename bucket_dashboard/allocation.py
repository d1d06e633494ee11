"""Bucket allocation arithmetic.

Splits a remaining monthly budget across buckets. Fixed-amount buckets are
funded first, in the order given, each taking as much of its target as the
budget still allows. Percentage buckets then share whatever is left,
with their percentages normalised to their actual sum (30 + 30 behaves like
50 / 50). Everything here is pure; persisting the results is the caller's job.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, List, Optional, Sequence, Tuple

from .exceptions import ValidationError
from .models import Allocation, Bucket, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
WHOLE_UNIT = Decimal("1")


def round_currency(amount: Decimal) -> Decimal:
    """Round to whole currency units, halves away from zero."""
    return amount.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def is_fixed(bucket: Bucket) -> bool:
    return bucket.target_amount is not None and bucket.target_amount > 0


def is_percentage(bucket: Bucket) -> bool:
    return (
        not is_fixed(bucket)
        and bucket.percentage is not None
        and bucket.percentage > 0
    )


def _budget(remaining_budget: Any) -> Decimal:
    budget = to_decimal(remaining_budget)
    if budget is None:
        return ZERO
    if budget < 0:
        logger.warning("Negative remaining budget %s treated as 0", budget)
        return ZERO
    return budget


def calculate_allocations(buckets: Sequence[Bucket], remaining_budget: Any) -> List[Allocation]:
    """Compute each bucket's share of ``remaining_budget``.

    Args:
        buckets: Buckets in priority order; fixed buckets listed first win
            scarce budget first.
        remaining_budget: Income left after fixed obligations. Negative
            values are treated as 0.

    Returns:
        One ``Allocation`` per input bucket, in input order. Buckets with
        neither a positive target nor a positive percentage get 0.
    """
    if not buckets:
        return []

    budget = _budget(remaining_budget)
    amounts: List[Decimal] = [ZERO] * len(buckets)

    fixed_total = ZERO
    for index, bucket in enumerate(buckets):
        if not is_fixed(bucket):
            continue
        amount = max(ZERO, min(bucket.target_amount, budget - fixed_total))
        fixed_total += amount
        amounts[index] = amount

    remaining_after_fixed = max(ZERO, budget - fixed_total)

    percentage_indexes = [i for i, bucket in enumerate(buckets) if is_percentage(bucket)]
    total_percentage = sum((buckets[i].percentage for i in percentage_indexes), ZERO)
    if total_percentage > 0:
        for index in percentage_indexes:
            share = buckets[index].percentage / total_percentage
            amounts[index] = round_currency(remaining_after_fixed * share)

    return [Allocation(bucket.id, amount) for bucket, amount in zip(buckets, amounts)]


def balance_after_deduction(current: Decimal, amount: Any) -> Decimal:
    """Subtract a payment from a balance, flooring at zero."""
    try:
        value = to_decimal(amount)
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc)) from exc
    if value is None or value < 0:
        raise ValidationError("Deduction amount must be zero or positive")
    return max(ZERO, current - value)


def validate_allocation_kind(
    target_amount: Any = None,
    percentage: Any = None,
) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """Check that exactly one of target amount and percentage is set.

    Zero counts as unset. Returns the pair as Decimals with the unused side
    set to ``None``.

    Raises:
        ValidationError: both or neither are set, a value is negative, or the
            percentage is above 100.
    """
    try:
        target = to_decimal(target_amount)
        pct = to_decimal(percentage)
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc)) from exc

    if target is not None and target < 0:
        raise ValidationError("Target amount cannot be negative")
    if pct is not None and pct < 0:
        raise ValidationError("Percentage cannot be negative")
    if pct is not None and pct > HUNDRED:
        raise ValidationError("Percentage cannot exceed 100")

    has_target = target is not None and target > 0
    has_pct = pct is not None and pct > 0
    if has_target and has_pct:
        raise ValidationError("A bucket has either a target amount or a percentage, not both")
    if not has_target and not has_pct:
        raise ValidationError("A bucket needs a target amount or a percentage")

    return (target if has_target else None, pct if has_pct else None)


def total_allocated(allocations: Sequence[Allocation]) -> Decimal:
    return sum((a.allocated_amount for a in allocations), ZERO)
