"""Record types for buckets, rules and the income/bill/expense records.

Rows come out of SQLite as plain dicts; ``from_row`` turns them into
dataclasses with ``Decimal`` amounts and real booleans.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

FIXED = "fixed"
PERCENTAGE = "percentage"
UNALLOCATED = "none"


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a stored or user-supplied amount to ``Decimal``.

    ``None`` and empty strings stay ``None``; floats go through ``str`` so
    0.1 stays 0.1. NaN and infinities are rejected with ``ValueError``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError("Booleans are not amounts")
    if isinstance(value, Decimal):
        result = value
    else:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


@dataclass
class Bucket:
    """A named spending envelope."""
    id: str
    owner_id: str
    name: str
    slug: str
    percentage: Optional[Decimal] = None
    target_amount: Optional[Decimal] = None
    allocated_amount: Optional[Decimal] = None
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_default: bool = False
    is_system: bool = False
    sort_order: int = 0

    @property
    def allocation_kind(self) -> str:
        # A positive target wins; matches how the allocator partitions.
        if self.target_amount is not None and self.target_amount > 0:
            return FIXED
        if self.percentage is not None and self.percentage > 0:
            return PERCENTAGE
        return UNALLOCATED

    @property
    def balance(self) -> Decimal:
        """Spendable amount: allocation, else the fixed target, else zero."""
        if self.allocated_amount is not None:
            return self.allocated_amount
        if self.target_amount is not None:
            return self.target_amount
        return Decimal("0")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Bucket":
        return cls(
            id=row["id"],
            owner_id=row["user_id"],
            name=row["name"],
            slug=row["slug"],
            percentage=to_decimal(row.get("percentage")),
            target_amount=to_decimal(row.get("target_amount")),
            allocated_amount=to_decimal(row.get("allocated_amount")),
            description=row.get("description"),
            color=row.get("color"),
            icon=row.get("icon"),
            is_default=bool(row.get("is_default")),
            is_system=bool(row.get("is_system")),
            sort_order=int(row.get("sort_order") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Allocation:
    bucket_id: str
    allocated_amount: Decimal


@dataclass
class BucketRule:
    """Proposes a bucket for new expenses by label, keyword or category."""
    id: str
    owner_id: str
    bucket_id: str
    match_type: str
    match_value: str
    priority: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BucketRule":
        return cls(
            id=row["id"],
            owner_id=row["user_id"],
            bucket_id=row["bucket_id"],
            match_type=row["match_type"],
            match_value=row["match_value"],
            priority=int(row.get("priority") or 0),
        )


@dataclass
class Income:
    id: str
    owner_id: str
    label: str
    amount: Decimal
    frequency: str = "monthly"
    day_of_month: Optional[int] = None
    status: str = "expected"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Income":
        return cls(
            id=row["id"],
            owner_id=row["user_id"],
            label=row["label"],
            amount=to_decimal(row["amount"]),
            frequency=row.get("frequency") or "monthly",
            day_of_month=row.get("day_of_month"),
            status=row.get("status") or "expected",
        )


@dataclass
class Bill:
    """A recurring obligation: bill, debt or subscription."""
    id: str
    owner_id: str
    label: str
    amount: Decimal
    kind: str = "bill"
    frequency: str = "monthly"
    due_day: Optional[int] = None
    status: str = "pending"
    payment_mode: str = "manual"
    payment_bucket_id: Optional[str] = None
    payment_type: str = "fixed"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Bill":
        return cls(
            id=row["id"],
            owner_id=row["user_id"],
            label=row["label"],
            amount=to_decimal(row["amount"]),
            kind=row.get("kind") or "bill",
            frequency=row.get("frequency") or "monthly",
            due_day=row.get("due_day"),
            status=row.get("status") or "pending",
            payment_mode=row.get("payment_mode") or "manual",
            payment_bucket_id=row.get("payment_bucket_id"),
            payment_type=row.get("payment_type") or "fixed",
        )


@dataclass
class BillPayment:
    id: str
    owner_id: str
    bill_id: str
    amount: Decimal
    source_bucket_id: Optional[str]
    paid_at: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BillPayment":
        return cls(
            id=row["id"],
            owner_id=row["user_id"],
            bill_id=row["bill_id"],
            amount=to_decimal(row["amount"]),
            source_bucket_id=row.get("source_bucket_id"),
            paid_at=row["paid_at"],
        )


@dataclass
class Expense:
    id: str
    owner_id: str
    date: str
    amount: Decimal
    label: str
    category: Optional[str] = None
    bucket_id: Optional[str] = None
    deleted_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Expense":
        return cls(
            id=row["id"],
            owner_id=row["user_id"],
            date=row["date"],
            amount=to_decimal(row["amount"]),
            label=row["label"],
            category=row.get("category"),
            bucket_id=row.get("bucket_id"),
            deleted_at=row.get("deleted_at"),
        )
