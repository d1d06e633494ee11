"""Tabular views of buckets for the dashboard.

This module turns buckets, allocations and expenses into DataFrames that
the Streamlit pages render directly and that :mod:`visualization` charts.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, Optional, Sequence

import pandas as pd

from .models import Allocation, Bucket, Expense

ALLOCATION_COLUMNS = ["Bucket", "Kind", "Target", "Percentage", "Allocated", "Share of Income %", "Color"]
SUMMARY_COLUMNS = ["Bucket", "Allocated", "Spent", "Remaining", "Used %", "Default", "Color"]


def _float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def allocation_frame(
    buckets: Sequence[Bucket],
    allocations: Iterable[Allocation],
    total_income=None,
) -> pd.DataFrame:
    """One row per bucket with its allocation and share of total income.

    Args:
        buckets: Buckets in display order.
        allocations: Results of ``calculate_allocations``; buckets missing
            here fall back to their stored ``allocated_amount``.
        total_income: Monthly income used for the share column. When it is
            missing or zero the share is 0.

    Returns:
        DataFrame with the columns in ``ALLOCATION_COLUMNS``.
    """
    if not buckets:
        return pd.DataFrame(columns=ALLOCATION_COLUMNS)

    by_id: Dict[str, Decimal] = {a.bucket_id: a.allocated_amount for a in allocations}
    income = float(total_income) if total_income else 0.0

    records = []
    for bucket in buckets:
        allocated = by_id.get(bucket.id, bucket.allocated_amount or Decimal("0"))
        amount = float(allocated)
        records.append({
            "Bucket": bucket.name,
            "Kind": bucket.allocation_kind,
            "Target": _float(bucket.target_amount),
            "Percentage": _float(bucket.percentage),
            "Allocated": amount,
            "Share of Income %": round(amount / income * 100, 2) if income > 0 else 0.0,
            "Color": bucket.color,
        })
    return pd.DataFrame(records, columns=ALLOCATION_COLUMNS)


def bucket_summary_frame(buckets: Sequence[Bucket], expenses: Iterable[Expense]) -> pd.DataFrame:
    """Allocated vs. spent per bucket, for progress bars."""
    if not buckets:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    spend = pd.DataFrame(
        [{"bucket_id": e.bucket_id, "amount": float(e.amount)} for e in expenses if e.bucket_id],
        columns=["bucket_id", "amount"],
    )
    spent_by_bucket = spend.groupby("bucket_id")["amount"].sum() if not spend.empty else pd.Series(dtype=float)

    df = pd.DataFrame({
        "Bucket": [b.name for b in buckets],
        "Allocated": [float(b.allocated_amount or 0) for b in buckets],
        "Spent": [float(spent_by_bucket.get(b.id, 0.0)) for b in buckets],
        "Default": [b.is_default for b in buckets],
        "Color": [b.color for b in buckets],
    })
    df["Remaining"] = df["Allocated"] - df["Spent"]
    df["Used %"] = df.apply(
        lambda r: round(r["Spent"] / r["Allocated"] * 100, 1) if r["Allocated"] > 0 else 0.0,
        axis=1,
    )
    return df[SUMMARY_COLUMNS]
