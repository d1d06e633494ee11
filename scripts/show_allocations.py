#!/usr/bin/env python3
"""Print how the remaining budget splits across an owner's buckets."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bucket_dashboard import db
from bucket_dashboard.allocation import calculate_allocations
from bucket_dashboard.buckets import list_buckets, recalculate_allocations
from bucket_dashboard.config import DEFAULT_OWNER_ID, configure_logging
from bucket_dashboard.records import remaining_budget
from bucket_dashboard.reports import allocation_frame


def main(owner_id: str, budget: str | None = None, save: bool = False) -> int:
    configure_logging()
    with db.connect() as conn:
        db.init_db(conn)
        buckets = list_buckets(conn, owner_id)
        if not buckets:
            print(f"No buckets for {owner_id}.")
            return 1

        available = budget if budget is not None else remaining_budget(conn, owner_id)
        if save:
            allocations = recalculate_allocations(conn, owner_id, available)
            buckets = list_buckets(conn, owner_id)
        else:
            allocations = calculate_allocations(buckets, available)

    frame = allocation_frame(buckets, allocations)
    print(f"Remaining budget: {available}")
    print(frame.drop(columns=["Color", "Share of Income %"]).to_string(index=False))
    print(f"\nTotal allocated: {frame['Allocated'].sum():,.2f}")
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Show bucket allocations for an owner.')
    parser.add_argument('--owner', default=DEFAULT_OWNER_ID, help='Owner id to report on')
    parser.add_argument('--budget', default=None, help='Override the remaining budget')
    parser.add_argument('--save', action='store_true', help='Persist the computed allocations')
    args = parser.parse_args()
    sys.exit(main(args.owner, budget=args.budget, save=args.save))
