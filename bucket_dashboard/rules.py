"""Expense bucket rules - propose a bucket for new expenses.

A rule matches on the expense label (exact), a keyword inside the label, or
the expense category. Matching is case-insensitive and rules are tried from
highest to lowest priority. When nothing matches, expenses fall back to the
owner's default bucket.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, List, Optional

from . import db
from .buckets import find_default_bucket, get_bucket
from .exceptions import NotFoundError, ValidationError
from .models import BucketRule

logger = logging.getLogger(__name__)

TABLE = "expense_bucket_rules"

LABEL = "label"
KEYWORD = "keyword"
CATEGORY = "category"
MATCH_TYPES = (LABEL, KEYWORD, CATEGORY)


def match_rule(rule: BucketRule, label: str, category: Optional[str] = None) -> bool:
    value = rule.match_value.lower()
    if rule.match_type == LABEL:
        return (label or "").lower() == value
    if rule.match_type == KEYWORD:
        return value in (label or "").lower()
    if rule.match_type == CATEGORY:
        return category is not None and category.lower() == value
    return False


def find_matching_bucket_id(
    rules: Iterable[BucketRule],
    label: str,
    category: Optional[str] = None,
) -> Optional[str]:
    """Return the bucket of the highest-priority matching rule, or None.

    Rules with equal priority keep their given order.
    """
    for rule in sorted(rules, key=lambda r: -r.priority):
        if match_rule(rule, label, category):
            return rule.bucket_id
    return None


def list_rules(conn: sqlite3.Connection, owner_id: str) -> List[BucketRule]:
    rows = db.find_all(conn, TABLE, owner_id, order_by="priority", ascending=False)
    return [BucketRule.from_row(row) for row in rows]


def list_rules_for_bucket(conn: sqlite3.Connection, owner_id: str, bucket_id: str) -> List[BucketRule]:
    rows = db.find_where(conn, TABLE, owner_id, {"bucket_id": bucket_id}, order_by="priority", ascending=False)
    return [BucketRule.from_row(row) for row in rows]


def create_rule(
    conn: sqlite3.Connection,
    owner_id: str,
    bucket_id: str,
    match_type: str,
    match_value: str,
    priority: int = 0,
) -> BucketRule:
    """Add a rule pointing at one of the owner's buckets.

    Raises:
        ValidationError: unknown match type, empty value, or a rule with the
            same type and value already exists.
        NotFoundError: the bucket does not belong to the owner.
    """
    if match_type not in MATCH_TYPES:
        raise ValidationError(f"Unknown match type: {match_type}")
    value = (match_value or "").strip()
    if not value:
        raise ValidationError("Match value cannot be empty")

    with db.transaction(conn):
        get_bucket(conn, owner_id, bucket_id)
        if db.find_one(conn, TABLE, owner_id, {"match_type": match_type, "match_value": value}):
            raise ValidationError(f'A {match_type} rule for "{value}" already exists')
        row = db.insert_row(conn, TABLE, {
            "user_id": owner_id,
            "bucket_id": bucket_id,
            "match_type": match_type,
            "match_value": value,
            "priority": int(priority),
        })
    logger.info("Added %s rule %r -> %s", match_type, value, bucket_id)
    return BucketRule.from_row(row)


def delete_rule(conn: sqlite3.Connection, owner_id: str, rule_id: str) -> None:
    if not db.delete_row(conn, TABLE, rule_id, owner_id):
        raise NotFoundError(f"Rule {rule_id} not found")


def resolve_bucket_for_expense(
    conn: sqlite3.Connection,
    owner_id: str,
    label: str,
    category: Optional[str] = None,
) -> Optional[str]:
    """Pick the bucket for a new expense: matching rule, else the default bucket."""
    bucket_id = find_matching_bucket_id(list_rules(conn, owner_id), label, category)
    if bucket_id is not None:
        return bucket_id
    default = find_default_bucket(conn, owner_id)
    return default.id if default else None
