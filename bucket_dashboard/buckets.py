"""Bucket management backed by the ``budget_buckets`` table.

Every function takes the open connection and the owner id explicitly; there
is no module-level state. Anything that touches more than one row runs in a
single transaction so a failure leaves the previous state intact.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from . import db
from .allocation import balance_after_deduction, calculate_allocations, validate_allocation_kind
from .defaults import DEFAULT_BUCKETS, DEFAULT_COLOR, DEFAULT_ICON, get_suggestion
from .exceptions import ConcurrencyError, NotFoundError, ValidationError
from .models import Allocation, Bucket, to_decimal

logger = logging.getLogger(__name__)

TABLE = "budget_buckets"

_EDITABLE_FIELDS = {
    "name",
    "slug",
    "percentage",
    "target_amount",
    "allocated_amount",
    "description",
    "color",
    "icon",
    "sort_order",
}


def slugify(name: str) -> str:
    """Lower-case, dash-separated identifier derived from a bucket name."""
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


def _is_lock_error(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def _non_negative(value: Any, label: str) -> Optional[Decimal]:
    try:
        amount = to_decimal(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label}: {exc}") from exc
    if amount is not None and amount < 0:
        raise ValidationError(f"{label} cannot be negative")
    return amount


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def list_buckets(conn: sqlite3.Connection, owner_id: str) -> List[Bucket]:
    """All of an owner's buckets in display order."""
    rows = db.find_all(conn, TABLE, owner_id, order_by="sort_order")
    return [Bucket.from_row(row) for row in rows]


def find_bucket(conn: sqlite3.Connection, owner_id: str, bucket_id: str) -> Optional[Bucket]:
    row = db.find_by_id(conn, TABLE, bucket_id, owner_id)
    return Bucket.from_row(row) if row else None


def get_bucket(conn: sqlite3.Connection, owner_id: str, bucket_id: str) -> Bucket:
    bucket = find_bucket(conn, owner_id, bucket_id)
    if bucket is None:
        raise NotFoundError(f"Bucket {bucket_id} not found")
    return bucket


def find_default_bucket(conn: sqlite3.Connection, owner_id: str) -> Optional[Bucket]:
    row = db.find_one(conn, TABLE, owner_id, {"is_default": 1})
    return Bucket.from_row(row) if row else None


def find_bucket_by_slug(conn: sqlite3.Connection, owner_id: str, slug: str) -> Optional[Bucket]:
    row = db.find_one(conn, TABLE, owner_id, {"slug": slug})
    return Bucket.from_row(row) if row else None


def total_percentage(conn: sqlite3.Connection, owner_id: str) -> Decimal:
    return sum(
        (b.percentage for b in list_buckets(conn, owner_id) if b.percentage is not None),
        Decimal("0"),
    )


def has_setup_buckets(conn: sqlite3.Connection, owner_id: str) -> bool:
    return db.count(conn, TABLE, owner_id) > 0


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def _insert_bucket(
    conn: sqlite3.Connection,
    owner_id: str,
    name: str,
    slug: Optional[str],
    percentage: Any,
    target_amount: Any,
    allocated_amount: Any,
    description: Optional[str],
    color: Optional[str],
    icon: Optional[str],
    is_system: bool,
    sort_order: int,
) -> Bucket:
    if not name or not name.strip():
        raise ValidationError("Bucket name cannot be empty")
    target, pct = validate_allocation_kind(target_amount, percentage)
    allocated = _non_negative(allocated_amount, "Allocated amount")

    bucket_slug = slug or slugify(name)
    if not bucket_slug:
        raise ValidationError(f"Cannot derive a slug from {name!r}")
    if find_bucket_by_slug(conn, owner_id, bucket_slug) is not None:
        raise ValidationError(f'Bucket with slug "{bucket_slug}" already exists')

    now = db.utc_now()
    row = db.insert_row(conn, TABLE, {
        "user_id": owner_id,
        "name": name.strip(),
        "slug": bucket_slug,
        "percentage": pct,
        "target_amount": target,
        "allocated_amount": allocated,
        "description": description,
        "color": color or DEFAULT_COLOR,
        "icon": icon or DEFAULT_ICON,
        "is_default": 0,
        "is_system": int(bool(is_system)),
        "sort_order": sort_order,
        "created_at": now,
        "updated_at": now,
    })
    return Bucket.from_row(row)


def create_bucket(
    conn: sqlite3.Connection,
    owner_id: str,
    name: str,
    slug: Optional[str] = None,
    percentage: Any = None,
    target_amount: Any = None,
    allocated_amount: Any = None,
    description: Optional[str] = None,
    color: Optional[str] = None,
    icon: Optional[str] = None,
    is_default: bool = False,
    is_system: bool = False,
) -> Bucket:
    """Create a bucket at the end of the owner's list.

    The owner's first bucket always becomes the default. Asking for
    ``is_default`` on a later bucket moves the default in the same
    transaction as the insert.

    Raises:
        ValidationError: bad name, allocation kind, or duplicate slug.
    """
    with db.transaction(conn):
        sort_order = db.count(conn, TABLE, owner_id)
        bucket = _insert_bucket(
            conn, owner_id, name, slug, percentage, target_amount, allocated_amount,
            description, color, icon, is_system, sort_order,
        )
        if is_default or sort_order == 0:
            bucket = set_default_bucket(conn, owner_id, bucket.id)

    logger.info("Created bucket %s (%s) for %s", bucket.slug, bucket.allocation_kind, owner_id)
    return bucket


def create_buckets_bulk(
    conn: sqlite3.Connection,
    owner_id: str,
    definitions: Sequence[Mapping[str, Any]],
) -> List[Bucket]:
    """Create several buckets at once, all or nothing.

    Each definition takes the keyword arguments of :func:`create_bucket`. The
    first definition marked ``is_default`` becomes the default; when none is and
    the owner has no default yet, the first definition does.
    """
    if not definitions:
        return []

    with db.transaction(conn):
        start = db.count(conn, TABLE, owner_id)
        created: List[Bucket] = []
        for offset, definition in enumerate(definitions):
            created.append(_insert_bucket(
                conn,
                owner_id,
                definition.get("name", ""),
                definition.get("slug"),
                definition.get("percentage"),
                definition.get("target_amount"),
                definition.get("allocated_amount"),
                definition.get("description"),
                definition.get("color"),
                definition.get("icon"),
                definition.get("is_system", False),
                start + offset,
            ))

        requested = [b for b, definition in zip(created, definitions) if definition.get("is_default")]
        if requested:
            set_default_bucket(conn, owner_id, requested[0].id)
        elif find_default_bucket(conn, owner_id) is None:
            set_default_bucket(conn, owner_id, created[0].id)

        result = [get_bucket(conn, owner_id, b.id) for b in created]

    logger.info("Created %d buckets for %s", len(result), owner_id)
    return result


def create_bucket_from_suggestion(
    conn: sqlite3.Connection,
    owner_id: str,
    suggestion_slug: str,
    **overrides: Any,
) -> Bucket:
    """Create a bucket from one of the templates in ``defaults``."""
    try:
        template = get_suggestion(suggestion_slug)
    except KeyError as exc:
        raise ValidationError(f"Unknown bucket suggestion: {suggestion_slug}") from exc
    template.update(overrides)
    # Suggested buckets belong to the user even when the template is a seed bucket.
    template["is_system"] = False
    return create_bucket(conn, owner_id, **template)


def create_default_buckets(conn: sqlite3.Connection, owner_id: str) -> List[Bucket]:
    if has_setup_buckets(conn, owner_id):
        raise ValidationError("Owner already has buckets")
    return create_buckets_bulk(conn, owner_id, DEFAULT_BUCKETS)


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------

def update_bucket(conn: sqlite3.Connection, owner_id: str, bucket_id: str, **changes: Any) -> Bucket:
    """Edit a bucket.

    Setting ``percentage`` without ``target_amount`` (or the reverse)
    switches the bucket's kind and clears the other field. ``is_default=True``
    moves the default here; the current default cannot be unset directly.
    """
    make_default = changes.pop("is_default", None)
    unknown = set(changes) - _EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    with db.transaction(conn):
        bucket = get_bucket(conn, owner_id, bucket_id)
        values: Dict[str, Any] = dict(changes)

        if "name" in values and not (values["name"] or "").strip():
            raise ValidationError("Bucket name cannot be empty")

        if "percentage" in values or "target_amount" in values:
            if "percentage" in values and "target_amount" not in values:
                values["target_amount"] = None
            elif "target_amount" in values and "percentage" not in values:
                values["percentage"] = None
            target, pct = validate_allocation_kind(values["target_amount"], values["percentage"])
            values["target_amount"] = target
            values["percentage"] = pct

        if "allocated_amount" in values:
            values["allocated_amount"] = _non_negative(values["allocated_amount"], "Allocated amount")

        if "slug" in values:
            slug = values["slug"] or ""
            if not slug:
                raise ValidationError("Slug cannot be empty")
            other = find_bucket_by_slug(conn, owner_id, slug)
            if other is not None and other.id != bucket_id:
                raise ValidationError(f'Bucket with slug "{slug}" already exists')

        if make_default is False and bucket.is_default:
            raise ValidationError("Choose another default bucket instead of unsetting this one")

        if values:
            values["updated_at"] = db.utc_now()
            db.update_row(conn, TABLE, bucket_id, owner_id, values)
        if make_default:
            set_default_bucket(conn, owner_id, bucket_id)

        return get_bucket(conn, owner_id, bucket_id)


def delete_bucket(conn: sqlite3.Connection, owner_id: str, bucket_id: str) -> None:
    """Delete a bucket.

    Bills and expenses pointing at it keep existing with the reference
    cleared; its expense rules are removed.

    Raises:
        NotFoundError: unknown bucket.
        ValidationError: the bucket is the owner's default.
    """
    with db.transaction(conn):
        bucket = get_bucket(conn, owner_id, bucket_id)
        if bucket.is_default:
            raise ValidationError("The default bucket cannot be deleted")
        db.delete_row(conn, TABLE, bucket_id, owner_id)
    logger.info("Deleted bucket %s for %s", bucket.slug, owner_id)


def reorder_buckets(conn: sqlite3.Connection, owner_id: str, bucket_ids: Sequence[str]) -> List[Bucket]:
    now = db.utc_now()
    with db.transaction(conn):
        for position, bucket_id in enumerate(bucket_ids):
            if db.update_row(conn, TABLE, bucket_id, owner_id, {"sort_order": position, "updated_at": now}) is None:
                raise NotFoundError(f"Bucket {bucket_id} not found")
        return list_buckets(conn, owner_id)


def update_allocations(conn: sqlite3.Connection, owner_id: str, allocations: Sequence[Allocation]) -> None:
    """Write computed allocations back into ``allocated_amount``."""
    now = db.utc_now()
    with db.transaction(conn):
        for allocation in allocations:
            updated = db.update_row(
                conn, TABLE, allocation.bucket_id, owner_id,
                {"allocated_amount": allocation.allocated_amount, "updated_at": now},
            )
            if updated is None:
                raise NotFoundError(f"Bucket {allocation.bucket_id} not found")


def recalculate_allocations(conn: sqlite3.Connection, owner_id: str, remaining_budget: Any) -> List[Allocation]:
    """Recompute every bucket's allocation from the current bucket set and persist it."""
    with db.transaction(conn):
        allocations = calculate_allocations(list_buckets(conn, owner_id), remaining_budget)
        update_allocations(conn, owner_id, allocations)
    logger.info("Recalculated %d allocations for %s from budget %s", len(allocations), owner_id, remaining_budget)
    return allocations


def deduct_from_bucket(conn: sqlite3.Connection, owner_id: str, bucket_id: str, amount: Any) -> Bucket:
    """Take a payment out of a bucket's balance.

    The balance is the allocated amount, or the fixed target when nothing
    has been allocated yet. It never goes below zero; overdrawing simply
    empties the bucket. Other buckets are untouched.

    Raises:
        ValidationError: negative amount.
        NotFoundError: unknown bucket; nothing is written.
    """
    with db.transaction(conn):
        bucket = get_bucket(conn, owner_id, bucket_id)
        new_balance = balance_after_deduction(bucket.balance, amount)
        db.update_row(conn, TABLE, bucket_id, owner_id, {
            "allocated_amount": new_balance,
            "updated_at": db.utc_now(),
        })
        updated = get_bucket(conn, owner_id, bucket_id)
    logger.info("Deducted %s from bucket %s, balance now %s", amount, bucket.slug, new_balance)
    return updated


def set_default_bucket(conn: sqlite3.Connection, owner_id: str, bucket_id: str) -> Bucket:
    """Make ``bucket_id`` the owner's only default bucket.

    A single UPDATE flips every affected row inside one write transaction,
    so no reader ever sees zero or two defaults.

    Raises:
        NotFoundError: the bucket does not belong to the owner.
        ConcurrencyError: the switch could not be applied atomically; the
            previous default is kept.
    """
    try:
        with db.transaction(conn):
            if not db.exists(conn, TABLE, bucket_id, owner_id):
                raise NotFoundError(f"Bucket {bucket_id} not found")
            conn.execute(
                "UPDATE budget_buckets SET is_default = (id = ?), updated_at = ? "
                "WHERE user_id = ? AND (is_default = 1 OR id = ?)",
                (bucket_id, db.utc_now(), owner_id, bucket_id),
            )
            defaults = [
                row["id"] for row in conn.execute(
                    "SELECT id FROM budget_buckets WHERE user_id = ? AND is_default = 1",
                    (owner_id,),
                ).fetchall()
            ]
            if defaults != [bucket_id]:
                raise ConcurrencyError("Default bucket could not be set")
            bucket = get_bucket(conn, owner_id, bucket_id)
    except sqlite3.OperationalError as exc:
        if not _is_lock_error(exc):
            raise
        logger.error("Setting default bucket %s for %s failed: %s", bucket_id, owner_id, exc)
        raise ConcurrencyError("Default bucket could not be set, try again") from exc

    logger.info("Default bucket for %s is now %s", owner_id, bucket.slug)
    return bucket
