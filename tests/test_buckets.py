import threading
from decimal import Decimal

import pytest

from bucket_dashboard import buckets as bucket_service
from bucket_dashboard import db
from bucket_dashboard.exceptions import ConcurrencyError, NotFoundError, ValidationError
from bucket_dashboard.records import add_bill, add_expense
from bucket_dashboard.rules import create_rule, list_rules

OWNER = 'owner-a'
OTHER_OWNER = 'owner-b'


def _defaults(conn, owner_id=OWNER):
    return [b.id for b in bucket_service.list_buckets(conn, owner_id) if b.is_default]


def test_slugify():
    assert bucket_service.slugify('Daily Spending') == 'daily-spending'
    assert bucket_service.slugify('  Fun & Games!  ') == 'fun--games'
    assert bucket_service.slugify('Café 2024') == 'caf-2024'


def test_first_bucket_becomes_default(conn):
    first = bucket_service.create_bucket(conn, OWNER, 'Savings', percentage=20)
    second = bucket_service.create_bucket(conn, OWNER, 'Groceries', target_amount=600)

    assert first.is_default
    assert not second.is_default
    assert _defaults(conn) == [first.id]
    assert [b.sort_order for b in bucket_service.list_buckets(conn, OWNER)] == [0, 1]


def test_create_bucket_stores_amounts_as_decimal(conn):
    bucket = bucket_service.create_bucket(conn, OWNER, 'Travel', percentage='12.5', color='#f97316')
    assert bucket.percentage == Decimal('12.5')
    assert bucket.target_amount is None
    assert bucket.slug == 'travel'
    assert bucket.color == '#f97316'
    assert bucket.icon == 'Wallet'


def test_create_bucket_rejects_duplicate_slug(conn):
    bucket_service.create_bucket(conn, OWNER, 'Travel', percentage=10)
    with pytest.raises(ValidationError):
        bucket_service.create_bucket(conn, OWNER, 'travel', percentage=5)
    # Slugs are unique per owner only
    bucket_service.create_bucket(conn, OTHER_OWNER, 'Travel', percentage=10)


@pytest.mark.parametrize('kwargs', [
    {'name': '', 'percentage': 10},
    {'name': 'Both', 'percentage': 10, 'target_amount': 100},
    {'name': 'Neither'},
    {'name': 'Too much', 'percentage': 150},
    {'name': 'Negative', 'target_amount': -1},
    {'name': '!!!', 'percentage': 10},
    {'name': 'NaN', 'target_amount': 'nan'},
    {'name': 'Endless', 'target_amount': 'Infinity'},
    {'name': 'Odd', 'percentage': 10, 'allocated_amount': 'nan'},
])
def test_create_bucket_validation(conn, kwargs):
    with pytest.raises(ValidationError):
        bucket_service.create_bucket(conn, OWNER, **kwargs)
    assert bucket_service.list_buckets(conn, OWNER) == []


def test_create_bucket_with_is_default_moves_the_default(conn):
    bucket_service.create_bucket(conn, OWNER, 'Savings', percentage=20)
    flex = bucket_service.create_bucket(conn, OWNER, 'Flex', percentage=20, is_default=True)
    assert _defaults(conn) == [flex.id]


def test_create_default_buckets(conn):
    created = bucket_service.create_default_buckets(conn, OWNER)

    assert [b.slug for b in created] == ['savings', 'daily-spending', 'flex']
    assert [b.percentage for b in created] == [Decimal('20'), Decimal('60'), Decimal('20')]
    assert all(b.is_system for b in created)
    assert _defaults(conn) == [created[1].id]

    with pytest.raises(ValidationError):
        bucket_service.create_default_buckets(conn, OWNER)


def test_bulk_create_is_all_or_nothing(conn):
    with pytest.raises(ValidationError):
        bucket_service.create_buckets_bulk(conn, OWNER, [
            {'name': 'Good', 'percentage': 50},
            {'name': 'Bad'},
        ])
    assert bucket_service.list_buckets(conn, OWNER) == []


def test_bulk_create_keeps_existing_default_unless_asked(conn):
    existing = bucket_service.create_bucket(conn, OWNER, 'Savings', percentage=20)
    bucket_service.create_buckets_bulk(conn, OWNER, [{'name': 'Travel', 'percentage': 10}])
    assert _defaults(conn) == [existing.id]

    created = bucket_service.create_buckets_bulk(conn, OWNER, [
        {'name': 'Fun', 'percentage': 10},
        {'name': 'Rent', 'target_amount': 900, 'is_default': True},
    ])
    assert _defaults(conn) == [created[1].id]
    assert [b.sort_order for b in bucket_service.list_buckets(conn, OWNER)] == [0, 1, 2, 3]


def test_create_from_suggestion(conn):
    bucket = bucket_service.create_bucket_from_suggestion(conn, OWNER, 'emergency-fund')
    assert bucket.name == 'Emergency Fund'
    assert bucket.target_amount == Decimal('5000')
    assert not bucket.is_system

    with pytest.raises(ValidationError):
        bucket_service.create_bucket_from_suggestion(conn, OWNER, 'does-not-exist')


def test_update_bucket_switches_kind(conn):
    bucket = bucket_service.create_bucket(conn, OWNER, 'Groceries', percentage=15)

    updated = bucket_service.update_bucket(conn, OWNER, bucket.id, target_amount=600)
    assert updated.target_amount == Decimal('600')
    assert updated.percentage is None

    updated = bucket_service.update_bucket(conn, OWNER, bucket.id, percentage=10, name='Food')
    assert updated.percentage == Decimal('10')
    assert updated.target_amount is None
    assert updated.name == 'Food'


def test_update_bucket_rejects_bad_changes(conn):
    bucket = bucket_service.create_bucket(conn, OWNER, 'Groceries', percentage=15)
    other = bucket_service.create_bucket(conn, OWNER, 'Travel', percentage=5)

    with pytest.raises(ValidationError):
        bucket_service.update_bucket(conn, OWNER, other.id, slug='groceries')
    with pytest.raises(ValidationError):
        bucket_service.update_bucket(conn, OWNER, bucket.id, user_id=OTHER_OWNER)
    with pytest.raises(ValidationError):
        bucket_service.update_bucket(conn, OWNER, bucket.id, is_default=False)
    with pytest.raises(NotFoundError):
        bucket_service.update_bucket(conn, OTHER_OWNER, bucket.id, name='Stolen')


def test_update_bucket_can_take_the_default(conn):
    bucket_service.create_bucket(conn, OWNER, 'Groceries', percentage=15)
    other = bucket_service.create_bucket(conn, OWNER, 'Travel', percentage=5)
    bucket_service.update_bucket(conn, OWNER, other.id, is_default=True)
    assert _defaults(conn) == [other.id]


def test_default_bucket_cannot_be_deleted(conn):
    default = bucket_service.create_bucket(conn, OWNER, 'Spending', percentage=60)
    other = bucket_service.create_bucket(conn, OWNER, 'Flex', percentage=40)

    with pytest.raises(ValidationError):
        bucket_service.delete_bucket(conn, OWNER, default.id)

    bucket_service.delete_bucket(conn, OWNER, other.id)
    assert [b.id for b in bucket_service.list_buckets(conn, OWNER)] == [default.id]

    with pytest.raises(NotFoundError):
        bucket_service.delete_bucket(conn, OWNER, other.id)


def test_delete_bucket_clears_references_and_removes_rules(conn):
    bucket_service.create_bucket(conn, OWNER, 'Spending', percentage=60)
    fun = bucket_service.create_bucket(conn, OWNER, 'Fun', percentage=40)
    create_rule(conn, OWNER, fun.id, 'keyword', 'cinema')
    bill = add_bill(conn, OWNER, 'Streaming', 12, payment_mode='auto_deduct', payment_bucket_id=fun.id)
    expense = add_expense(conn, OWNER, 'Cinema tickets', 25)
    assert expense.bucket_id == fun.id

    bucket_service.delete_bucket(conn, OWNER, fun.id)

    assert list_rules(conn, OWNER) == []
    assert db.find_by_id(conn, 'bills', bill.id, OWNER)['payment_bucket_id'] is None
    assert db.find_by_id(conn, 'expenses', expense.id, OWNER)['bucket_id'] is None


def test_reorder_buckets(conn):
    a = bucket_service.create_bucket(conn, OWNER, 'A', percentage=10)
    b = bucket_service.create_bucket(conn, OWNER, 'B', percentage=10)
    c = bucket_service.create_bucket(conn, OWNER, 'C', percentage=10)

    result = bucket_service.reorder_buckets(conn, OWNER, [c.id, a.id, b.id])
    assert [x.id for x in result] == [c.id, a.id, b.id]

    with pytest.raises(NotFoundError):
        bucket_service.reorder_buckets(conn, OWNER, [b.id, 'missing'])
    assert [x.id for x in bucket_service.list_buckets(conn, OWNER)] == [c.id, a.id, b.id]


def test_recalculate_allocations_persists_amounts(conn):
    rent = bucket_service.create_bucket(conn, OWNER, 'Rent', target_amount=400)
    save = bucket_service.create_bucket(conn, OWNER, 'Save', percentage=30)
    spend = bucket_service.create_bucket(conn, OWNER, 'Spend', percentage=30)

    allocations = bucket_service.recalculate_allocations(conn, OWNER, 1000)

    assert {a.bucket_id: a.allocated_amount for a in allocations} == {
        rent.id: Decimal('400'),
        save.id: Decimal('300'),
        spend.id: Decimal('300'),
    }
    stored = {b.id: b.allocated_amount for b in bucket_service.list_buckets(conn, OWNER)}
    assert stored == {rent.id: Decimal('400'), save.id: Decimal('300'), spend.id: Decimal('300')}


def test_deduct_from_bucket(conn):
    bucket = bucket_service.create_bucket(conn, OWNER, 'Spend', percentage=50, allocated_amount=100)

    assert bucket_service.deduct_from_bucket(conn, OWNER, bucket.id, 30).allocated_amount == Decimal('70')
    assert bucket_service.deduct_from_bucket(conn, OWNER, bucket.id, '12.5').allocated_amount == Decimal('57.5')


def test_deduct_more_than_balance_floors_at_zero(conn):
    bucket = bucket_service.create_bucket(conn, OWNER, 'Spend', percentage=50, allocated_amount=40)
    other = bucket_service.create_bucket(conn, OWNER, 'Save', percentage=50, allocated_amount=40)

    assert bucket_service.deduct_from_bucket(conn, OWNER, bucket.id, 500).allocated_amount == Decimal('0')
    assert bucket_service.get_bucket(conn, OWNER, other.id).allocated_amount == Decimal('40')


def test_deduct_falls_back_to_target_when_unallocated(conn):
    bucket = bucket_service.create_bucket(conn, OWNER, 'Groceries', target_amount=600)
    assert bucket_service.deduct_from_bucket(conn, OWNER, bucket.id, 100).allocated_amount == Decimal('500')


def test_deduct_errors_leave_balance_alone(conn):
    bucket = bucket_service.create_bucket(conn, OWNER, 'Spend', percentage=50, allocated_amount=40)

    with pytest.raises(ValidationError):
        bucket_service.deduct_from_bucket(conn, OWNER, bucket.id, -5)
    with pytest.raises(NotFoundError):
        bucket_service.deduct_from_bucket(conn, OWNER, 'missing', 5)
    with pytest.raises(NotFoundError):
        bucket_service.deduct_from_bucket(conn, OTHER_OWNER, bucket.id, 5)

    assert bucket_service.get_bucket(conn, OWNER, bucket.id).allocated_amount == Decimal('40')


def test_fractional_deductions_stay_exact(conn):
    bucket = bucket_service.create_bucket(conn, OWNER, 'Spend', percentage=50, allocated_amount='100.10')

    bucket_service.deduct_from_bucket(conn, OWNER, bucket.id, '0.35')
    bucket_service.deduct_from_bucket(conn, OWNER, bucket.id, Decimal('0.1'))

    assert bucket_service.get_bucket(conn, OWNER, bucket.id).allocated_amount == Decimal('99.65')
    assert bucket_service.list_buckets(conn, OWNER)[0].allocated_amount == Decimal('99.65')


def test_large_amounts_keep_every_digit(conn):
    bucket = bucket_service.create_bucket(
        conn, OWNER, 'Pension', target_amount='12345678901234567.89', allocated_amount='12345678901234567.89',
    )

    stored = bucket_service.get_bucket(conn, OWNER, bucket.id)
    assert stored.target_amount == Decimal('12345678901234567.89')
    assert bucket_service.deduct_from_bucket(conn, OWNER, bucket.id, '0.01').allocated_amount == Decimal(
        '12345678901234567.88'
    )


def test_set_default_bucket_keeps_exactly_one(conn):
    x = bucket_service.create_bucket(conn, OWNER, 'X', percentage=50)
    y = bucket_service.create_bucket(conn, OWNER, 'Y', percentage=50)
    theirs = bucket_service.create_bucket(conn, OTHER_OWNER, 'Theirs', percentage=100)

    assert bucket_service.set_default_bucket(conn, OWNER, y.id).is_default
    assert _defaults(conn) == [y.id]

    bucket_service.set_default_bucket(conn, OWNER, x.id)
    assert _defaults(conn) == [x.id]

    # Repeating is harmless
    bucket_service.set_default_bucket(conn, OWNER, x.id)
    assert _defaults(conn) == [x.id]

    # Another owner's default is untouched
    assert _defaults(conn, OTHER_OWNER) == [theirs.id]


def test_set_default_bucket_unknown_bucket_keeps_previous_default(conn):
    x = bucket_service.create_bucket(conn, OWNER, 'X', percentage=50)
    theirs = bucket_service.create_bucket(conn, OTHER_OWNER, 'Theirs', percentage=100)

    with pytest.raises(NotFoundError):
        bucket_service.set_default_bucket(conn, OWNER, 'missing')
    with pytest.raises(NotFoundError):
        bucket_service.set_default_bucket(conn, OWNER, theirs.id)

    assert _defaults(conn) == [x.id]
    assert _defaults(conn, OTHER_OWNER) == [theirs.id]


def test_concurrent_default_switches_leave_one_default(conn, db_path):
    created = [bucket_service.create_bucket(conn, OWNER, f'Bucket {i}', percentage=10) for i in range(6)]
    errors = []
    seen = []

    def worker(bucket_ids):
        worker_conn = db.open_connection(db_path)
        try:
            for _ in range(10):
                for bucket_id in bucket_ids:
                    bucket_service.set_default_bucket(worker_conn, OWNER, bucket_id)
                    seen.append(len(_defaults(worker_conn)))
        except Exception as exc:  # collected for the assertion below
            errors.append(exc)
        finally:
            worker_conn.close()

    threads = [
        threading.Thread(target=worker, args=([b.id for b in created[i::3]],))
        for i in range(3)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert set(seen) == {1}
    assert len(_defaults(conn)) == 1


def test_set_default_bucket_reports_locked_database(conn, db_path, monkeypatch):
    old = bucket_service.create_bucket(conn, OWNER, 'Old', percentage=50)
    new = bucket_service.create_bucket(conn, OWNER, 'New', percentage=50)
    monkeypatch.setattr(db, 'DB_TIMEOUT', 0.1)

    holder = db.open_connection(db_path)
    blocked = db.open_connection(db_path)
    try:
        holder.execute('BEGIN IMMEDIATE')
        with pytest.raises(ConcurrencyError):
            bucket_service.set_default_bucket(blocked, OWNER, new.id)
        assert not blocked.in_transaction
    finally:
        holder.execute('ROLLBACK')
        holder.close()
        blocked.close()

    assert _defaults(conn) == [old.id]


def test_has_setup_buckets_and_total_percentage(conn):
    assert not bucket_service.has_setup_buckets(conn, OWNER)
    bucket_service.create_bucket(conn, OWNER, 'A', percentage=30)
    bucket_service.create_bucket(conn, OWNER, 'B', percentage='12.5')
    bucket_service.create_bucket(conn, OWNER, 'C', target_amount=100)
    assert bucket_service.has_setup_buckets(conn, OWNER)
    assert bucket_service.total_percentage(conn, OWNER) == Decimal('42.5')
