from decimal import Decimal

import pytest

from bucket_dashboard.allocation import (
    balance_after_deduction,
    calculate_allocations,
    round_currency,
    total_allocated,
    validate_allocation_kind,
)
from bucket_dashboard.exceptions import ValidationError
from bucket_dashboard.models import Bucket, to_decimal


def _bucket(bucket_id, target=None, pct=None, allocated=None):
    return Bucket(
        id=bucket_id,
        owner_id='owner',
        name=bucket_id.title(),
        slug=bucket_id,
        target_amount=Decimal(str(target)) if target is not None else None,
        percentage=Decimal(str(pct)) if pct is not None else None,
        allocated_amount=Decimal(str(allocated)) if allocated is not None else None,
    )


def _amounts(allocations):
    return {a.bucket_id: a.allocated_amount for a in allocations}


def test_empty_bucket_list_returns_empty_result():
    assert calculate_allocations([], 1000) == []
    assert calculate_allocations([], 0) == []


def test_fixed_buckets_are_funded_in_list_order():
    a = _bucket('a', target=100)
    b = _bucket('b', target=100)

    assert _amounts(calculate_allocations([a, b], 150)) == {'a': Decimal('100'), 'b': Decimal('50')}
    assert _amounts(calculate_allocations([b, a], 150)) == {'b': Decimal('100'), 'a': Decimal('50')}


def test_fixed_bucket_gets_zero_once_budget_is_used_up():
    result = _amounts(calculate_allocations([_bucket('a', target=200), _bucket('b', target=50)], 120))
    assert result == {'a': Decimal('120'), 'b': Decimal('0')}


def test_percentages_are_normalised_to_their_sum():
    result = _amounts(calculate_allocations([_bucket('a', pct=30), _bucket('b', pct=30)], 100))
    assert result == {'a': Decimal('50'), 'b': Decimal('50')}


def test_percentage_buckets_share_what_fixed_buckets_leave():
    buckets = [_bucket('rent', target=400), _bucket('save', pct=25), _bucket('spend', pct=75)]
    result = _amounts(calculate_allocations(buckets, 1000))
    assert result == {'rent': Decimal('400'), 'save': Decimal('150'), 'spend': Decimal('450')}


def test_zero_budget_allocates_nothing():
    buckets = [_bucket('a', target=100), _bucket('b', pct=50), _bucket('c', pct=50)]
    assert all(a.allocated_amount == 0 for a in calculate_allocations(buckets, 0))


def test_negative_budget_is_treated_as_zero():
    buckets = [_bucket('a', target=100), _bucket('b', pct=100)]
    assert all(a.allocated_amount == 0 for a in calculate_allocations(buckets, -250))


@pytest.mark.parametrize('budget', [0, 1, 7, 99, 100, 1000, 1234.56, 99999])
def test_sum_never_exceeds_budget_beyond_rounding(budget):
    buckets = [
        _bucket('a', target=120),
        _bucket('b', pct=1),
        _bucket('c', pct=1),
        _bucket('d', pct=1),
        _bucket('e', target=35.5),
    ]
    allocations = calculate_allocations(buckets, budget)
    percentage_buckets = 3
    tolerance = Decimal('0.5') * percentage_buckets
    assert total_allocated(allocations) <= Decimal(str(budget)) + tolerance
    assert all(a.allocated_amount >= 0 for a in allocations)


def test_one_result_per_bucket_in_input_order():
    buckets = [_bucket('x', pct=10), _bucket('unset'), _bucket('y', target=5)]
    allocations = calculate_allocations(buckets, 100)
    assert [a.bucket_id for a in allocations] == ['x', 'unset', 'y']
    assert _amounts(allocations)['unset'] == 0


def test_target_wins_when_both_are_set():
    result = _amounts(calculate_allocations([_bucket('a', target=40, pct=50), _bucket('b', pct=50)], 100))
    assert result == {'a': Decimal('40'), 'b': Decimal('60')}


def test_calculation_is_repeatable_and_does_not_touch_inputs():
    buckets = [_bucket('a', target=100), _bucket('b', pct=30, allocated=7)]
    first = calculate_allocations(buckets, 500)
    second = calculate_allocations(buckets, 500)
    assert first == second
    assert buckets[1].allocated_amount == Decimal('7')


def test_round_currency_rounds_halves_up():
    assert round_currency(Decimal('2.5')) == Decimal('3')
    assert round_currency(Decimal('2.49')) == Decimal('2')


def test_balance_after_deduction_floors_at_zero():
    assert balance_after_deduction(Decimal('50'), 20) == Decimal('30')
    assert balance_after_deduction(Decimal('50'), 80) == Decimal('0')
    assert balance_after_deduction(Decimal('50'), 0) == Decimal('50')


def test_balance_after_deduction_rejects_negative_amounts():
    with pytest.raises(ValidationError):
        balance_after_deduction(Decimal('50'), -1)


def test_validate_allocation_kind_accepts_exactly_one_side():
    assert validate_allocation_kind(target_amount=200) == (Decimal('200'), None)
    assert validate_allocation_kind(percentage='12.5') == (None, Decimal('12.5'))
    # Zero counts as unset
    assert validate_allocation_kind(target_amount=0, percentage=40) == (None, Decimal('40'))


@pytest.mark.parametrize('target, pct', [
    (None, None),
    (0, 0),
    (100, 20),
    (-5, None),
    (None, -1),
    (None, 101),
    ('abc', None),
    ('nan', None),
    ('Infinity', None),
    (float('nan'), None),
    (None, 'nan'),
    (None, '-inf'),
])
def test_validate_allocation_kind_rejects_bad_input(target, pct):
    with pytest.raises(ValidationError):
        validate_allocation_kind(target_amount=target, percentage=pct)


@pytest.mark.parametrize('value', ['nan', 'NaN', 'Infinity', '-inf', float('nan'), float('inf'), Decimal('sNaN')])
def test_to_decimal_rejects_non_finite_values(value):
    with pytest.raises(ValueError):
        to_decimal(value)


def test_to_decimal_keeps_exact_text():
    assert to_decimal(' 12.30 ') == Decimal('12.30')
    assert to_decimal('') is None
    assert to_decimal(Decimal('0.35')) == Decimal('0.35')


@pytest.mark.parametrize('amount', ['nan', 'Infinity', 'ten'])
def test_balance_after_deduction_rejects_non_numbers(amount):
    with pytest.raises(ValidationError):
        balance_after_deduction(Decimal('50'), amount)
