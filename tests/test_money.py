"""
Tests for tax computation, rounding and amount parsing.
"""
from decimal import Decimal

import pytest

from services.base import ValidationException
from services.money import (
    MAX_AMOUNT,
    bound_error,
    compute_net,
    compute_tax,
    parse_amount,
    split_total,
    to_money,
    validate_amount_triple,
)


@pytest.mark.unit
def test_compute_tax_rounds_to_whole_pesos():
    """Test that tax is 19% of net rounded half up."""
    assert compute_tax(100000) == Decimal('19000')
    assert compute_tax(21008403) == Decimal('3991597')
    # 50 * 0.19 = 9.5 -> 10
    assert compute_tax(50) == Decimal('10')


@pytest.mark.unit
def test_one_million_pesos_reference_values():
    assert compute_tax(1000000) == Decimal('190000')
    assert compute_net(1190000) == Decimal('1000000')


@pytest.mark.unit
def test_compute_net_from_total():
    """Test that net is the total divided by 1.19, rounded."""
    assert compute_net(119000) == Decimal('100000')
    assert compute_net(25000000) == Decimal('21008403')


@pytest.mark.unit
def test_split_total_always_adds_up():
    """Test that net and tax from a gross total sum back exactly."""
    for total in (25000000, 15000000, 8000000, 1, 999):
        net, tax = split_total(total)
        assert net + tax == Decimal(total)


@pytest.mark.unit
def test_to_money_rounds_half_up_to_cents():
    assert to_money('1.005') == Decimal('1.01')
    assert to_money(7) == Decimal('7.00')


@pytest.mark.unit
@pytest.mark.parametrize('raw, expected', [
    ('1.234,56', Decimal('1234.56')),
    ('1,234.56', Decimal('1234.56')),
    ('1234,5', Decimal('1234.50')),
    ('1.000.000', Decimal('1000000.00')),
    ('1,234,567', Decimal('1234567.00')),
    ('$ 25000', Decimal('25000.00')),
    (1234.5, Decimal('1234.50')),
    (0.1, Decimal('0.10')),
    (Decimal('42'), Decimal('42.00')),
    (119000, Decimal('119000.00')),
])
def test_parse_amount_accepts_local_formats(raw, expected):
    """Test that both decimal separator conventions are understood."""
    assert parse_amount(raw, 'amount') == expected


@pytest.mark.unit
@pytest.mark.parametrize('raw', [None, True, False, 'abc', '', '12a', float('nan'), float('inf'), [], {}])
def test_parse_amount_rejects_non_numbers(raw):
    """Test that non-numeric input raises a field-level validation error."""
    with pytest.raises(ValidationException) as exc_info:
        parse_amount(raw, 'net_amount')

    assert exc_info.value.field == 'net_amount'
    assert exc_info.value.reason == 'not a number'


@pytest.mark.unit
def test_bound_error_limits():
    assert bound_error(Decimal('0'), 'net_amount')['reason'] == 'must be > 0'
    assert bound_error(Decimal('0'), 'tax_amount', allow_zero=True) is None
    assert bound_error(Decimal('-1'), 'tax_amount', allow_zero=True)['reason'] == 'must be >= 0'
    assert bound_error(MAX_AMOUNT, 'amount') is None
    assert bound_error(MAX_AMOUNT + Decimal('0.01'), 'amount')['reason'] == 'exceeds maximum'


@pytest.mark.unit
def test_validate_amount_triple_derives_missing_total():
    net, tax, amount = validate_amount_triple(100000, 19000)
    assert (net, tax, amount) == (Decimal('100000.00'), Decimal('19000.00'), Decimal('119000.00'))


@pytest.mark.unit
def test_validate_amount_triple_rejects_inconsistent_total():
    """Test that amount must equal net + tax exactly, to the cent."""
    with pytest.raises(ValidationException) as exc_info:
        validate_amount_triple(100, 19, '119.01')

    assert exc_info.value.field == 'amount'
    assert exc_info.value.code == 'VALIDATION_ERROR'


@pytest.mark.unit
def test_validate_amount_triple_accepts_zero_tax():
    """Boletas exentas: tax can be zero."""
    net, tax, amount = validate_amount_triple(5000, 0, 5000)
    assert tax == Decimal('0.00')
    assert amount == net


@pytest.mark.unit
def test_validate_amount_triple_reports_every_bound_error():
    with pytest.raises(ValidationException) as exc_info:
        validate_amount_triple(0, -1, 0)

    fields = [error['field'] for error in exc_info.value.errors]
    assert fields == ['net_amount', 'tax_amount', 'amount']
