"""
Interest Calculator Tests.
"""

import pytest
from backend.app.domain.ledger.interest import interest_simple, interest_compounding, daily_rate
from backend.app.models.ledger_enums import CompoundingPeriod


def test_simple_interest_overdue_invoice():
    # 12000 at 18% p.a., 40 days past grace
    assert interest_simple(12000, 40, 18) == pytest.approx(236.71, abs=0.01)


@pytest.mark.parametrize("days", [0, -1, -30])
def test_simple_interest_zero_when_not_overdue(days):
    assert interest_simple(5000, days, 18) == 0.0


def test_simple_interest_strictly_increasing_in_days():
    values = [interest_simple(1000, d, 12) for d in range(1, 60)]
    assert all(b > a for a, b in zip(values, values[1:]))


def test_simple_interest_zero_rate():
    assert interest_simple(1000, 10, 0) == 0.0


def test_invalid_input_raises():
    with pytest.raises(ValueError):
        interest_simple(-1, 10, 18)
    with pytest.raises(ValueError):
        interest_simple(100, 10, -5)
    with pytest.raises(ValueError):
        interest_compounding(100, 10, -5)


def test_compounding_daily():
    expected = 1000 * ((1 + daily_rate(36.5)) ** 10 - 1)
    assert interest_compounding(1000, 10, 36.5, CompoundingPeriod.DAILY) == pytest.approx(expected)


def test_compounding_weekly_splits_periods_and_remainder():
    rate = daily_rate(36.5)  # 0.001 per day
    expected = 1000 * ((1 + rate * 7) ** 2 * (1 + rate * 3) - 1)
    assert interest_compounding(1000, 17, 36.5, "weekly") == pytest.approx(expected)


def test_compounding_monthly_with_remainder():
    rate = daily_rate(36.5)
    expected = 1000 * ((1 + rate * 30) * (1 + rate * 5) - 1)
    assert interest_compounding(1000, 35, 36.5, CompoundingPeriod.MONTHLY) == pytest.approx(expected)


def test_compounding_exceeds_simple():
    assert interest_compounding(1000, 200, 18) > interest_simple(1000, 200, 18)


def test_minimum_fee_floor_only_once_due():
    assert interest_compounding(100, 1, 18, minimum_fee=5) == 5
    assert interest_compounding(100, 0, 18, minimum_fee=5) == 0.0
    big = interest_compounding(100000, 90, 18, minimum_fee=5)
    assert big > 5
