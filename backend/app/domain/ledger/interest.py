"""
Interest Calculator.

Two variants:
- interest_simple: daily simple interest, used when the sweep refreshes
  accrued interest on live entries.
- interest_compounding: compounded interest with an optional minimum fee,
  used only by aggregate reporting.

Rates are annual percentages (18.0 means 18% p.a.). Results are not rounded.
"""

from typing import Optional, Union

from backend.app.models.ledger_enums import CompoundingPeriod

DAYS_PER_YEAR = 365
DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30


def _validate(amount: float, annual_rate_percent: float) -> None:
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    if annual_rate_percent < 0:
        raise ValueError(f"interest rate must be non-negative, got {annual_rate_percent}")


def daily_rate(annual_rate_percent: float) -> float:
    return annual_rate_percent / 100 / DAYS_PER_YEAR


def interest_simple(amount: float, days_overdue: int, annual_rate_percent: float) -> float:
    """
    Simple daily interest: amount * (rate / 100 / 365) * days_overdue.

    Returns 0 for days_overdue <= 0.
    """
    _validate(amount, annual_rate_percent)
    if days_overdue <= 0:
        return 0.0
    return amount * daily_rate(annual_rate_percent) * days_overdue


def interest_compounding(
    amount: float,
    effective_days_overdue: int,
    annual_rate_percent: float,
    mode: Union[CompoundingPeriod, str] = CompoundingPeriod.DAILY,
    minimum_fee: Optional[float] = None,
) -> float:
    """
    Compound interest for reporting.

    The caller subtracts the grace period before calling. Whole periods
    compound at the periodic rate (7 or 30 days' worth of the daily rate);
    leftover days accrue at the simple daily rate:

        amount * ((1 + periodic)^periods * (1 + daily * remainder) - 1)

    Once any interest is due the result is floored at minimum_fee.
    """
    _validate(amount, annual_rate_percent)
    if effective_days_overdue <= 0:
        return 0.0

    mode = CompoundingPeriod(mode)
    rate = daily_rate(annual_rate_percent)

    if mode == CompoundingPeriod.DAILY:
        interest = amount * ((1 + rate) ** effective_days_overdue - 1)
    else:
        period_days = DAYS_PER_WEEK if mode == CompoundingPeriod.WEEKLY else DAYS_PER_MONTH
        periods, remainder = divmod(effective_days_overdue, period_days)
        periodic_rate = rate * period_days
        interest = amount * ((1 + periodic_rate) ** periods * (1 + rate * remainder) - 1)

    if minimum_fee:
        interest = max(interest, minimum_fee)
    return interest
