"""
Payment Settlement Processor Tests.
"""

import pytest
from sqlalchemy import select

from backend.app.core.config import EngineDefaults
from backend.app.core.exceptions import (
    AlreadySettledError, EntryNotSettleableError, InvalidAmountError,
    OverpaymentError, ResourceNotFoundError,
)
from backend.app.domain.ledger.reconciliation import ReconciliationSweep
from backend.app.domain.ledger.settlement import SettlementProcessor, credit_increase_pct
from backend.app.models.credit_settings import CustomerCreditSettings
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import EntryStatus, EntryType, PaymentMethod
from backend.app.models.status_change_log import StatusChangeLog
from conftest import NOW, COMPANY_ID, OTHER_COMPANY_ID

DEFAULTS = EngineDefaults(grace_period_days=30, interest_rate=18.0)


async def credit_limit(db, settings_id):
    row = await db.get(CustomerCreditSettings, settings_id, populate_existing=True)
    return row.credit_limit


@pytest.mark.asyncio
async def test_partial_then_full_settlement_of_overdue_entry(db_session, make_entry, make_credit_settings):
    settings_row = await make_credit_settings(credit_limit=10000)
    entry = await make_entry(amount=12000, days_ago=70)
    entry_id = entry.id
    await ReconciliationSweep(defaults=DEFAULTS).run(db_session, company_id=COMPANY_ID, now=NOW)

    processor = SettlementProcessor(defaults=DEFAULTS)

    partial = await processor.settle(db_session, COMPANY_ID, entry_id, 5000, PaymentMethod.CASH, now=NOW)

    assert partial.settlement_amount == 5000
    assert partial.remaining_amount == 7000
    assert partial.is_fully_paid is False
    assert partial.status == EntryStatus.PARTIALLY_PAID
    assert partial.credit_limit_after == pytest.approx(10100)
    assert await credit_limit(db_session, settings_row.id) == pytest.approx(10100)

    full = await processor.settle(db_session, COMPANY_ID, entry_id, 7000, PaymentMethod.BANK_TRANSFER, now=NOW)

    assert full.is_fully_paid is True
    assert full.remaining_amount == 0
    assert full.paid_date == NOW
    # Overdue recovery rate, not the on-time rate
    assert full.credit_limit_after == pytest.approx(10100 * 1.02)

    stored = await db_session.get(LedgerEntry, entry_id, populate_existing=True)
    assert stored.status == EntryStatus.PAID
    assert stored.paid_amount == 12000
    assert stored.accrued_interest == 0
    assert stored.days_elapsed == 70
    assert stored.overdue_start_date is not None


@pytest.mark.asyncio
async def test_on_time_full_payment_earns_top_rate(db_session, make_entry, make_credit_settings):
    settings_row = await make_credit_settings(credit_limit=10000)
    entry = await make_entry(amount=2000, days_ago=5)

    result = await SettlementProcessor(defaults=DEFAULTS).settle(
        db_session, COMPANY_ID, entry.id, 2000, PaymentMethod.UPI, now=NOW
    )

    assert result.is_fully_paid is True
    assert result.credit_limit_before == 10000
    assert result.credit_limit_after == pytest.approx(10500)
    assert await credit_limit(db_session, settings_row.id) == pytest.approx(10500)


def test_credit_increase_rates():
    assert credit_increase_pct(DEFAULTS, is_fully_paid=True, was_overdue=False) == 5.0
    assert credit_increase_pct(DEFAULTS, is_fully_paid=True, was_overdue=True) == 2.0
    assert credit_increase_pct(DEFAULTS, is_fully_paid=False, was_overdue=False) == 1.0
    assert credit_increase_pct(DEFAULTS, False, False) < credit_increase_pct(DEFAULTS, True, False)


@pytest.mark.asyncio
async def test_overpayment_is_capped(db_session, make_entry):
    entry = await make_entry(amount=1000, days_ago=5, status=EntryStatus.PARTIALLY_PAID, paid_amount=400)

    result = await SettlementProcessor(defaults=DEFAULTS).settle(
        db_session, COMPANY_ID, entry.id, 1500, PaymentMethod.CASH, now=NOW
    )

    assert result.settlement_amount == 600
    assert result.excess_amount == 900
    assert result.is_fully_paid is True
    assert result.credit_limit_before is None
    assert result.credit_limit_after is None


@pytest.mark.asyncio
async def test_overpayment_rejected_by_policy(db_session, make_entry):
    entry = await make_entry(amount=1000, days_ago=5)
    entry_id = entry.id
    processor = SettlementProcessor(defaults=EngineDefaults(overpayment_policy="reject"))

    with pytest.raises(OverpaymentError):
        await processor.settle(db_session, COMPANY_ID, entry_id, 1500, PaymentMethod.CASH, now=NOW)

    stored = await db_session.get(LedgerEntry, entry_id, populate_existing=True)
    assert stored.paid_amount == 0
    assert stored.status == EntryStatus.UNPAID


@pytest.mark.asyncio
async def test_payment_entry_is_booked_and_linked(db_session, make_entry):
    entry = await make_entry(amount=1000, days_ago=5, invoice_number="INV-7")

    result = await SettlementProcessor(defaults=DEFAULTS).settle(
        db_session, COMPANY_ID, entry.id, 250, PaymentMethod.CARD, actor_id="clerk@company1", now=NOW
    )

    payment = await db_session.get(LedgerEntry, result.payment_entry_id)
    assert payment.entry_type == EntryType.PAYMENT_IN
    assert payment.status == EntryStatus.PAID
    assert payment.amount == 250
    assert payment.related_entry_id == entry.id
    assert payment.payment_method == PaymentMethod.CARD
    assert payment.created_by == "clerk@company1"
    assert "INV-7" in payment.description


@pytest.mark.asyncio
async def test_status_change_logged_with_credit_delta(db_session, make_entry, make_credit_settings):
    await make_credit_settings(credit_limit=10000)
    entry = await make_entry(amount=1000, days_ago=5)

    await SettlementProcessor(defaults=DEFAULTS).settle(
        db_session, COMPANY_ID, entry.id, 1000, PaymentMethod.CASH, actor_id="clerk@company1", now=NOW
    )

    logs = (await db_session.execute(select(StatusChangeLog))).scalars().all()
    assert len(logs) == 1
    assert logs[0].old_status == EntryStatus.UNPAID
    assert logs[0].new_status == EntryStatus.PAID
    assert logs[0].credit_limit_change == pytest.approx(500)
    assert logs[0].actor == "clerk@company1"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -10])
async def test_non_positive_amount_rejected(db_session, make_entry, amount):
    entry = await make_entry(amount=1000)
    with pytest.raises(InvalidAmountError):
        await SettlementProcessor().settle(db_session, COMPANY_ID, entry.id, amount, PaymentMethod.CASH)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
async def test_non_finite_amount_rejected_without_write(db_session, make_entry, amount):
    entry = await make_entry(amount=1000, days_ago=5)
    entry_id = entry.id

    with pytest.raises(InvalidAmountError):
        await SettlementProcessor(defaults=DEFAULTS).settle(
            db_session, COMPANY_ID, entry_id, amount, PaymentMethod.CASH, now=NOW
        )

    stored = await db_session.get(LedgerEntry, entry_id, populate_existing=True)
    assert stored.paid_amount == 0
    assert stored.status == EntryStatus.UNPAID
    payments = (await db_session.execute(
        select(LedgerEntry).where(LedgerEntry.related_entry_id == entry_id)
    )).scalars().all()
    assert payments == []


@pytest.mark.asyncio
async def test_entry_of_other_company_not_found(db_session, make_entry):
    entry = await make_entry(amount=1000, company_id=OTHER_COMPANY_ID)
    entry_id = entry.id
    with pytest.raises(ResourceNotFoundError):
        await SettlementProcessor().settle(db_session, COMPANY_ID, entry_id, 100, PaymentMethod.CASH)


@pytest.mark.asyncio
async def test_missing_entry_not_found(db_session):
    with pytest.raises(ResourceNotFoundError):
        await SettlementProcessor().settle(db_session, COMPANY_ID, 404, 100, PaymentMethod.CASH)


@pytest.mark.asyncio
async def test_paid_entry_already_settled(db_session, make_entry):
    entry = await make_entry(amount=1000, status=EntryStatus.PAID, paid_amount=1000)
    entry_id = entry.id
    with pytest.raises(AlreadySettledError):
        await SettlementProcessor().settle(db_session, COMPANY_ID, entry_id, 100, PaymentMethod.CASH)


@pytest.mark.asyncio
async def test_buy_and_cancelled_entries_not_settleable(db_session, make_entry):
    buy = await make_entry(amount=1000, entry_type=EntryType.BUY)
    cancelled = await make_entry(amount=1000, status=EntryStatus.CANCELLED)
    buy_id, cancelled_id = buy.id, cancelled.id

    with pytest.raises(EntryNotSettleableError):
        await SettlementProcessor().settle(db_session, COMPANY_ID, buy_id, 100, PaymentMethod.CASH)
    with pytest.raises(EntryNotSettleableError):
        await SettlementProcessor().settle(db_session, COMPANY_ID, cancelled_id, 100, PaymentMethod.CASH)


@pytest.mark.asyncio
async def test_second_partial_keeps_status_without_new_log(db_session, make_entry):
    entry = await make_entry(amount=1000, days_ago=5)
    processor = SettlementProcessor(defaults=DEFAULTS)

    await processor.settle(db_session, COMPANY_ID, entry.id, 100, PaymentMethod.CASH, now=NOW)
    second = await processor.settle(db_session, COMPANY_ID, entry.id, 100, PaymentMethod.CASH, now=NOW)

    assert second.status == EntryStatus.PARTIALLY_PAID
    assert second.remaining_amount == 800
    logs = (await db_session.execute(select(StatusChangeLog))).scalars().all()
    assert len(logs) == 1
