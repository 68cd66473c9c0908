"""
Credit API Endpoints.

Customer balance and credit terms, company overdue settings and the overdue
aging report. Everything is scoped to the caller's company.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.models.credit_settings import CustomerCreditSettings, CompanyOverdueSettings
from backend.app.models.ledger_enums import CompoundingPeriod
from backend.app.schemas.ledger import (
    BalanceResponse, CreditSettingsUpdate, CreditSettingsResponse,
    OverdueSettingsUpdate, OverdueSettingsResponse, AgingBucketResponse, money,
)
from backend.app.core.exceptions import ConcurrentUpdateError, ResourceNotFoundError
from backend.app.core.guards import require_role, ANY_ROLE, SETTINGS_ROLES
from backend.app.domain.ledger.aging_report import build_aging_report
from backend.app.domain.ledger.balance import get_customer_balance
from backend.app.domain.ledger.settings_resolver import SettingsResolver

customers_router = APIRouter(prefix="/customers", tags=["Customers - Credit"])
overdue_router = APIRouter(prefix="/overdue", tags=["Overdue Settings"])
reports_router = APIRouter(prefix="/reports", tags=["Reports"])


def _credit_response(
    company_id: int,
    customer_id: int,
    row: Optional[CustomerCreditSettings],
    resolver: SettingsResolver,
    company: Optional[CompanyOverdueSettings],
) -> CreditSettingsResponse:
    terms = resolver.merge(row, company)
    return CreditSettingsResponse(
        customer_id=customer_id,
        company_id=company_id,
        credit_limit=money(row.credit_limit) if row else 0.0,
        original_credit_limit=money(row.original_credit_limit) if row else 0.0,
        grace_period=row.grace_period if row else None,
        interest_rate=row.interest_rate if row else None,
        effective_grace_period=terms.grace_period,
        effective_interest_rate=terms.interest_rate,
        source=terms.source,
        is_default=row is None,
    )


@customers_router.get("/{customer_id}/balance", response_model=BalanceResponse)
async def customer_balance(
    customer_id: int = Path(..., description="Customer ID"),
    current_user: dict = Depends(require_role(ANY_ROLE)),
    db: AsyncSession = Depends(get_db)
):
    """Outstanding balance and credit headroom of a customer."""
    balance = await get_customer_balance(db, int(current_user["company_id"]), customer_id)
    return BalanceResponse(
        customer_id=customer_id,
        balance=balance.balance,
        credit_limit=balance.credit_limit,
        available_credit=balance.available_credit,
        credit_utilization=balance.credit_utilization,
    )


@customers_router.get("/{customer_id}/credit-settings", response_model=CreditSettingsResponse)
async def get_credit_settings(
    customer_id: int = Path(..., description="Customer ID"),
    current_user: dict = Depends(require_role(ANY_ROLE)),
    db: AsyncSession = Depends(get_db)
):
    """Customer credit terms; the effective terms are returned even without a row."""
    company_id = int(current_user["company_id"])
    resolver = SettingsResolver()
    row = await resolver.customer_settings(db, company_id, customer_id)
    company = await resolver.company_settings(db, company_id)
    return _credit_response(company_id, customer_id, row, resolver, company)


@customers_router.put("/{customer_id}/credit-settings", response_model=CreditSettingsResponse)
async def upsert_credit_settings(
    payload: CreditSettingsUpdate,
    customer_id: int = Path(..., description="Customer ID"),
    current_user: dict = Depends(require_role(SETTINGS_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    Create or replace customer credit terms.

    Setting a credit limit by hand also makes it the new baseline restored
    by a reset.
    """
    company_id = int(current_user["company_id"])
    resolver = SettingsResolver()
    row = await resolver.customer_settings(db, company_id, customer_id)

    if row is None:
        row = CustomerCreditSettings(customer_id=customer_id, company_id=company_id)
        db.add(row)

    row.credit_limit = payload.credit_limit
    row.original_credit_limit = payload.credit_limit
    row.grace_period = payload.grace_period
    row.interest_rate = payload.interest_rate
    row.updated_at = datetime.utcnow()

    try:
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        raise ConcurrentUpdateError("Credit settings", customer_id) from e

    company = await resolver.company_settings(db, company_id)
    return _credit_response(company_id, customer_id, row, resolver, company)


@customers_router.post("/{customer_id}/credit-settings/reset", response_model=CreditSettingsResponse)
async def reset_credit_limit(
    customer_id: int = Path(..., description="Customer ID"),
    current_user: dict = Depends(require_role(SETTINGS_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Restore the credit limit to its baseline, dropping payment promotions."""
    company_id = int(current_user["company_id"])
    resolver = SettingsResolver()
    row = await resolver.customer_settings(db, company_id, customer_id)
    if row is None:
        raise ResourceNotFoundError("Credit settings", customer_id)

    row.credit_limit = row.original_credit_limit
    row.updated_at = datetime.utcnow()
    try:
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        raise ConcurrentUpdateError("Credit settings", customer_id) from e

    company = await resolver.company_settings(db, company_id)
    return _credit_response(company_id, customer_id, row, resolver, company)


@overdue_router.get("/settings", response_model=OverdueSettingsResponse)
async def get_overdue_settings(
    current_user: dict = Depends(require_role(ANY_ROLE)),
    db: AsyncSession = Depends(get_db)
):
    """Company overdue settings, or the engine defaults when none are saved."""
    company_id = int(current_user["company_id"])
    resolver = SettingsResolver()
    row = await resolver.company_settings(db, company_id)
    if row is None:
        return OverdueSettingsResponse(
            company_id=company_id,
            grace_period=resolver.defaults.grace_period_days,
            interest_rate=resolver.defaults.interest_rate,
            compounding_period=CompoundingPeriod.DAILY,
            minimum_fee=None,
            is_default=True,
        )
    return OverdueSettingsResponse(
        company_id=company_id,
        grace_period=row.grace_period,
        interest_rate=row.interest_rate,
        compounding_period=row.compounding_period,
        minimum_fee=row.minimum_fee,
    )


@overdue_router.put("/settings", response_model=OverdueSettingsResponse)
async def upsert_overdue_settings(
    payload: OverdueSettingsUpdate,
    current_user: dict = Depends(require_role(SETTINGS_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Save company overdue settings. Saved companies join the scheduled sweep."""
    company_id = int(current_user["company_id"])
    row = await SettingsResolver().company_settings(db, company_id)
    if row is None:
        row = CompanyOverdueSettings(company_id=company_id)
        db.add(row)

    row.grace_period = payload.grace_period
    row.interest_rate = payload.interest_rate
    row.compounding_period = payload.compounding_period
    row.minimum_fee = payload.minimum_fee
    row.updated_at = datetime.utcnow()
    await db.commit()

    return OverdueSettingsResponse(
        company_id=company_id,
        grace_period=row.grace_period,
        interest_rate=row.interest_rate,
        compounding_period=row.compounding_period,
        minimum_fee=row.minimum_fee,
    )


@reports_router.get("/overdue-aging", response_model=List[AgingBucketResponse])
async def overdue_aging_report(
    current_user: dict = Depends(require_role(ANY_ROLE)),
    db: AsyncSession = Depends(get_db)
):
    """Outstanding amount and compounding interest by days past grace."""
    buckets = await build_aging_report(db, int(current_user["company_id"]))
    return [
        AgingBucketResponse(
            name=b.name,
            min_days=b.min_days,
            max_days=b.max_days,
            entry_count=b.entry_count,
            amount=money(b.amount),
            interest=money(b.interest),
        )
        for b in buckets
    ]
