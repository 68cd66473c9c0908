"""
Overdue Settings Resolver.

Responsible for determining the grace period and interest rate that apply
to an entry. Follows priority, field by field:
1. Customer credit settings for (customer, company)
2. Company overdue settings
3. Configured engine defaults
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import EngineDefaults, engine_defaults
from backend.app.models.credit_settings import CustomerCreditSettings, CompanyOverdueSettings


@dataclass(frozen=True)
class ResolvedTerms:
    grace_period: int
    interest_rate: float
    source: str  # "customer", "company" or "default"


class SettingsResolver:

    def __init__(self, defaults: EngineDefaults = engine_defaults):
        self.defaults = defaults

    def merge(
        self,
        customer: Optional[CustomerCreditSettings],
        company: Optional[CompanyOverdueSettings],
    ) -> ResolvedTerms:
        """Pure fallback chain over already-loaded settings rows."""
        grace_period = self.defaults.grace_period_days
        interest_rate = self.defaults.interest_rate
        source = "default"

        if company is not None:
            grace_period = company.grace_period
            interest_rate = company.interest_rate
            source = "company"

        if customer is not None:
            if customer.grace_period is not None:
                grace_period = customer.grace_period
                source = "customer"
            if customer.interest_rate is not None:
                interest_rate = customer.interest_rate
                source = "customer"

        return ResolvedTerms(grace_period=grace_period, interest_rate=interest_rate, source=source)

    async def company_settings(self, db: AsyncSession, company_id: int) -> Optional[CompanyOverdueSettings]:
        result = await db.execute(
            select(CompanyOverdueSettings).where(CompanyOverdueSettings.company_id == company_id)
        )
        return result.scalar_one_or_none()

    async def customer_settings(
        self, db: AsyncSession, company_id: int, customer_id: Optional[int]
    ) -> Optional[CustomerCreditSettings]:
        if customer_id is None:
            return None
        result = await db.execute(
            select(CustomerCreditSettings).where(
                CustomerCreditSettings.customer_id == customer_id,
                CustomerCreditSettings.company_id == company_id,
            )
        )
        return result.scalar_one_or_none()

    async def resolve(
        self,
        db: AsyncSession,
        company_id: int,
        customer_id: Optional[int] = None,
    ) -> ResolvedTerms:
        """Resolve effective terms. Never raises for missing settings."""
        customer = await self.customer_settings(db, company_id, customer_id)
        company = await self.company_settings(db, company_id)
        return self.merge(customer, company)
