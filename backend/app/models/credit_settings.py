"""
Customer credit settings and company overdue settings models.
"""

from sqlalchemy import Column, Integer, Float, DateTime, Enum, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import CompoundingPeriod


class CustomerCreditSettings(Base):
    """
    Per (customer, company) credit terms.

    credit_limit grows with good payment behaviour; original_credit_limit is
    the baseline restored by a full reset. A null grace_period/interest_rate
    falls back to the company settings.
    """
    __tablename__ = "customer_credit_settings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    customer_id = Column(Integer, nullable=False, index=True)
    company_id = Column(Integer, nullable=False, index=True)

    credit_limit = Column(Float, nullable=False, default=0.0)
    original_credit_limit = Column(Float, nullable=False, default=0.0)
    grace_period = Column(Integer, nullable=True)  # days
    interest_rate = Column(Float, nullable=True)  # annual percent

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('customer_id', 'company_id', name='uq_credit_settings_customer_company'),
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    def __repr__(self):
        return f"<CustomerCreditSettings(customer_id={self.customer_id}, company_id={self.company_id}, limit={self.credit_limit})>"


class CompanyOverdueSettings(Base):
    """
    Company-wide overdue defaults.

    Companies with a row here are included in the cross-tenant scheduled sweep.
    """
    __tablename__ = "company_overdue_settings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    company_id = Column(Integer, nullable=False, unique=True, index=True)
    grace_period = Column(Integer, nullable=False)
    interest_rate = Column(Float, nullable=False)

    # Reporting-only interest options
    compounding_period = Column(Enum(CompoundingPeriod), default=CompoundingPeriod.DAILY, nullable=False)
    minimum_fee = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self):
        return f"<CompanyOverdueSettings(company_id={self.company_id}, grace={self.grace_period}, rate={self.interest_rate})>"
