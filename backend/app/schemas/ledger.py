"""
Ledger accrual and settlement schemas.

Money is rounded to 2 places here, at the response boundary.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.ledger_enums import EntryStatus, PaymentMethod, CompoundingPeriod
from backend.app.models.dlq import DLQStatus


def money(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value, 2)


# Settlement

class SettleRequest(BaseModel):
    """Schema for settling a payment against a Sell entry."""
    entry_id: int = Field(..., gt=0)
    amount: float = Field(..., allow_inf_nan=False)
    payment_method: PaymentMethod = PaymentMethod.CASH


class SettleResponse(BaseModel):
    entry_id: int
    status: EntryStatus
    settlement_amount: float
    remaining_amount: float
    is_fully_paid: bool
    excess_amount: float
    payment_entry_id: int
    paid_date: Optional[datetime] = None
    credit_limit_before: Optional[float] = None
    credit_limit_after: Optional[float] = None

    @classmethod
    def from_result(cls, result) -> "SettleResponse":
        return cls(
            entry_id=result.entry_id,
            status=result.status,
            settlement_amount=money(result.settlement_amount),
            remaining_amount=money(result.remaining_amount),
            is_fully_paid=result.is_fully_paid,
            excess_amount=money(result.excess_amount),
            payment_entry_id=result.payment_entry_id,
            paid_date=result.paid_date,
            credit_limit_before=money(result.credit_limit_before),
            credit_limit_after=money(result.credit_limit_after),
        )


# Reconciliation

class TransitionResponse(BaseModel):
    entry_id: int
    customer_id: Optional[int]
    old_status: EntryStatus
    new_status: EntryStatus
    days_elapsed: int
    days_overdue: int
    accrued_interest: float


class FailureResponse(BaseModel):
    entry_id: int
    company_id: int
    error: str


class SweepResponse(BaseModel):
    """Result of a reconciliation sweep."""
    skipped: bool = False
    updated_count: int = 0
    total_processed: int = 0
    failed_count: int = 0
    companies_processed: int = 0
    cancelled: bool = False
    transitions: List[TransitionResponse] = []
    failures: List[FailureResponse] = []

    @classmethod
    def from_result(cls, result) -> "SweepResponse":
        if result is None:
            return cls(skipped=True)
        return cls(
            updated_count=result.updated_count,
            total_processed=result.total_processed,
            failed_count=result.failed_count,
            companies_processed=result.companies_processed,
            cancelled=result.cancelled,
            transitions=[
                TransitionResponse(
                    entry_id=t.entry_id,
                    customer_id=t.customer_id,
                    old_status=t.old_status,
                    new_status=t.new_status,
                    days_elapsed=t.days_elapsed,
                    days_overdue=t.days_overdue,
                    accrued_interest=money(t.accrued_interest),
                )
                for t in result.transitions
            ],
            failures=[
                FailureResponse(entry_id=f.entry_id, company_id=f.company_id, error=f.error)
                for f in result.failures
            ],
        )


class PendingUpdateResponse(BaseModel):
    entry_id: int
    invoice_number: Optional[str]
    current_status: EntryStatus
    suggested_status: EntryStatus
    current_days_elapsed: int
    suggested_days_elapsed: int
    current_interest: float
    suggested_interest: float
    grace_period: int
    days_overdue: int


class SweepPreviewResponse(BaseModel):
    """Dry run of a sweep."""
    total_checked: int
    needs_update: int
    pending_updates: List[PendingUpdateResponse]


# Balance and credit

class BalanceResponse(BaseModel):
    customer_id: int
    balance: float
    credit_limit: float
    available_credit: float
    credit_utilization: float


class CreditSettingsUpdate(BaseModel):
    """Upsert customer credit terms. Omitted grace/rate fall back to company settings."""
    credit_limit: float = Field(..., ge=0, allow_inf_nan=False)
    grace_period: Optional[int] = Field(None, ge=0)
    interest_rate: Optional[float] = Field(None, ge=0, allow_inf_nan=False)


class CreditSettingsResponse(BaseModel):
    customer_id: int
    company_id: int
    credit_limit: float
    original_credit_limit: float
    grace_period: Optional[int]
    interest_rate: Optional[float]
    effective_grace_period: int
    effective_interest_rate: float
    source: str
    is_default: bool = False


class OverdueSettingsUpdate(BaseModel):
    """Company-wide overdue defaults."""
    grace_period: int = Field(..., ge=0)
    interest_rate: float = Field(..., ge=0, allow_inf_nan=False)
    compounding_period: CompoundingPeriod = CompoundingPeriod.DAILY
    minimum_fee: Optional[float] = Field(None, ge=0, allow_inf_nan=False)


class OverdueSettingsResponse(BaseModel):
    company_id: int
    grace_period: int
    interest_rate: float
    compounding_period: CompoundingPeriod
    minimum_fee: Optional[float]
    is_default: bool = False


class AgingBucketResponse(BaseModel):
    name: str
    min_days: int
    max_days: Optional[int]
    entry_count: int
    amount: float
    interest: float


# Audit and ops

class StatusChangeResponse(BaseModel):
    id: int
    entry_id: int
    customer_id: Optional[int]
    old_status: EntryStatus
    new_status: EntryStatus
    reason: str
    accrued_interest: float
    credit_limit_change: Optional[float]
    actor: str
    created_at: datetime

    class Config:
        from_attributes = True


class DLQItemResponse(BaseModel):
    id: int
    task_name: str
    error_message: str
    payload: Optional[dict]
    status: DLQStatus
    retry_count: int
    created_at: datetime
    last_retry_at: Optional[datetime]

    class Config:
        from_attributes = True
