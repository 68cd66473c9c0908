"""
Ledger Entry database model.

Sales, purchases, payments and cash movements recorded per company/customer.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum, String, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import EntryType, EntryStatus, PaymentMethod


class LedgerEntry(Base):
    """
    Ledger Entry model.

    Created by the ledger CRUD layer; the accrual engine only mutates
    status, day counters, interest and settlement fields.
    `version` is an optimistic lock: every UPDATE is guarded by the version
    that was read, so a sweep and a settlement cannot overwrite each other.
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    company_id = Column(Integer, nullable=False, index=True)
    customer_id = Column(Integer, nullable=True, index=True)  # None for pure cash entries

    # Classification
    entry_type = Column(Enum(EntryType), nullable=False)
    status = Column(Enum(EntryStatus), default=EntryStatus.UNPAID, nullable=False)
    invoice_number = Column(String(50), nullable=True)
    description = Column(String(255), nullable=True)

    # Financials
    amount = Column(Float, nullable=False)
    paid_amount = Column(Float, default=0.0, nullable=False)
    accrued_interest = Column(Float, default=0.0, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=True)

    # Dates
    date = Column(DateTime(timezone=True), nullable=False)  # Immutable entry/invoice date
    due_date = Column(DateTime(timezone=True), nullable=True)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    overdue_start_date = Column(DateTime(timezone=True), nullable=True)  # Never cleared once set
    days_elapsed = Column(Integer, default=0, nullable=False)

    # Linkage (payment entries point at the Sell entry they settle)
    related_entry_id = Column(Integer, ForeignKey('ledger_entries.id'), nullable=True, index=True)

    # Audit
    created_by = Column(String(100), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_ledger_entries_scope', 'company_id', 'status', 'entry_type', 'date'),
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    @property
    def outstanding_amount(self) -> float:
        return max(0.0, (self.amount or 0.0) - (self.paid_amount or 0.0))

    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, type='{self.entry_type.value}', status='{self.status.value}', amount={self.amount})>"
