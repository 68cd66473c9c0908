"""
Status Change Log Database Model.

Append-only audit trail of ledger entry status transitions.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import EntryStatus


class StatusChangeLog(Base):
    """
    Status change log model.

    Written only by the reconciliation sweep and the settlement processor,
    inside the same transaction as the entry update. Never updated or deleted.
    """
    __tablename__ = "status_change_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    entry_id = Column(Integer, nullable=False, index=True)
    customer_id = Column(Integer, nullable=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)

    old_status = Column(Enum(EntryStatus), nullable=False)
    new_status = Column(Enum(EntryStatus), nullable=False)
    reason = Column(String(500), nullable=False)

    accrued_interest = Column(Float, nullable=False, default=0.0)
    credit_limit_change = Column(Float, nullable=True)

    # "system-auto" for scheduled runs, "system-cron" for the automation trigger, otherwise the requesting user
    actor = Column(String(100), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self):
        return f"<StatusChangeLog(entry_id={self.entry_id}, {self.old_status.value} -> {self.new_status.value})>"
