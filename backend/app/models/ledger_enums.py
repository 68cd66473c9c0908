"""
Ledger enumerations.

Values match the labels stored by the ledger CRUD layer.
"""

import enum


class EntryType(str, enum.Enum):
    """Ledger entry type enumeration."""
    SELL = "Sell"  # Customer owes the company
    BUY = "Buy"  # Company owes the customer
    PAYMENT_IN = "Payment In"  # Customer paid the company
    PAYMENT_OUT = "Payment Out"  # Company paid the customer
    CASH_IN = "Cash In"
    CASH_OUT = "Cash Out"


class EntryStatus(str, enum.Enum):
    """Ledger entry payment status enumeration."""
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"  # Terminal
    OVERDUE = "Overdue"  # Past grace period; sticky until paid
    CANCELLED = "Cancelled"  # Terminal


# Statuses the reconciliation sweep re-evaluates
OPEN_STATUSES = (EntryStatus.UNPAID, EntryStatus.PARTIALLY_PAID, EntryStatus.OVERDUE)


class PaymentMethod(str, enum.Enum):
    """How an incoming payment was received."""
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CARD = "CARD"
    UPI = "UPI"
    CHEQUE = "CHEQUE"
    OTHER = "OTHER"


class CompoundingPeriod(str, enum.Enum):
    """Compounding granularity for reporting interest."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
