"""Ledger models — cash transactions, accrual transactions, AR invoices.

Rows synced from QuickBooks are keyed on (company_id, external id); the
unique constraints are what make re-syncing an update rather than a
duplicate insert.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Date, Float, Index, Integer, String, Text, UniqueConstraint

from ..database import UTCDateTime
from .base import Base

CATEGORIES = ("revenue", "opex", "overhead", "investment", "transfer")
MOVEMENT_TYPES = ("income", "expense", "transfer")


class Transaction(Base):
    """Cash-basis ledger row (bank feed)."""

    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True)
    company_id = Column(String(64), nullable=False)
    qbo_transaction_id = Column(String(64))  # PUR-123, DEP-9, ...
    date = Column(Date)
    description = Column(Text, default="")
    amount = Column(Float, nullable=False, default=0.0)
    payee = Column(String(255), default="")
    qbo_category = Column(String(255), default="")
    category = Column(String(32))  # see CATEGORIES; NULL = uncategorized
    movement_type = Column(String(16))  # income | expense | transfer
    account_name = Column(String(255), default="")
    project = Column(String(255))
    sync_source = Column(String(16), nullable=False, default="manual")  # qbo | manual
    synced_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("company_id", "qbo_transaction_id", name="uq_txn_company_qbo_id"),
        Index("ix_txn_company_date", "company_id", "date"),
        Index("ix_txn_company_category", "company_id", "category"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat() if self.date else None,
            "description": self.description or "",
            "amount": self.amount,
            "payee": self.payee or "",
            "category": self.category,
            "qbo_category": self.qbo_category or "",
            "movement_type": self.movement_type,
            "account_name": self.account_name or "",
            "project": self.project,
            "sync_source": self.sync_source,
            "qbo_transaction_id": self.qbo_transaction_id,
        }


class _InvoiceColumns:
    """Columns shared by the accrual ledger and the AR invoice view."""

    id = Column(Integer, primary_key=True)
    company_id = Column(String(64), nullable=False)
    qbo_invoice_id = Column(String(64))
    invoice_number = Column(String(64), default="")
    date = Column(Date)
    due_date = Column(Date)
    customer_label = Column(String(255), default="")  # raw "Client:Project"
    client = Column(String(255), default="")
    project = Column(String(255))
    amount = Column(Float, nullable=False, default=0.0)
    balance = Column(Float, nullable=False, default=0.0)
    status = Column(String(16), default="pending")
    status_detail = Column(String(64), default="")
    days_overdue = Column(Integer, default=0)
    sync_source = Column(String(16), nullable=False, default="qbo")
    synced_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))


class AccrualTransaction(_InvoiceColumns, Base):
    """Accrual-basis ledger row: one per QBO invoice, booked as revenue."""

    __tablename__ = "accrual_transactions"
    description = Column(Text, default="")
    category = Column(String(32), default="revenue")

    __table_args__ = (
        UniqueConstraint("company_id", "qbo_invoice_id", name="uq_accrual_company_qbo_id"),
        Index("ix_accrual_company_date", "company_id", "date"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "date": self.date.isoformat() if self.date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "description": self.description or "",
            "client": self.client,
            "project": self.project,
            "amount": self.amount,
            "balance": self.balance,
            "category": self.category,
            "status": self.status,
            "status_detail": self.status_detail,
            "days_overdue": self.days_overdue,
        }


class Invoice(_InvoiceColumns, Base):
    """AR reporting view of the same invoices, denormalized with amount paid."""

    __tablename__ = "invoices"
    amount_paid = Column(Float, nullable=False, default=0.0)
    aging_bucket = Column(String(16), default="current")

    __table_args__ = (
        UniqueConstraint("company_id", "qbo_invoice_id", name="uq_invoice_company_qbo_id"),
        Index("ix_invoice_company_status", "company_id", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "qbo_invoice_id": self.qbo_invoice_id,
            "invoice_number": self.invoice_number,
            "date": self.date.isoformat() if self.date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "client": self.client,
            "project": self.project,
            "amount": self.amount,
            "amount_paid": self.amount_paid,
            "balance": self.balance,
            "status": self.status,
            "status_detail": self.status_detail,
            "days_overdue": self.days_overdue,
            "aging_bucket": self.aging_bucket,
        }
