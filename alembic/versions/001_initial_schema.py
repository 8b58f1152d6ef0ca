"""initial schema - QBO credentials and ledgers

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates company_settings, transactions, accrual_transactions and invoices.
The (company_id, external id) unique constraints back the sync upserts.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _invoice_columns() -> list:
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False),
        sa.Column("qbo_invoice_id", sa.String(64)),
        sa.Column("invoice_number", sa.String(64)),
        sa.Column("date", sa.Date()),
        sa.Column("due_date", sa.Date()),
        sa.Column("customer_label", sa.String(255)),
        sa.Column("client", sa.String(255)),
        sa.Column("project", sa.String(255)),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("balance", sa.Float(), nullable=False),
        sa.Column("status", sa.String(16)),
        sa.Column("status_detail", sa.String(64)),
        sa.Column("days_overdue", sa.Integer()),
        sa.Column("sync_source", sa.String(16), nullable=False),
        sa.Column("synced_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
    ]


def upgrade() -> None:
    op.create_table(
        "company_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False),
        sa.Column("qbo_realm_id", sa.String(64)),
        sa.Column("qbo_access_token", sa.Text()),
        sa.Column("qbo_refresh_token", sa.Text()),
        sa.Column("qbo_token_expires_at", sa.DateTime()),
        sa.Column("qbo_connected_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_company_settings_company_id", "company_settings", ["company_id"], unique=True)

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False),
        sa.Column("qbo_transaction_id", sa.String(64)),
        sa.Column("date", sa.Date()),
        sa.Column("description", sa.Text()),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("payee", sa.String(255)),
        sa.Column("qbo_category", sa.String(255)),
        sa.Column("category", sa.String(32)),
        sa.Column("movement_type", sa.String(16)),
        sa.Column("account_name", sa.String(255)),
        sa.Column("project", sa.String(255)),
        sa.Column("sync_source", sa.String(16), nullable=False),
        sa.Column("synced_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.UniqueConstraint("company_id", "qbo_transaction_id", name="uq_txn_company_qbo_id"),
    )
    op.create_index("ix_txn_company_date", "transactions", ["company_id", "date"])
    op.create_index("ix_txn_company_category", "transactions", ["company_id", "category"])

    op.create_table(
        "accrual_transactions",
        *_invoice_columns(),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(32)),
        sa.UniqueConstraint("company_id", "qbo_invoice_id", name="uq_accrual_company_qbo_id"),
    )
    op.create_index("ix_accrual_company_date", "accrual_transactions", ["company_id", "date"])

    op.create_table(
        "invoices",
        *_invoice_columns(),
        sa.Column("amount_paid", sa.Float(), nullable=False),
        sa.Column("aging_bucket", sa.String(16)),
        sa.UniqueConstraint("company_id", "qbo_invoice_id", name="uq_invoice_company_qbo_id"),
    )
    op.create_index("ix_invoice_company_status", "invoices", ["company_id", "status"])


def downgrade() -> None:
    """Drop all tables. ⚠️ DESTRUCTIVE — only for dev/test environments."""
    op.drop_table("invoices")
    op.drop_table("accrual_transactions")
    op.drop_table("transactions")
    op.drop_index("ix_company_settings_company_id", table_name="company_settings")
    op.drop_table("company_settings")
