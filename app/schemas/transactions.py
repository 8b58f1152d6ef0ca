"""
schemas/transactions.py — Manual edits to cash ledger rows

Called by: routers/transactions.py
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.chat import ActionChanges


class TransactionUpdate(ActionChanges):
    """Same allow-list as chat bulk edits: category and project only."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    company_id: str = Field(alias="companyId")
