"""
schemas/qbo.py — Pydantic models for QuickBooks sync endpoints

Called by: routers/qbo.py
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_id: str = Field(alias="companyId")
    scope: Literal["bank", "invoices", "all"] = "all"

    @field_validator("company_id")
    @classmethod
    def company_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("companyId is required")
        return v
