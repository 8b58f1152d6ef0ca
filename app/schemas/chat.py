"""
schemas/chat.py — Pydantic models for the chat assistant and bulk edits

Business Rules:
- Chat requires a non-blank message and a company id
- A bulk action is kind "bulk_update" against the "cash" or "accrual" ledger
- Only category and project may be changed by a bulk action; category must
  be one of the ledger categories
- The action envelope and each update item validate separately, so one bad
  item does not invalidate the rest
- Chat history is a list of prior user/assistant turns, oldest first

Called by: routers/chat.py, services/action_parser.py, services/chat_service.py
Depends on: pydantic, models (CATEGORIES)
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.ledger import CATEGORIES


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content is required")
        return v


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    company_id: str = Field(alias="companyId")
    context: dict[str, Any] = Field(default_factory=dict)
    history: list[ChatTurn] = Field(default_factory=list)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("message is required")
        return v


class ActionChanges(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: str | None = None
    project: str | None = None

    @field_validator("category")
    @classmethod
    def known_category(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(CATEGORIES)}")
        return v


class BulkUpdateItem(BaseModel):
    id: int | str
    changes: ActionChanges
    preview: dict[str, Any] = Field(default_factory=dict)


class BulkAction(BaseModel):
    action: Literal["bulk_update"]
    type: Literal["cash", "accrual"] = "cash"
    updates: list[Any] = Field(default_factory=list)
    summary: str = ""


class ApplyActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_id: str = Field(alias="companyId")
    action: dict[str, Any]


class CategorizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transactions: list[dict[str, Any]] = Field(min_length=1)
    existing_categories: list[str] = Field(default_factory=list, alias="existingCategories")
    existing_projects: list[str] = Field(default_factory=list, alias="existingProjects")
