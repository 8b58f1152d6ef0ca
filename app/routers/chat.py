"""
chat.py — Vantage AI assistant routes

Business Rules:
- /api/chat accepts prior turns in "history" and returns the reply plus,
  when the model proposed one, the parsed bulk action; nothing is written
- /api/chat/apply is the explicit confirmation step that writes the action
- /api/categorize returns suggestions only
- Chat and categorize are rate limited per client address

Called by: main.py (router mount)
Depends on: services/chat_service.py
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..rate_limit import limiter
from ..schemas.chat import ApplyActionRequest, CategorizeRequest, ChatRequest
from ..services import chat_service

router = APIRouter(tags=["chat"])


@router.post("/api/chat")
@limiter.limit(settings.rate_limit_chat)
async def chat(payload: ChatRequest, request: Request, db: Session = Depends(get_db)):
    history = [t.model_dump() for t in payload.history]
    return await chat_service.chat(db, payload.company_id, payload.message, payload.context, history)


@router.post("/api/chat/apply")
async def apply_action(payload: ApplyActionRequest, db: Session = Depends(get_db)):
    result = chat_service.apply_bulk_update(db, payload.company_id, payload.action)
    return {"success": True, **result}


@router.post("/api/categorize")
@limiter.limit(settings.rate_limit_chat)
async def categorize(payload: CategorizeRequest, request: Request):
    results = await chat_service.categorize(
        payload.transactions, payload.existing_categories, payload.existing_projects
    )
    return {"results": results}
