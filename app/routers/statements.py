"""
statements.py — Bank statement upload route

Business Rules:
- /api/parse-statement takes one multipart file (PDF or image) and returns
  the extracted rows for preview; nothing is imported
- Rate limited with the chat limit, since every call is a large AI request

Called by: main.py (router mount)
Depends on: services/statement_parser.py
"""

from fastapi import APIRouter, File, Request, UploadFile

from ..config import settings
from ..rate_limit import limiter
from ..services import statement_parser

router = APIRouter(tags=["statements"])


@router.post("/api/parse-statement")
@limiter.limit(settings.rate_limit_chat)
async def parse_statement(request: Request, file: UploadFile = File(...)):
    media_type = statement_parser.resolve_media_type(file.content_type, file.filename)
    data = await file.read()
    result = await statement_parser.parse_statement(data, media_type)
    return {"success": True, **result}
