"""
statement_parser.py — Extract transactions from an uploaded bank statement.

The statement (PDF or image) goes to Claude as a base64 document/image
block together with extraction instructions; the JSON reply is cleaned
into rows the dashboard can preview before import. Nothing is written to
the ledgers here.

Business Rules:
- Accepted types: PDF, PNG, JPEG, WebP; anything else → InvalidUploadError
- Empty upload → InvalidUploadError; over statement_max_bytes →
  UploadTooLargeError (413)
- Missing ANTHROPIC_API_KEY → ConfigurationError; failed call or
  unparseable reply → RemoteFetchError (502)
- Amounts are positive; direction is carried by type (credit | debit)
- Missing date defaults to today, missing description to "Unknown",
  missing category suggestion to "opex"

Called by: routers/statements.py
Depends on: utils/claude_client.py
"""

import json
import logging
from datetime import date, datetime, timezone

from ..config import settings
from ..exceptions import ConfigurationError, InvalidUploadError, RemoteFetchError, UploadTooLargeError
from ..utils import safe_float
from ..utils.claude_client import claude_message, file_block

log = logging.getLogger("vantage.statements")

MEDIA_TYPES = {
    "application/pdf": "application/pdf",
    "image/png": "image/png",
    "image/jpeg": "image/jpeg",
    "image/jpg": "image/jpeg",
    "image/webp": "image/webp",
}
_EXTENSIONS = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}
DEFAULT_CONFIDENCE = 0.8

EXTRACTION_PROMPT = """You are a financial data extraction assistant. Extract ALL transactions from this bank statement.

For EACH transaction, extract:
- date: The transaction date in YYYY-MM-DD format
- description: The transaction description/memo (merchant name, reference, etc.)
- amount: The numeric amount (positive number)
- type: Either "credit" (money in) or "debit" (money out)
- category_suggestion: Your best guess (revenue, opex, payroll, overhead, investment, transfer, fee)
- vendor: Vendor/merchant name if identifiable

IMPORTANT:
- Extract EVERY transaction you can see, even partial ones
- Assume the current year if a date has none
- Ignore any running balance column
- Clean up extra spaces in descriptions but keep the essential info

Respond with ONLY a JSON object:
{
  "transactions": [
    {"date": "2025-01-15", "description": "PAYROLL ADP", "amount": 5000.00,
     "type": "debit", "category_suggestion": "payroll", "vendor": "ADP"}
  ],
  "account_info": {"bank_name": "", "account_ending": "", "statement_period": ""},
  "extraction_notes": "Any issues or uncertainties"
}"""


def resolve_media_type(content_type: str | None, filename: str | None = None) -> str:
    """Map an upload's declared type (or, failing that, its extension) to a Claude media type."""
    declared = (content_type or "").split(";")[0].strip().lower()
    if declared in MEDIA_TYPES:
        return MEDIA_TYPES[declared]
    name = (filename or "").lower()
    for ext, media_type in _EXTENSIONS.items():
        if name.endswith(ext):
            return media_type
    raise InvalidUploadError(f"Unsupported file type: {declared or name or 'unknown'}")


def clean_transaction(raw: dict, index: int, batch: str, today: date | None = None) -> dict:
    today = today or date.today()
    return {
        "id": f"stmt-{batch}-{index}",
        "date": raw.get("date") or today.isoformat(),
        "description": (raw.get("description") or "").strip() or "Unknown",
        "amount": abs(safe_float(raw.get("amount")) or 0.0),
        "type": "credit" if raw.get("type") == "credit" else "debit",
        "category_suggestion": (raw.get("category_suggestion") or "opex").lower(),
        "vendor": raw.get("vendor") or "",
        "confidence": DEFAULT_CONFIDENCE,
    }


def _json_object(text: str) -> dict | None:
    """The outermost {...} in ``text``; the reply may wrap it in prose or fences."""
    text = text or ""
    start, end = text.find("{"), text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


async def parse_statement(data: bytes, media_type: str) -> dict:
    """Send one statement file to Claude and return the cleaned extraction."""
    if not settings.anthropic_api_key:
        raise ConfigurationError("ANTHROPIC_API_KEY not configured")
    if not data:
        raise InvalidUploadError("No file provided")
    if len(data) > settings.statement_max_bytes:
        raise UploadTooLargeError(f"File too large: {settings.statement_max_bytes // 1_000_000}MB maximum")

    content = [file_block(data, media_type), {"type": "text", "text": EXTRACTION_PROMPT}]
    reply = await claude_message(
        content,
        model_tier="smart",
        max_tokens=settings.statement_max_tokens,
        timeout=120,
    )
    if reply is None:
        raise RemoteFetchError("Failed to process statement")

    parsed = _json_object(reply["text"])
    if parsed is None:
        log.warning(f"Statement reply was not a JSON object: {(reply['text'] or '')[:200]}")
        raise RemoteFetchError("Failed to parse extracted data")

    batch = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    rows = [t for t in (parsed.get("transactions") or []) if isinstance(t, dict)]
    transactions = [clean_transaction(t, i, batch) for i, t in enumerate(rows)]
    log.info(f"Statement parsed: {len(transactions)} transactions ({media_type})")
    return {
        "transactions": transactions,
        "account_info": parsed.get("account_info") or {},
        "extraction_notes": parsed.get("extraction_notes") or "",
        "transaction_count": len(transactions),
    }
