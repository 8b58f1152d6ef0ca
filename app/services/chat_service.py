"""
chat_service.py — Vantage AI assistant: answer, propose, apply.

A chat turn searches the tenant's transactions for what the message refers
to, sends the candidates plus the client's financial context to Claude,
and splits the reply into display text and an optional bulk-edit action.
The action is only a proposal; apply_bulk_update() runs after the user
confirms it in the UI.

Business Rules:
- Missing ANTHROPIC_API_KEY → ConfigurationError; a failed Claude call →
  RemoteFetchError (502)
- A malformed action never breaks the reply; the message is still returned
- Bulk edits touch only category/project, only on rows owned by the
  requesting company; invalid items are rejected individually
- Accrual rows keep category "revenue"; their project edits are mirrored
  onto the matching AR invoice
- Prior turns are replayed to Claude, capped at chat_history_turns
- Batch categorization sends at most 50 transactions per call

Called by: routers/chat.py
Depends on: services/transaction_search.py, services/action_parser.py,
            utils/claude_client.py, models (Transaction, AccrualTransaction, Invoice)
"""

import json
import logging

from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import ActionParseError, ConfigurationError, RemoteFetchError
from ..models import CATEGORIES, AccrualTransaction, Invoice, Transaction
from ..utils.claude_client import claude_json, claude_message
from .action_parser import parse_action, validate_action, validate_update
from .transaction_search import find_matches

log = logging.getLogger("vantage.chat")

FALLBACK_REPLY = "Sorry, I could not generate a response."
CATEGORIZE_BATCH = 50

_ACTION_INSTRUCTIONS = """ACTION MODE INSTRUCTIONS:
When the user asks you to MODIFY, UPDATE, CATEGORIZE, ASSIGN, CHANGE, or BULK EDIT transactions:
1. Identify matching transactions from the data
2. Explain what you found and what will change
3. Include exactly one JSON block in this format:

```vantage-action
{
  "action": "bulk_update",
  "type": "cash",
  "updates": [
    {
      "id": 123,
      "changes": {"category": "opex", "project": "Project Name"},
      "preview": {
        "description": "Original description",
        "amount": 1234.56,
        "currentCategory": "uncategorized",
        "currentProject": "none",
        "newCategory": "opex",
        "newProject": "Project Name"
      }
    }
  ],
  "summary": "Brief description of what will change"
}
```

RULES FOR ACTIONS:
- Only include transactions that MATCH the user's criteria
- Use EXACT transaction IDs from the data provided
- If nothing matches, say so and do not include an action block
- Prefer existing project names
- End with: Click **Apply Changes** to execute these updates, or **Cancel** to discard."""


def _money(value) -> str:
    try:
        return f"${float(value or 0):,.2f}"
    except (TypeError, ValueError):
        return "$0.00"


def _txn_line(t: dict) -> str:
    return (
        f"[ID:{t.get('id')}] {t.get('date') or '?'} | {t.get('description') or ''} | "
        f"{_money(t.get('amount'))} | cat:{t.get('category') or 'uncategorized'} | "
        f"proj:{t.get('project') or 'none'}"
    )


def build_system_prompt(context: dict, search: dict) -> str:
    """Assemble the assistant's system prompt from client context and matches."""
    context = context or {}
    limit = settings.chat_context_rows
    projects = context.get("projects") or []
    metrics = context.get("metrics") or {}
    stats = search["stats"]

    candidates = search["matches"] or (context.get("allTransactions") or [])
    shown = candidates[:limit]
    more = len(candidates) - len(shown)

    sections = [
        "You are Vantage AI, a financial assistant for a project-based business "
        "analytics platform. You help users understand cash flow, project "
        "profitability, and financial metrics.",
        "You have TWO modes:\n1. QUERY MODE - answer questions about their data\n"
        "2. ACTION MODE - help users modify their data in bulk",
        f"FINANCIAL SUMMARY:\n{context.get('summary') or 'No summary available'}",
        f"PROJECTS ({len(projects)} total):\n"
        + (
            "\n".join(
                f"- {p.get('name')}: Revenue {_money(p.get('revenue'))}, Costs {_money(p.get('costs'))}"
                for p in projects if isinstance(p, dict)
            )
            or "No projects"
        ),
        f"EXISTING PROJECT NAMES: {', '.join(context.get('existingProjects') or []) or 'None'}",
        f"CATEGORIES AVAILABLE: {', '.join(CATEGORIES)}",
        f"DATASET: {stats['total']} transactions, {stats['uncategorized']} uncategorized, "
        f"{stats['unassigned_project']} without a project",
        f"MATCHING TRANSACTIONS ({len(candidates)} found"
        + (f", search terms: {', '.join(search['terms'] + search['phrases'])}" if search["terms"] or search["phrases"] else "")
        + "):\n"
        + ("\n".join(_txn_line(t) for t in shown) or "No transactions")
        + (f"\n... and {more} more transactions" if more > 0 else ""),
        "KEY METRICS:\n"
        f"- Total Revenue: {_money(metrics.get('totalRevenue'))}\n"
        f"- Total Expenses: {_money(metrics.get('totalExpenses'))}\n"
        f"- Net Cash Flow: {_money(metrics.get('netCashFlow'))}",
        _ACTION_INSTRUCTIONS,
        "GUIDELINES:\n- Be concise and direct\n- Use specific numbers from the data\n"
        "- If you don't have enough data to answer, say so\n"
        "- For ambiguous requests, ask for clarification",
    ]
    return "\n\n".join(sections)


def _history_messages(history: list | None) -> list[dict]:
    """Last chat_history_turns turns as Claude messages, starting on a user turn."""
    turns = [
        {"role": t["role"], "content": t["content"]}
        for t in (history or [])
        if isinstance(t, dict) and t.get("role") in ("user", "assistant") and t.get("content")
    ]
    turns = turns[-settings.chat_history_turns:] if settings.chat_history_turns > 0 else []
    while turns and turns[0]["role"] != "user":
        turns.pop(0)
    return turns


async def chat(
    db: Session,
    company_id: str,
    message: str,
    context: dict | None = None,
    history: list | None = None,
) -> dict:
    """One assistant turn. Returns {message, action, usage, debug}."""
    if not settings.anthropic_api_key:
        raise ConfigurationError("ANTHROPIC_API_KEY not configured")

    context = context or {}
    search = find_matches(db, company_id, message, fallback=context.get("allTransactions"))
    system = build_system_prompt(context, search)

    reply = await claude_message(
        message,
        system=system,
        history=_history_messages(history),
        model_tier="smart",
        max_tokens=settings.chat_max_tokens,
    )
    if reply is None:
        raise RemoteFetchError("Failed to get response from AI")

    parsed = parse_action(reply["text"] or FALLBACK_REPLY)
    return {
        "message": parsed.clean_message or FALLBACK_REPLY,
        "action": parsed.action,
        "usage": reply["usage"],
        "debug": {
            "terms": search["terms"],
            "phrases": search["phrases"],
            "match_count": len(search["matches"]),
            "source": search["source"],
            "stats": search["stats"],
        },
    }


def apply_bulk_update(db: Session, company_id: str, action: dict) -> dict:
    """Apply a confirmed bulk action item by item.

    The envelope (kind and ledger) must be valid or ActionParseError is
    raised and nothing is written. Past that, each item lands in exactly one
    of ``updated``, ``not_found`` or ``rejected``; a bad item never blocks
    the others.

    Accrual rows are invoices booked as revenue: a category change on them
    is rejected, and a project change is mirrored onto the matching AR
    invoice.
    """
    bulk = validate_action(action)
    accrual = bulk.type == "accrual"
    model = AccrualTransaction if accrual else Transaction

    updated, not_found, rejected = [], [], []
    for raw in bulk.updates:
        raw_id = raw.get("id") if isinstance(raw, dict) else None
        try:
            item = validate_update(raw)
            row_id = int(item.id)
        except (ActionParseError, TypeError, ValueError) as e:
            log.info(f"bulk_update {company_id}: rejected item {raw_id!r}: {e}")
            rejected.append(raw_id)
            continue

        changes = item.changes.model_dump(exclude_none=True)
        if accrual and changes.pop("category", "revenue") != "revenue":
            rejected.append(item.id)
            continue
        if not changes:
            rejected.append(item.id)
            continue

        row = db.query(model).filter(model.id == row_id, model.company_id == company_id).first()
        if row is None:
            not_found.append(item.id)
            continue
        for field, value in changes.items():
            setattr(row, field, value)
        if accrual and "project" in changes and row.qbo_invoice_id:
            db.query(Invoice).filter(
                Invoice.company_id == company_id,
                Invoice.qbo_invoice_id == row.qbo_invoice_id,
            ).update({Invoice.project: changes["project"]}, synchronize_session="fetch")
        updated.append(row_id)

    db.commit()
    log.info(
        f"bulk_update {company_id}: {len(updated)} updated, "
        f"{len(not_found)} not found, {len(rejected)} rejected ({bulk.summary})"
    )
    return {"updated": updated, "not_found": not_found, "rejected": rejected}


async def categorize(
    transactions: list[dict], categories: list[str], projects: list[str]
) -> list[dict]:
    """AI category/project suggestions for up to 50 transactions."""
    if not settings.anthropic_api_key:
        raise ConfigurationError("ANTHROPIC_API_KEY not configured")

    batch = transactions[:CATEGORIZE_BATCH]
    system = (
        "You are a financial categorization assistant for a project-based business.\n"
        f"Available categories: {', '.join(categories) or ', '.join(CATEGORIES)}\n"
        f"Existing projects: {', '.join(projects) or 'None specified'}\n\n"
        "Rules:\n"
        "1. revenue: client payments, invoice collections, sales\n"
        "2. opex: project-specific costs, contractors, job materials\n"
        "3. overhead: rent, utilities, software subscriptions, insurance\n"
        "4. investment: equipment and other capital expenditure\n"
        "Confidence is 0-100. Respond with a JSON array only, no markdown."
    )
    prompt = (
        "Categorize these transactions. Return a JSON array of objects with: id, "
        "suggestedCategory, suggestedProject, confidence, reasoning.\n\n"
        f"Transactions:\n{json.dumps(batch, indent=2, default=str)}"
    )
    suggestions = await claude_json(prompt, system=system, model_tier="fast")
    if not isinstance(suggestions, list):
        raise RemoteFetchError("Failed to parse AI categorization response")

    by_id = {str(s.get("id")): s for s in suggestions if isinstance(s, dict)}
    merged = []
    for original in batch:
        s = by_id.get(str(original.get("id")), {})
        merged.append({
            **original,
            "suggestedCategory": (s.get("suggestedCategory") or "").lower() or None,
            "suggestedProject": s.get("suggestedProject"),
            "confidence": s.get("confidence", 0),
            "reasoning": s.get("reasoning", ""),
        })
    return merged
