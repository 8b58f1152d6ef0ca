"""
transaction_search.py — Find cash transactions a chat request refers to.

Turns a natural-language request ("assign all Airtable charges to Ops")
into a disjunctive fuzzy match over transaction descriptions, and reports
dataset stats the assistant uses for context.

Business Rules:
- Terms: lowercase alphanumeric words of 3+ chars, minus STOPWORDS
- Quoted text ('...' or "...") is kept as an exact lowercase phrase
- Each term matches as a substring; 5+ char terms also match on their
  first 4 chars; 6+ char single words also match split in half with
  anything in between ("air%table")
- "uncategorized" / "unassigned" in the request pulls in every row whose
  category is NULL, empty or "unassigned"
- If the tenant has no rows in the store, the same rule runs over the
  caller-supplied transaction list
- "%", "_" and "\\" in a phrase are literal on both paths
- Stats are computed on every call, term or no term

Called by: services/chat_service.py
Depends on: models (Transaction)
"""

import logging
import re

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..models import Transaction

log = logging.getLogger("vantage.search")

MAX_MATCHES = 200
UNCATEGORIZED_VALUES = ("", "unassigned")
UNCATEGORIZED_TRIGGERS = ("uncategorized", "unassigned")
LIKE_ESCAPE = "\\"

STOPWORDS = frozenset({
    # articles, pronouns, auxiliaries
    "the", "and", "for", "are", "was", "were", "has", "have", "had", "been",
    "being", "with", "from", "that", "this", "these", "those", "them", "they",
    "their", "there", "what", "which", "who", "whom", "all", "any", "can",
    "could", "would", "should", "will", "shall", "may", "might", "must",
    "does", "did", "not", "but", "you", "your", "our", "ours", "its", "into",
    "onto", "about", "than", "then", "also", "just", "some", "each", "every",
    "how", "why", "when", "where", "out", "off", "over", "under", "per",
    # request filler
    "please", "show", "list", "find", "get", "give", "tell", "want", "need",
    "like", "make", "set", "change", "update", "assign", "move", "mark",
    "put", "let", "see", "look",
    # domain filler
    "transaction", "transactions", "category", "categories", "categorize",
    "categorise", "recategorize", "uncategorized", "unassigned", "project",
    "projects", "expense", "expenses", "payment", "payments", "charge",
    "charges", "item", "items", "entry", "entries", "row", "rows", "record",
    "records", "bank", "feed", "opex", "overhead", "revenue", "investment",
})

_WORD_RE = re.compile(r"[a-z0-9]+")
_QUOTED_RE = re.compile(r"\"([^\"]+)\"|'([^']+)'")


# ── Term extraction ───────────────────────────────────────────────────


def extract_phrases(query: str) -> list[str]:
    phrases = []
    for double, single in _QUOTED_RE.findall(query or ""):
        phrase = (double or single).strip().lower()
        if phrase and phrase not in phrases:
            phrases.append(phrase)
    return phrases


def extract_search_terms(query: str) -> list[str]:
    terms = []
    for word in _WORD_RE.findall((query or "").lower()):
        if len(word) >= 3 and word not in STOPWORDS and word not in terms:
            terms.append(word)
    return terms


def wants_uncategorized(query: str) -> bool:
    q = (query or "").lower()
    return any(t in q for t in UNCATEGORIZED_TRIGGERS)


def escape_like(s: str) -> str:
    """Make ``s`` match itself literally inside a LIKE pattern."""
    for ch in (LIKE_ESCAPE, "%", "_"):
        s = s.replace(ch, LIKE_ESCAPE + ch)
    return s


def build_patterns(terms: list[str], phrases: list[str]) -> list[str]:
    """Escaped LIKE patterns for the disjunctive match, deduplicated in order."""
    patterns: list[str] = []

    def _add(*pieces: str):
        p = "%" + "%".join(escape_like(piece) for piece in pieces) + "%"
        if p not in patterns:
            patterns.append(p)

    for term in [*phrases, *terms]:
        _add(term)
        if len(term) >= 5:
            _add(term[:4])
        if len(term) >= 6 and " " not in term:
            half = len(term) // 2
            _add(term[:half], term[half:])
    return patterns


def _like_literals(pattern: str) -> list[str]:
    """Literal runs between unescaped ``%`` wildcards."""
    parts, current, escaped = [], [], False
    for ch in pattern:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == LIKE_ESCAPE:
            escaped = True
        elif ch == "%":
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return [p for p in parts if p]


def pattern_matches(pattern: str, text: str) -> bool:
    """Case-insensitive LIKE (with ``\\`` escapes) for patterns from build_patterns."""
    text = (text or "").lower()
    pos = 0
    for part in _like_literals(pattern.lower()):
        found = text.find(part, pos)
        if found < 0:
            return False
        pos = found + len(part)
    return True


def _is_uncategorized(category) -> bool:
    return category is None or str(category).strip().lower() in UNCATEGORIZED_VALUES


# ── Stats ─────────────────────────────────────────────────────────────


def _db_stats(db: Session, company_id: str) -> dict:
    base = db.query(func.count(Transaction.id)).filter(Transaction.company_id == company_id)
    total = base.scalar() or 0
    uncategorized = base.filter(
        or_(Transaction.category.is_(None), func.lower(Transaction.category).in_(UNCATEGORIZED_VALUES))
    ).scalar() or 0
    unassigned_project = base.filter(
        or_(Transaction.project.is_(None), Transaction.project == "")
    ).scalar() or 0
    return {
        "total": total,
        "uncategorized": uncategorized,
        "unassigned_project": unassigned_project,
    }


def _list_stats(rows: list[dict]) -> dict:
    return {
        "total": len(rows),
        "uncategorized": sum(1 for r in rows if _is_uncategorized(r.get("category"))),
        "unassigned_project": sum(1 for r in rows if not r.get("project")),
    }


# ── Search ────────────────────────────────────────────────────────────


def _search_db(db, company_id, patterns, include_uncategorized) -> list[dict]:
    found: dict[int, Transaction] = {}
    base = db.query(Transaction).filter(Transaction.company_id == company_id)

    if patterns:
        conds = [Transaction.description.ilike(p, escape=LIKE_ESCAPE) for p in patterns]
        for t in base.filter(or_(*conds)).order_by(Transaction.date.desc()).limit(MAX_MATCHES):
            found[t.id] = t
    if include_uncategorized:
        q = base.filter(
            or_(Transaction.category.is_(None), func.lower(Transaction.category).in_(UNCATEGORIZED_VALUES))
        )
        for t in q.order_by(Transaction.date.desc()).limit(MAX_MATCHES):
            found.setdefault(t.id, t)

    rows = sorted(found.values(), key=lambda t: (t.date is not None, t.date), reverse=True)
    return [t.to_dict() for t in rows[:MAX_MATCHES]]


def _search_list(rows, patterns, include_uncategorized) -> list[dict]:
    matches, seen = [], set()
    for row in rows:
        rid = row.get("id")
        desc = row.get("description") or ""
        hit = any(pattern_matches(p, desc) for p in patterns)
        if not hit and include_uncategorized:
            hit = _is_uncategorized(row.get("category"))
        if hit and rid not in seen:
            seen.add(rid)
            matches.append(row)
        if len(matches) >= MAX_MATCHES:
            break
    return matches


def find_matches(
    db: Session, company_id: str, query: str, fallback: list[dict] | None = None
) -> dict:
    """Candidate transactions for ``query`` plus tenant-wide stats."""
    terms = extract_search_terms(query)
    phrases = extract_phrases(query)
    patterns = build_patterns(terms, phrases)
    include_uncat = wants_uncategorized(query)

    stats = _db_stats(db, company_id)
    matches = []
    if patterns or include_uncat:
        matches = _search_db(db, company_id, patterns, include_uncat)

    source = "database"
    if not matches and stats["total"] == 0 and fallback:
        source = "fallback"
        rows = [r for r in fallback if isinstance(r, dict)]
        stats = _list_stats(rows)
        if patterns or include_uncat:
            matches = _search_list(rows, patterns, include_uncat)

    log.info(
        f"search {company_id}: {len(terms)} terms, {len(phrases)} phrases, "
        f"{len(matches)} matches from {source}"
    )
    return {
        "matches": matches,
        "stats": stats,
        "terms": terms,
        "phrases": phrases,
        "patterns": patterns,
        "source": source,
    }
