"""
action_parser.py — Extract a bulk-edit action from assistant output.

The assistant is told to wrap bulk edits in a ```vantage-action fenced
JSON block. Models don't always comply exactly, so three strategies run
in order and the first candidate that decodes to a JSON object wins:

  1. strict fence:   ```vantage-action\\n{...}\\n```
  2. loose fence:    tag followed by any whitespace, optional newline
                     before the closing fence
  3. keyword scan:   find "vantage-action", then brace-count from the
                     first "{" to its matching "}"

Business Rules:
- A candidate that isn't valid JSON (or isn't an object) is skipped and
  the next one is tried; when none decodes the reply text is returned
  untouched with no action
- On success the block is removed from the displayed message; if the
  result still contains both "action" and bulk_update, everything from the
  first "{" on is cut
- Parsing never applies anything; execution is chat_service.apply_bulk_update
  after the user confirms

Called by: services/chat_service.py
Depends on: schemas/chat.py (BulkAction, BulkUpdateItem)
"""

import json
import logging
import re
from dataclasses import dataclass

from pydantic import ValidationError

from ..exceptions import ActionParseError
from ..schemas.chat import BulkAction, BulkUpdateItem

log = logging.getLogger("vantage.chat")

ACTION_TAG = "vantage-action"

_STRICT_RE = re.compile(r"```vantage-action\n([\s\S]*?)\n```")
_LOOSE_RE = re.compile(r"```vantage-action[ \t]*\r?\n?([\s\S]*?)\s*```")


@dataclass
class ParsedReply:
    clean_message: str
    action: dict | None = None


def _balanced_object(text: str, start: int) -> tuple[int, int] | None:
    """(start, end) of the {...} beginning at or after ``start``; end exclusive."""
    first = text.find("{", start)
    if first < 0:
        return None
    depth = 0
    for i in range(first, len(text)):
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return first, i + 1
    return None


def _decode(payload: str) -> dict:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ActionParseError(f"invalid action JSON: {e.msg} at {e.pos}") from e
    if not isinstance(data, dict):
        raise ActionParseError("action payload is not an object")
    return data


def _keyword_block(text: str) -> tuple[str, int, int] | None:
    tag_at = text.find(ACTION_TAG)
    if tag_at < 0:
        return None
    span = _balanced_object(text, tag_at + len(ACTION_TAG))
    if span is None:
        return None
    obj_start, obj_end = span

    block_start = tag_at
    fence_open = text.rfind("```", 0, tag_at)
    if fence_open >= 0 and not text[fence_open + 3:tag_at].strip():
        block_start = fence_open
    block_end = obj_end
    rest = text[obj_end:]
    trailing = re.match(r"\s*```", rest)
    if trailing:
        block_end += trailing.end()
    return text[obj_start:obj_end], block_start, block_end


def _find_blocks(text: str) -> list[tuple[str, int, int]]:
    """Every (payload, block start, block end) candidate, in strategy order."""
    found = []
    for pattern in (_STRICT_RE, _LOOSE_RE):
        m = pattern.search(text)
        if m:
            found.append((m.group(1), m.start(), m.end()))
    keyword = _keyword_block(text)
    if keyword is not None:
        found.append(keyword)
    return found


def parse_action(text: str) -> ParsedReply:
    """Split assistant output into display text and an optional action dict."""
    text = text or ""
    candidates = _find_blocks(text)
    for payload, start, end in candidates:
        try:
            action = _decode(payload.strip())
        except ActionParseError as e:
            log.debug(f"Action candidate rejected: {e}")
            continue

        clean = (text[:start] + text[end:]).strip()
        if '"action"' in clean and "bulk_update" in clean:
            brace = clean.find("{")
            if brace >= 0:
                clean = clean[:brace].strip()
        return ParsedReply(clean, action)

    if candidates:
        log.warning("Ignoring malformed action block: no candidate decoded")
    return ParsedReply(text)


def validate_action(action: dict) -> BulkAction:
    """Coerce a parsed action into the typed model applied on confirmation."""
    try:
        return BulkAction.model_validate(action)
    except ValidationError as e:
        raise ActionParseError(f"action failed validation: {e.error_count()} errors") from e


def validate_update(item) -> BulkUpdateItem:
    """One update of a bulk action: an id plus category/project changes."""
    try:
        return BulkUpdateItem.model_validate(item)
    except ValidationError as e:
        raise ActionParseError(f"update failed validation: {e.error_count()} errors") from e
