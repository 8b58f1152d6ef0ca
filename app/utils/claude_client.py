"""Claude API client — prompt caching, model routing.

Two model tiers:
  - FAST: claude-haiku-4-5 for high-volume work (batch categorization)
  - SMART: claude-sonnet-4-5 for the chat assistant

Usage:
    from app.utils.claude_client import claude_message, claude_json
    reply = await claude_message(
        "Which clients are overdue?",
        system=system_prompt,
        model_tier="smart",
    )
    reply["text"], reply["usage"]
"""

import base64
import json
import logging
from typing import Any

import httpx

from app.config import settings

log = logging.getLogger("vantage.claude")

API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"

# Model tiers
MODELS = {
    "fast": "claude-haiku-4-5-20251001",
    "smart": "claude-sonnet-4-5-20250929",
}


def _headers(*, cache: bool = False) -> dict:
    """Build API headers. Enable prompt caching when static prompts are reused."""
    h = {
        "x-api-key": settings.anthropic_api_key,
        "anthropic-version": API_VERSION,
        "content-type": "application/json",
    }
    if cache:
        h["anthropic-beta"] = "prompt-caching-2024-07-31"
    return h


async def claude_message(
    prompt: str | list[dict],
    *,
    system: str = "",
    history: list[dict] | None = None,
    model_tier: str = "smart",
    max_tokens: int = 1500,
    cache_system: bool = False,
    timeout: int = 60,
) -> dict | None:
    """Call Claude and return {"text", "usage", "model"}.

    ``prompt`` is the final user turn: plain text, or a list of content
    blocks (document, image, text). ``history`` holds earlier
    {"role", "content"} turns, oldest first.

    Returns None when the key is missing or the call fails; callers decide
    whether that is fatal.
    """
    if not settings.anthropic_api_key:
        return None

    model = MODELS.get(model_tier, MODELS["fast"])

    body: dict[str, Any] = {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [*(history or []), {"role": "user", "content": prompt}],
    }
    if system:
        block = {"type": "text", "text": system}
        if cache_system:
            block["cache_control"] = {"type": "ephemeral"}
        body["system"] = [block]

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(
                API_URL,
                headers=_headers(cache=cache_system),
                json=body,
            )

            if resp.status_code != 200:
                log.warning(f"Claude API {resp.status_code}: {resp.text[:200]}")
                return None

            data = resp.json()
            texts = [
                b["text"] for b in data.get("content", []) if b.get("type") == "text"
            ]
            return {
                "text": "\n".join(texts),
                "usage": data.get("usage") or {},
                "model": data.get("model", model),
            }

    except (httpx.HTTPError, ValueError) as e:
        log.warning(f"Claude call failed: {e}")
        return None


async def claude_text(
    prompt: str,
    *,
    system: str = "",
    model_tier: str = "smart",
    max_tokens: int = 1500,
    timeout: int = 60,
) -> str | None:
    """Free-form text response, or None on failure."""
    reply = await claude_message(
        prompt,
        system=system,
        model_tier=model_tier,
        max_tokens=max_tokens,
        timeout=timeout,
    )
    if not reply or not reply["text"]:
        return None
    return reply["text"]


async def claude_json(
    prompt: str,
    *,
    system: str = "",
    model_tier: str = "fast",
    max_tokens: int = 4096,
    timeout: int = 60,
) -> dict | list | None:
    """Call Claude expecting JSON in free-form text. Parses response."""
    text = await claude_text(
        prompt,
        system=system,
        model_tier=model_tier,
        max_tokens=max_tokens,
        timeout=timeout,
    )
    if not text:
        return None

    return safe_json_parse(text)


def safe_json_parse(text: str) -> dict | list | None:
    """Parse JSON from text that may contain markdown fences or preamble."""
    if not text:
        return None

    # Strip markdown code fences
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [line for line in lines if not line.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Try to find JSON array or object in the text
    for start_char, end_char in [("[", "]"), ("{", "}")]:
        start = cleaned.find(start_char)
        end = cleaned.rfind(end_char)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start : end + 1])
            except json.JSONDecodeError:
                continue

    log.debug(f"JSON parse failed: {text[:100]}...")
    return None


def file_block(data: bytes, media_type: str) -> dict:
    """Base64 content block for a PDF (document) or an image."""
    kind = "document" if media_type == "application/pdf" else "image"
    return {
        "type": kind,
        "source": {
            "type": "base64",
            "media_type": media_type,
            "data": base64.b64encode(data).decode("ascii"),
        },
    }
