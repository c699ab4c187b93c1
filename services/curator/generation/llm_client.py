"""
Thin LLM call helpers shared by week matching, AI curation and discovery.

Claude goes through the anthropic SDK; OpenAI chat completions go through
httpx. Every call is bounded by asyncio.wait_for so a hung request is cancelled rather
than trusted.

Every call logs: model, latency, token usage when the provider reports it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any

import anthropic
import httpx

from services.curator.scrapers.base import raise_for_api_status

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class AIResponseParseError(ValueError):
    """Model output could not be read as the expected JSON shape."""


def extract_json(text: str) -> Any:
    """
    Pull a JSON value out of LLM output.

    Tries, in order: a fenced ```json block, the outermost [...] span, the
    outermost {...} span, then the whole text. Raises ValueError
    (json.JSONDecodeError) when nothing parses.
    """
    text = (text or "").strip()

    fenced = _FENCE_RE.search(text)
    if fenced:
        return json.loads(fenced.group(1).strip())

    array = _ARRAY_RE.search(text)
    if array:
        try:
            return json.loads(array.group(0))
        except json.JSONDecodeError:
            pass

    obj = _OBJECT_RE.search(text)
    if obj:
        try:
            return json.loads(obj.group(0))
        except json.JSONDecodeError:
            pass

    return json.loads(text)


async def call_claude(
    client: anthropic.AsyncAnthropic,
    system_prompt: str,
    user_prompt: str,
    *,
    model: str,
    timeout_s: float,
    max_tokens: int = 8192,
) -> str:
    """
    Single Claude messages call.

    Raises:
        asyncio.TimeoutError if the call exceeds timeout_s
        anthropic.APIError on Anthropic API errors
    """
    start = time.monotonic()
    response = await asyncio.wait_for(
        client.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        ),
        timeout=timeout_s,
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    text = "".join(
        block.text for block in response.content if getattr(block, "type", "text") == "text"
    )
    logger.info(
        "Claude call complete: model=%s %dms (in=%d out=%d)",
        model, latency_ms,
        response.usage.input_tokens, response.usage.output_tokens,
    )
    return text


async def call_openai(
    http: httpx.AsyncClient,
    api_key: str,
    system_prompt: str,
    user_prompt: str,
    *,
    model: str,
    timeout_s: float,
    max_tokens: int = 8192,
    temperature: float = 0.7,
) -> str:
    """
    Single OpenAI chat completion over httpx.

    Raises:
        asyncio.TimeoutError if the call exceeds timeout_s
        NonRetryableAPIError on auth / quota / bad request
        httpx.HTTPError on other transport or status failures
    """
    payload = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    start = time.monotonic()
    resp = await asyncio.wait_for(
        http.post(
            OPENAI_CHAT_URL,
            json=payload,
            timeout=timeout_s,
            headers={
                "Authorization": f"Bearer {api_key}",
                "content-type": "application/json",
            },
        ),
        timeout=timeout_s,
    )
    raise_for_api_status(resp, "OpenAI")
    body = resp.json()
    latency_ms = int((time.monotonic() - start) * 1000)

    usage = body.get("usage", {})
    logger.info(
        "OpenAI call complete: model=%s %dms (in=%d out=%d)",
        model, latency_ms,
        usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0),
    )

    choices = body.get("choices") or [{}]
    return (choices[0].get("message") or {}).get("content") or ""
