from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, Protocol

from dalat_news_pipeline.errors import ResponseParseError


logger = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


class TextGenerator(Protocol):
    async def generate(self, *, system: str, prompt: str, model: str, max_tokens: int) -> str:
        ...


class AnthropicTextGenerator:
    """TextGenerator backed by the Anthropic Messages API."""

    def __init__(self, api_key: Optional[str] = None, timeout: float = 60.0, temperature: float = 0.3) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature
        self._client = None

    def _get_client(self):
        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)
        return self._client

    async def generate(self, *, system: str, prompt: str, model: str, max_tokens: int) -> str:
        client = self._get_client()
        response = await client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )

        text = "".join(block.text for block in response.content if block.type == "text")
        if not text.strip():
            raise ResponseParseError("No text in model response", {"model": model})
        return text

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN_RE.sub("", cleaned)
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned)
    return cleaned.strip()


def extract_json_object(text: str) -> str | None:
    """The first balanced ``{...}`` in ``text``, ignoring braces inside strings."""

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escape_next = False
        for i in range(start, len(text)):
            ch = text[i]
            if escape_next:
                escape_next = False
                continue
            if ch == "\\" and in_string:
                escape_next = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def parse_json_response(text: str) -> dict[str, Any]:
    """Parse a JSON object out of model output that may carry fences or prose."""

    cleaned = strip_code_fences(text)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        candidate = extract_json_object(cleaned)
        if candidate is None:
            raise ResponseParseError(f"Failed to parse JSON from response: {cleaned[:200]}") from None
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as exc:
            raise ResponseParseError(f"Failed to parse JSON from response: {cleaned[:200]}") from exc

    if not isinstance(parsed, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
