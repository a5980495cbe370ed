"""OpenAI API wrapper for chat completions."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from openai import AsyncOpenAI

from entity_verifier.config import settings

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def _get_openai_client(api_key: str, timeout: float) -> AsyncOpenAI | None:
    if not api_key:
        logger.warning("OpenAI API key not configured – LLM calls will fail")
        return None
    return AsyncOpenAI(api_key=api_key, timeout=timeout)


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding markdown code fence, if the model added one."""
    text = (raw or "").strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_json_response(raw: str) -> Any:
    """Parse model output as JSON after stripping code-fence wrapping.

    Raises ``json.JSONDecodeError`` on malformed output; callers decide how
    to degrade.
    """
    return json.loads(strip_code_fences(raw))


class LLMClient:
    """Thin async wrapper around OpenAI chat completions."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        self.client = _get_openai_client(
            api_key or settings.openai_api_key,
            timeout or settings.completion_timeout_seconds,
        )
        self.model = model or settings.openai_model

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
        response_format: dict | None = None,
    ) -> str:
        if not self.client:
            raise RuntimeError("OpenAI client not initialised (missing API key)")
        kwargs: dict[str, Any] = {
            "model": self.model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if response_format:
            kwargs["response_format"] = response_format
        response = await self.client.chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""

    async def chat_json(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
    ) -> Any:
        """Request structured JSON output from the model."""
        raw = await self.chat(
            system_prompt,
            user_prompt,
            temperature=temperature,
            response_format={"type": "json_object"},
        )
        return parse_json_response(raw)
