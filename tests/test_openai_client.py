"""Tests for the OpenAI completion wrapper."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from entity_verifier.clients.openai_client import (
    LLMClient,
    parse_json_response,
    strip_code_fences,
)


def _completion(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


class TestCodeFences:
    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences('```\n[1, 2]\n```') == "[1, 2]"

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'

    def test_empty(self):
        assert strip_code_fences(None) == ""

    def test_parse(self):
        assert parse_json_response('```json\n{"offices": []}\n```') == {"offices": []}

    def test_parse_malformed_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_json_response("not json at all")


class TestLLMClient:
    def test_disabled_without_key(self):
        assert LLMClient(api_key="").enabled is False

    @pytest.mark.asyncio
    async def test_chat_without_key_raises(self):
        with pytest.raises(RuntimeError):
            await LLMClient(api_key="").chat("system", "user")

    @pytest.mark.asyncio
    async def test_chat_sends_messages(self):
        llm = LLMClient(api_key="sk-test", model="gpt-4o-mini")
        llm.client = MagicMock()
        llm.client.chat.completions.create = AsyncMock(return_value=_completion("hello"))

        reply = await llm.chat("be brief", "say hi", response_format={"type": "json_object"})

        assert reply == "hello"
        kwargs = llm.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.0
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "say hi"},
        ]

    @pytest.mark.asyncio
    async def test_chat_json(self):
        llm = LLMClient(api_key="sk-test")
        llm.client = MagicMock()
        llm.client.chat.completions.create = AsyncMock(
            return_value=_completion('```json\n{"offices": [{"city": "Boston"}]}\n```'),
        )
        assert await llm.chat_json("s", "u") == {"offices": [{"city": "Boston"}]}

    @pytest.mark.asyncio
    async def test_empty_content(self):
        llm = LLMClient(api_key="sk-test")
        llm.client = MagicMock()
        llm.client.chat.completions.create = AsyncMock(return_value=_completion(None))
        assert await llm.chat("s", "u") == ""
