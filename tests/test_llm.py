"""Tests for CompletionClient: the bare LLM call."""

from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from copilot_board.config import Settings
from copilot_board.errors import CompletionError
from copilot_board.llm import CompletionClient, split_system


def _mock_client(*texts: str) -> MagicMock:
    mock_response = MagicMock()
    mock_response.content = [MagicMock(type="text", text=t) for t in texts]
    mock_client = MagicMock()
    mock_client.messages.create = AsyncMock(return_value=mock_response)
    return mock_client


class TestSplitSystem:
    def test_joins_system_entries_in_order(self):
        system, turns = split_system(
            [
                {"role": "system", "content": "a"},
                {"role": "system", "content": "b"},
                {"role": "user", "content": "hi"},
            ]
        )
        assert system == "a\n\nb"
        assert turns == [{"role": "user", "content": "hi"}]

    def test_no_system(self):
        system, turns = split_system([{"role": "user", "content": "hi"}])
        assert system is None
        assert turns == [{"role": "user", "content": "hi"}]


async def test_complete_basic() -> None:
    mock_client = _mock_client("hello world")
    client = CompletionClient(Settings(chat_model="claude-test-model"), client=mock_client)

    result = await client.complete([{"role": "user", "content": "hi"}])

    assert result == "hello world"
    mock_client.messages.create.assert_awaited_once()
    call_kwargs = mock_client.messages.create.call_args.kwargs
    assert call_kwargs["messages"] == [{"role": "user", "content": "hi"}]
    assert call_kwargs["model"] == "claude-test-model"
    assert call_kwargs["max_tokens"] == 1000
    assert "system" not in call_kwargs
    assert "temperature" not in call_kwargs


async def test_complete_passes_system_and_overrides() -> None:
    mock_client = _mock_client("response")
    client = CompletionClient(Settings(), client=mock_client)

    await client.complete(
        [{"role": "system", "content": "You are helpful."}, {"role": "user", "content": "hi"}],
        model="claude-haiku-4-5-20251001",
        max_tokens=400,
        temperature=0.3,
    )

    call_kwargs = mock_client.messages.create.call_args.kwargs
    assert call_kwargs["system"] == "You are helpful."
    assert call_kwargs["model"] == "claude-haiku-4-5-20251001"
    assert call_kwargs["max_tokens"] == 400
    assert call_kwargs["temperature"] == 0.3


async def test_complete_concatenates_text_blocks() -> None:
    client = CompletionClient(Settings(), client=_mock_client("Hal", "lo"))
    assert await client.complete([{"role": "user", "content": "hi"}]) == "Hallo"


async def test_empty_completion_raises() -> None:
    client = CompletionClient(Settings(), client=_mock_client(""))
    with pytest.raises(CompletionError):
        await client.complete([{"role": "user", "content": "hi"}])


async def test_api_error_becomes_completion_error() -> None:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    mock_client = MagicMock()
    mock_client.messages.create = AsyncMock(
        side_effect=anthropic.APIConnectionError(request=request)
    )
    client = CompletionClient(Settings(), client=mock_client)

    with pytest.raises(CompletionError, match="Anthropic API error"):
        await client.complete([{"role": "user", "content": "hi"}])


def test_client_created_lazily_with_api_key() -> None:
    client = CompletionClient(Settings(anthropic_api_key="sk-test"))
    sdk_client = client._get_client()
    assert isinstance(sdk_client, anthropic.AsyncAnthropic)
    assert client._get_client() is sdk_client
