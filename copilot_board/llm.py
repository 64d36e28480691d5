"""Async Claude API client for single-shot completions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic

from copilot_board.errors import CompletionError

if TYPE_CHECKING:
    from copilot_board.config import Settings

logger = logging.getLogger(__name__)


def split_system(messages: list[dict[str, str]]) -> tuple[str | None, list[dict[str, str]]]:
    """Separate ``system`` role entries from the conversational turns.

    The Messages API takes system instructions as a separate parameter, so
    every system entry is joined (in order) into one system string.
    """
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    turns = [m for m in messages if m["role"] != "system"]
    system = "\n\n".join(system_parts) if system_parts else None
    return system, turns


class CompletionClient:
    """Stateless request/response call to the LLM.

    Given role-tagged messages, returns one generated assistant message.
    """

    def __init__(self, settings: Settings, client: anthropic.AsyncAnthropic | None = None) -> None:
        self._settings = settings
        self._client = client

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Lazily initialize the Anthropic client."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self._settings.anthropic_api_key)
        return self._client

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Single Claude call, no tools and no streaming.

        Raises:
            CompletionError: the API call failed or returned no text.
        """
        system, turns = split_system(messages)
        kwargs: dict[str, Any] = {
            "model": model or self._settings.chat_model,
            "max_tokens": max_tokens or self._settings.chat_max_tokens,
            "messages": turns,
        }
        if system is not None:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = await self._get_client().messages.create(**kwargs)
        except anthropic.APIError as exc:
            logger.warning("Completion failed: %s", exc)
            raise CompletionError(f"Anthropic API error: {exc}") from exc

        text = "".join(
            block.text for block in response.content if block.type == "text"
        )
        if not text:
            raise CompletionError("Anthropic API returned an empty completion")
        return text
