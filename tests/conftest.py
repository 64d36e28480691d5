"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from copilot_board.config import Settings
from copilot_board.errors import CompletionError
from copilot_board.store import ConversationStore


class FakeCompletion:
    """Stand-in for CompletionClient that records calls and replays replies."""

    def __init__(self, *replies: str | Exception) -> None:
        self.replies: list[str | Exception] = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def complete(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        self.calls.append({"messages": messages, **kwargs})
        if not self.replies:
            return "ok"
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(anthropic_api_key="test-key", database_path=tmp_path / "board.db")


@pytest.fixture
def store(tmp_path: Path) -> ConversationStore:
    """A ConversationStore backed by a temp database."""
    return ConversationStore(db_path=tmp_path / "board.db")


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion("Antwort")


@pytest.fixture
def failing_completion() -> FakeCompletion:
    return FakeCompletion(CompletionError("Anthropic API error: overloaded"))
