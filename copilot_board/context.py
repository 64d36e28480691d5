"""Prompt assembly for one chat turn."""

from __future__ import annotations

from typing import TYPE_CHECKING

from copilot_board.models import Message, Summary

if TYPE_CHECKING:
    from copilot_board.config import Settings
    from copilot_board.store import ConversationStore

SUMMARY_PREFIX = "Bisherige Gesprächszusammenfassung: "


def build_messages(
    system_prompt: str,
    summary: Summary | None,
    recent: list[Message],
    user_message: str,
) -> list[dict[str, str]]:
    """Order a chat prompt.

    *recent* is newest first, as the store returns it.  The result holds the
    system instruction, the summary (if any), the recent exchanges oldest
    first, and finally *user_message*.
    """
    messages = [{"role": "system", "content": system_prompt}]
    if summary is not None and summary.summary_text:
        messages.append({"role": "system", "content": f"{SUMMARY_PREFIX}{summary.summary_text}"})
    for message in reversed(recent):
        messages.extend(message.to_api_messages())
    messages.append({"role": "user", "content": user_message})
    return messages


class ContextBuilder:
    """Builds the bounded prompt sent to the completion client."""

    def __init__(self, settings: Settings, store: ConversationStore) -> None:
        self._settings = settings
        self._store = store

    async def build(self, conversation_id: str, user_message: str) -> list[dict[str, str]]:
        recent = await self._store.recent_messages(
            conversation_id, self._settings.context_window_messages
        )
        summary = await self._store.get_summary(conversation_id)
        return build_messages(self._settings.system_prompt, summary, recent, user_message)
