"""Rolling conversation summary.

Once a conversation grows past the context window, the summary stands in
for the older history.  It is regenerated every ``summary_interval``
messages from the complete thread.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from copilot_board.models import Message, Summary

if TYPE_CHECKING:
    from copilot_board.config import Settings
    from copilot_board.llm import CompletionClient
    from copilot_board.store import ConversationStore

logger = logging.getLogger(__name__)

SUMMARY_INSTRUCTION = (
    "Erstelle eine kompakte Zusammenfassung (max. {max_tokens} Tokens) des folgenden "
    "Gesprächs. Fokussiere auf die wichtigsten Themen, Entscheidungen und offenen Punkte."
)


def is_stale(summary: Summary | None, current_count: int, interval: int) -> bool:
    """True when no summary exists or *interval* messages arrived since the last one."""
    if summary is None or summary.message_count is None:
        return True
    return current_count - summary.message_count >= interval


def render_transcript(messages: list[Message]) -> str:
    """Format messages (oldest first) as ``User:``/``Assistant:`` blocks."""
    return "\n\n".join(
        f"User: {m.user_message}\nAssistant: {m.assistant_message}" for m in messages
    )


class Summarizer:
    def __init__(
        self,
        settings: Settings,
        store: ConversationStore,
        completion: CompletionClient,
    ) -> None:
        self._settings = settings
        self._store = store
        self._completion = completion

    async def refresh_if_stale(self, conversation_id: str) -> Summary | None:
        """Regenerate the summary when stale.

        Best-effort: any failure is logged and the previous summary stays in
        place.  Returns the new summary, or None when nothing was written.
        """
        try:
            current_count = await self._store.count_messages(conversation_id)
            summary = await self._store.get_summary(conversation_id)
            if not is_stale(summary, current_count, self._settings.summary_interval):
                return None
            return await self.summarize(conversation_id, current_count)
        except Exception:
            logger.exception("Summary refresh failed for %s (non-fatal)", conversation_id)
            return None

    async def summarize(self, conversation_id: str, message_count: int) -> Summary:
        """Summarize the whole thread and store it against *message_count*."""
        messages = await self._store.list_messages(conversation_id)
        instruction = SUMMARY_INSTRUCTION.format(max_tokens=self._settings.summary_max_tokens)
        text = await self._completion.complete(
            [
                {"role": "system", "content": instruction},
                {"role": "user", "content": render_transcript(messages)},
            ],
            max_tokens=self._settings.summary_max_tokens,
            temperature=self._settings.summary_temperature,
        )
        return await self._store.upsert_summary(conversation_id, text, message_count)
