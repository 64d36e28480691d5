"""One chat turn: build context, ask the model, store the exchange, refresh the summary."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from copilot_board.errors import ValidationError
from copilot_board.models import Message, new_id

if TYPE_CHECKING:
    from copilot_board.config import Settings
    from copilot_board.context import ContextBuilder
    from copilot_board.llm import CompletionClient
    from copilot_board.store import ConversationStore
    from copilot_board.summarizer import Summarizer

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(
        self,
        settings: Settings,
        store: ConversationStore,
        context: ContextBuilder,
        completion: CompletionClient,
        summarizer: Summarizer,
    ) -> None:
        self._settings = settings
        self._store = store
        self._context = context
        self._completion = completion
        self._summarizer = summarizer

    async def send(self, conversation_id: str, user_message: str) -> Message:
        """Answer *user_message* and persist the exchange.

        Store and completion failures propagate.  The summary refresh that
        follows is best-effort and never fails the turn.
        """
        text = user_message.strip()
        conversation_id = conversation_id.strip()
        if not text or not conversation_id:
            raise ValidationError("Message and conversation_id are required")

        logger.info("Processing chat message for conversation: %s", conversation_id)
        messages = await self._context.build(conversation_id, text)
        reply = await self._completion.complete(
            messages,
            model=self._settings.chat_model,
            max_tokens=self._settings.chat_max_tokens,
            temperature=self._settings.chat_temperature,
        )

        message = await self._store.add_message(
            Message(
                id=new_id(),
                conversation_id=conversation_id,
                user_message=text,
                assistant_message=reply,
            )
        )
        await self._summarizer.refresh_if_stale(conversation_id)
        return message
