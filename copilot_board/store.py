"""ConversationStore: libsql CRUD for conversations, messages, summaries and meta points."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from copilot_board.db import Database
from copilot_board.errors import NotFoundError
from copilot_board.models import (
    Analysis,
    Category,
    Conversation,
    Message,
    MetaPoint,
    Summary,
    new_id,
    utc_now,
)

if TYPE_CHECKING:
    from pathlib import Path

    from copilot_board.config import Settings

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id         TEXT PRIMARY KEY,
        title      TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_messages (
        id                TEXT PRIMARY KEY,
        conversation_id   TEXT NOT NULL,
        user_message      TEXT NOT NULL,
        assistant_message TEXT NOT NULL,
        timestamp         TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_chat_messages_conv
        ON chat_messages(conversation_id, timestamp)
    """,
    """
    CREATE TABLE IF NOT EXISTS conversation_summary (
        conversation_id TEXT PRIMARY KEY,
        summary_text    TEXT,
        message_count   INTEGER,
        meta_analysis   TEXT,
        updated_at      TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS meta_points (
        id              TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL,
        type            TEXT NOT NULL
            CHECK (type IN ('kernidee', 'erkenntnis', 'frage', 'todo')),
        text            TEXT NOT NULL,
        hidden          INTEGER NOT NULL DEFAULT 0,
        created_at      TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_meta_points_conv
        ON meta_points(conversation_id, hidden)
    """,
)

_MESSAGE_COLUMNS = "id, conversation_id, user_message, assistant_message, timestamp"
_POINT_COLUMNS = "id, conversation_id, type, text, hidden, created_at"


class ConversationStore:
    """Persists everything the board shows in SQLite / Turso.

    Every call opens its own connection; nothing is cached in process.  Pass
    an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    def __init__(self, settings: Settings | None = None, db_path: Path | None = None) -> None:
        self._db = Database(settings, db_path, schema=_SCHEMA)

    # -- Conversations ---------------------------------------------------------

    async def create_conversation(self, title: str | None = None) -> Conversation:
        conversation = Conversation(id=new_id())
        if title:
            conversation.title = title
        async with self._db.session() as db:
            await db.execute(
                "INSERT INTO conversations (id, title, created_at) VALUES (?, ?, ?)",
                conversation.to_row(),
            )
            await db.commit()
        logger.info("Created conversation %s", conversation.id)
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with self._db.session() as db:
            cursor = await db.execute(
                "SELECT id, title, created_at FROM conversations WHERE id = ?",
                (conversation_id,),
            )
            row = await cursor.fetchone()
        return Conversation.from_row(row) if row else None

    async def list_conversations(self) -> list[Conversation]:
        """All conversations, newest first."""
        async with self._db.session() as db:
            cursor = await db.execute(
                """
                SELECT id, title, created_at FROM conversations
                ORDER BY created_at DESC, rowid DESC
                """
            )
            rows = await cursor.fetchall()
        return [Conversation.from_row(row) for row in rows]

    async def rename_conversation(self, conversation_id: str, title: str) -> Conversation:
        async with self._db.session() as db:
            cursor = await db.execute(
                "UPDATE conversations SET title = ? WHERE id = ?",
                (title, conversation_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise NotFoundError(f"Conversation not found: {conversation_id}")
            cursor = await db.execute(
                "SELECT id, title, created_at FROM conversations WHERE id = ?",
                (conversation_id,),
            )
            row = await cursor.fetchone()
        return Conversation.from_row(row)

    # -- Messages --------------------------------------------------------------

    async def add_message(self, message: Message) -> Message:
        """Insert one (user, assistant) exchange. Returns the same object."""
        async with self._db.session() as db:
            await db.execute(
                f"INSERT INTO chat_messages ({_MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                message.to_row(),
            )
            await db.commit()
        logger.debug("Stored message %s in %s", message.id, message.conversation_id)
        return message

    async def list_messages(self, conversation_id: str) -> list[Message]:
        """The full thread, oldest first."""
        async with self._db.session() as db:
            cursor = await db.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS} FROM chat_messages
                WHERE conversation_id = ?
                ORDER BY timestamp ASC, rowid ASC
                """,
                (conversation_id,),
            )
            rows = await cursor.fetchall()
        return [Message.from_row(row) for row in rows]

    async def recent_messages(self, conversation_id: str, limit: int) -> list[Message]:
        """Up to *limit* most recent messages, newest first."""
        async with self._db.session() as db:
            cursor = await db.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS} FROM chat_messages
                WHERE conversation_id = ?
                ORDER BY timestamp DESC, rowid DESC
                LIMIT ?
                """,
                (conversation_id, limit),
            )
            rows = await cursor.fetchall()
        return [Message.from_row(row) for row in rows]

    async def count_messages(self, conversation_id: str) -> int:
        async with self._db.session() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM chat_messages WHERE conversation_id = ?",
                (conversation_id,),
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    # -- Summary ---------------------------------------------------------------

    async def get_summary(self, conversation_id: str) -> Summary | None:
        """The rolling summary, or None if none was ever computed."""
        async with self._db.session() as db:
            cursor = await db.execute(
                """
                SELECT summary_text, message_count, updated_at
                FROM conversation_summary WHERE conversation_id = ?
                """,
                (conversation_id,),
            )
            row = await cursor.fetchone()
        if not row or row[1] is None:
            return None
        return Summary(
            conversation_id=conversation_id,
            summary_text=row[0],
            message_count=row[1],
            updated_at=row[2],
        )

    async def upsert_summary(
        self, conversation_id: str, summary_text: str, message_count: int
    ) -> Summary:
        """Insert or update the summary columns, leaving ``meta_analysis`` alone."""
        now = utc_now()
        async with self._db.session() as db:
            await db.execute(
                """
                INSERT INTO conversation_summary
                    (conversation_id, summary_text, message_count, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET
                    summary_text = excluded.summary_text,
                    message_count = excluded.message_count,
                    updated_at = excluded.updated_at
                """,
                (conversation_id, summary_text, message_count, now),
            )
            await db.commit()
        logger.info("Updated summary for %s at %d messages", conversation_id, message_count)
        return Summary(
            conversation_id=conversation_id,
            summary_text=summary_text,
            message_count=message_count,
            updated_at=now,
        )

    # -- Analysis --------------------------------------------------------------

    async def get_analysis(self, conversation_id: str) -> Analysis | None:
        """The last persisted analysis document, or None."""
        async with self._db.session() as db:
            cursor = await db.execute(
                "SELECT meta_analysis FROM conversation_summary WHERE conversation_id = ?",
                (conversation_id,),
            )
            row = await cursor.fetchone()
        return Analysis.from_json_text(row[0]) if row else None

    async def save_analysis(
        self,
        conversation_id: str,
        analysis: Analysis,
        replaced: dict[Category, list[str]],
    ) -> dict[Category, list[MetaPoint]]:
        """Persist *analysis* and swap the active points of each *replaced* category.

        Hidden points survive a refresh; they only go away through
        ``delete_point``.  Returns the newly stored points per category.
        """
        now = utc_now()
        written: dict[Category, list[MetaPoint]] = {}
        async with self._db.session() as db:
            await db.execute(
                """
                INSERT INTO conversation_summary
                    (conversation_id, meta_analysis, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET
                    meta_analysis = excluded.meta_analysis,
                    updated_at = excluded.updated_at
                """,
                (conversation_id, analysis.model_dump_json(), now),
            )
            for category, texts in replaced.items():
                await db.execute(
                    "DELETE FROM meta_points WHERE conversation_id = ? AND type = ? AND hidden = 0",
                    (conversation_id, category.point_type),
                )
                points = [
                    MetaPoint(
                        id=new_id(),
                        conversation_id=conversation_id,
                        category=category,
                        text=text,
                        created_at=now,
                    )
                    for text in texts
                ]
                for point in points:
                    await db.execute(
                        f"INSERT INTO meta_points ({_POINT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                        point.to_row(),
                    )
                written[category] = points
            await db.commit()
        logger.info(
            "Saved analysis for %s (%s)",
            conversation_id,
            ", ".join(c.value for c in replaced) or "no categories",
        )
        return written

    # -- Meta points -----------------------------------------------------------

    async def list_points(self, conversation_id: str, *, hidden: bool = False) -> list[MetaPoint]:
        """Active points in insertion order, or hidden points newest first."""
        order = "created_at DESC, rowid DESC" if hidden else "created_at ASC, rowid ASC"
        async with self._db.session() as db:
            cursor = await db.execute(
                f"""
                SELECT {_POINT_COLUMNS} FROM meta_points
                WHERE conversation_id = ? AND hidden = ?
                ORDER BY {order}
                """,
                (conversation_id, int(hidden)),
            )
            rows = await cursor.fetchall()
        return [MetaPoint.from_row(row) for row in rows]

    async def get_point(self, point_id: str) -> MetaPoint | None:
        async with self._db.session() as db:
            cursor = await db.execute(
                f"SELECT {_POINT_COLUMNS} FROM meta_points WHERE id = ?", (point_id,)
            )
            row = await cursor.fetchone()
        return MetaPoint.from_row(row) if row else None

    async def set_point_hidden(self, point_id: str, hidden: bool) -> MetaPoint:
        """Hide or restore a point. Returns the updated record."""
        async with self._db.session() as db:
            cursor = await db.execute(
                "UPDATE meta_points SET hidden = ? WHERE id = ?", (int(hidden), point_id)
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise NotFoundError(f"Meta point not found: {point_id}")
            cursor = await db.execute(
                f"SELECT {_POINT_COLUMNS} FROM meta_points WHERE id = ?", (point_id,)
            )
            row = await cursor.fetchone()
        logger.info("Meta point %s %s", point_id, "hidden" if hidden else "restored")
        return MetaPoint.from_row(row)

    async def delete_point(self, point_id: str) -> MetaPoint:
        """Permanently delete a point. Returns the record as it was."""
        async with self._db.session() as db:
            cursor = await db.execute(
                f"SELECT {_POINT_COLUMNS} FROM meta_points WHERE id = ?", (point_id,)
            )
            row = await cursor.fetchone()
            if not row:
                raise NotFoundError(f"Meta point not found: {point_id}")
            await db.execute("DELETE FROM meta_points WHERE id = ?", (point_id,))
            await db.commit()
        logger.info("Deleted meta point %s", point_id)
        return MetaPoint.from_row(row)
