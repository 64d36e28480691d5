"""Where the board's database lives and how one unit of work runs against it.

The libsql driver is synchronous, so every driver call is pushed onto a
worker thread.  The store never opens connections itself: it asks
``Database.session()`` for one, which creates the schema on first use,
reports driver failures as ``StoreError`` and always closes the connection.

Target selection:

- ``turso_database_url`` set: hosted libSQL (Turso) with ``turso_auth_token``
- otherwise: a local file at ``database_path`` (or an explicit *path*)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import libsql

from copilot_board.errors import CopilotBoardError, StoreError

if TYPE_CHECKING:
    from pathlib import Path

    from copilot_board.config import Settings

logger = logging.getLogger(__name__)


class Rows:
    """Result of one statement; fetches run off the event loop."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class Connection:
    """An open libsql connection, only handed out inside a session."""

    def __init__(self, raw: Any) -> None:
        self._raw = raw

    async def execute(self, sql: str, params: tuple = ()) -> Rows:
        return Rows(await asyncio.to_thread(self._raw.execute, sql, params))

    async def commit(self) -> None:
        await asyncio.to_thread(self._raw.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._raw.close)


def _open_file(path: Path) -> Any:
    path.parent.mkdir(parents=True, exist_ok=True)
    raw = libsql.connect(str(path))
    raw.execute("PRAGMA journal_mode=WAL")
    raw.execute("PRAGMA busy_timeout=5000")
    return raw


def _connect(settings: Settings | None, path: Path | None) -> Any:
    if path is not None:
        return _open_file(path)
    if settings is None:
        raise ValueError("a database needs settings or an explicit path")
    if settings.uses_turso:
        return libsql.connect(
            database=settings.turso_database_url,
            auth_token=settings.turso_auth_token,
        )
    return _open_file(settings.database_path)


class Database:
    """Opens connections for one store and bootstraps its *schema* once.

    An explicit *path* wins over *settings* (used for test isolation).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        path: Path | None = None,
        schema: Sequence[str] = (),
    ) -> None:
        self._settings = settings
        self._path = path
        self._schema = tuple(schema)
        self._ready = False

    @property
    def ready(self) -> bool:
        """True once the schema has been created by a session."""
        return self._ready

    async def _open(self) -> Connection:
        try:
            raw = await asyncio.to_thread(_connect, self._settings, self._path)
        except Exception as exc:
            logger.error("Could not open database: %s", exc)
            raise StoreError(f"Database error: {exc}") from exc
        return Connection(raw)

    async def _bootstrap(self, conn: Connection) -> None:
        for statement in self._schema:
            await conn.execute(statement)
        await conn.commit()
        self._ready = True
        logger.info("Database schema ready (%d statements)", len(self._schema))

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Connection]:
        """Yield a connection for one unit of work.

        Board errors raised inside the block pass through unchanged; anything
        else is logged and re-raised as ``StoreError``.
        """
        conn = await self._open()
        try:
            if not self._ready:
                await self._bootstrap(conn)
            yield conn
        except CopilotBoardError:
            raise
        except Exception as exc:
            logger.exception("Database operation failed")
            raise StoreError(f"Database error: {exc}") from exc
        finally:
            await conn.close()
