"""Durable message queue backed by SQLite.

One table holds both directions. The head of the queue is the earliest
unprocessed row by ``(timestamp, id)``; dequeue marks it processed in the same
transaction that reads it. Rows are never deleted.
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import Any

import aiosqlite
import anyio

from .errors import StorageError, ValidationError
from .logging import get_logger
from .model import Direction, Message

logger = get_logger(__name__)

DEFAULT_QUEUE_DB_PATH = Path.home() / ".tgrelay" / "queue.db"

_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    direction  TEXT NOT NULL CHECK(direction IN ('to_telegram', 'from_telegram')),
    content    TEXT NOT NULL,
    timestamp  INTEGER NOT NULL,
    processed  INTEGER NOT NULL DEFAULT 0
);
"""

_MESSAGES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_messages_pending "
    "ON messages(processed, timestamp, id);",
]

_SELECT_HEAD = """
SELECT id, direction, content, timestamp, processed
FROM messages
WHERE processed = 0
ORDER BY timestamp ASC, id ASC
LIMIT 1
"""

# aiosqlite raises ValueError once the connection is closed.
_STORAGE_ERRORS = (sqlite3.Error, OSError, ValueError)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _row_to_message(row: Any) -> Message:
    return Message(
        id=row[0],
        direction=Direction(row[1]),
        content=row[2],
        timestamp=row[3],
        processed=bool(row[4]),
    )


class MessageQueue:
    """Persistent FIFO of relay messages.

    Create with :meth:`open`. All mutations are committed before the
    coroutine returns.
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        path: Path,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._conn = conn
        self._path = path
        self._clock = clock
        # Serializes transactions issued over the shared connection.
        self._lock = anyio.Lock()

    @classmethod
    async def open(
        cls,
        path: Path | str | None = None,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> "MessageQueue":
        db_path = Path(path) if path is not None else DEFAULT_QUEUE_DB_PATH
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(db_path, isolation_level=None)
        except _STORAGE_ERRORS as e:
            raise StorageError(f"cannot open queue at {db_path}: {e}") from e
        queue = cls(conn, db_path, clock=clock)
        try:
            await queue._init_schema()
        except StorageError:
            await conn.close()
            raise
        logger.debug("queue.opened", path=str(db_path))
        return queue

    @property
    def path(self) -> Path:
        return self._path

    async def _init_schema(self) -> None:
        try:
            await self._conn.execute("PRAGMA journal_mode = WAL;")
            await self._conn.execute("PRAGMA synchronous = FULL;")
            await self._conn.execute("PRAGMA busy_timeout = 5000;")
            await self._conn.execute(_MESSAGES_DDL)
            for idx_sql in _MESSAGES_INDEXES:
                await self._conn.execute(idx_sql)
        except _STORAGE_ERRORS as e:
            raise StorageError(f"cannot initialise queue schema: {e}") from e

    async def close(self) -> None:
        try:
            await self._conn.close()
        except _STORAGE_ERRORS as e:
            raise StorageError(f"cannot close queue: {e}") from e

    async def __aenter__(self) -> "MessageQueue":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def enqueue(self, direction: Direction | str, content: str) -> int:
        """Append a message and return its id.

        Raises:
            ValidationError: if the content is empty or the direction unknown
            StorageError: if the insert cannot be committed
        """
        try:
            direction = Direction(direction)
        except ValueError as e:
            raise ValidationError(f"unknown direction: {direction!r}") from e
        if not isinstance(content, str) or not content:
            raise ValidationError("message content must be a non-empty string")

        async with self._lock:
            try:
                cursor = await self._conn.execute(
                    "INSERT INTO messages (direction, content, timestamp, processed) "
                    "VALUES (?, ?, ?, 0)",
                    (direction.value, content, self._clock()),
                )
                message_id = cursor.lastrowid
                await cursor.close()
            except _STORAGE_ERRORS as e:
                raise StorageError(f"enqueue failed: {e}") from e

        if message_id is None:
            raise StorageError("enqueue failed: no row id returned")
        logger.debug("queue.enqueued", id=message_id, direction=direction.value)
        return message_id

    async def peek(self) -> Message | None:
        """Return the head of the queue without consuming it."""
        try:
            async with self._conn.execute(_SELECT_HEAD) as cursor:
                row = await cursor.fetchone()
        except _STORAGE_ERRORS as e:
            raise StorageError(f"peek failed: {e}") from e
        return _row_to_message(row) if row is not None else None

    async def dequeue(self) -> Message | None:
        """Consume the head of the queue, whatever its direction."""
        return await self._dequeue(None)

    async def dequeue_if(self, direction: Direction) -> Message | None:
        """Consume the head only if it has the given direction.

        The check and the consume happen in one transaction, so a head that is
        replaced between a caller's peek and this call is never taken by the
        wrong consumer.
        """
        return await self._dequeue(direction)

    async def _dequeue(self, direction: Direction | None) -> Message | None:
        async with self._lock:
            try:
                await self._conn.execute("BEGIN IMMEDIATE")
            except _STORAGE_ERRORS as e:
                raise StorageError(f"dequeue failed: {e}") from e
            try:
                async with self._conn.execute(_SELECT_HEAD) as cursor:
                    row = await cursor.fetchone()
                if row is None:
                    await self._conn.execute("COMMIT")
                    return None
                message = _row_to_message(row)
                if direction is not None and message.direction is not direction:
                    await self._conn.execute("COMMIT")
                    return None
                await self._conn.execute(
                    "UPDATE messages SET processed = 1 WHERE id = ? AND processed = 0",
                    (message.id,),
                )
                await self._conn.execute("COMMIT")
            except _STORAGE_ERRORS as e:
                await self._rollback()
                raise StorageError(f"dequeue failed: {e}") from e
            except BaseException:
                with anyio.CancelScope(shield=True):
                    await self._rollback()
                raise

        logger.debug("queue.dequeued", id=message.id, direction=message.direction.value)
        return Message(
            id=message.id,
            direction=message.direction,
            content=message.content,
            timestamp=message.timestamp,
            processed=True,
        )

    async def _rollback(self) -> None:
        try:
            await self._conn.execute("ROLLBACK")
        except _STORAGE_ERRORS:
            logger.warning("queue.rollback_failed")

    async def unprocessed_count(self) -> int:
        try:
            async with self._conn.execute(
                "SELECT COUNT(*) FROM messages WHERE processed = 0"
            ) as cursor:
                row = await cursor.fetchone()
        except _STORAGE_ERRORS as e:
            raise StorageError(f"count failed: {e}") from e
        return int(row[0]) if row is not None else 0
