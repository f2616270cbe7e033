"""Async Data Access Layer for the append-only TURN table.

Provides TurnDAL, the turn store of the narrative engine. Rows are only ever
inserted; there is no update or delete operation.
"""

from __future__ import annotations

import logging
import time
from typing import List, Sequence

import aiosqlite

from models.turn_record import ASSISTANT, ROLES, SYSTEM, TurnRecord
from services.narrative.errors import StorageError, StoryCompleteError
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class TurnDAL:
    """Data access layer for TURN records keyed by (session_id, game_id).

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "parent_id",
        "session_id",
        "game_id",
        "user_id",
        "role",
        "content",
        "model",
        "created_at",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])
    _INSERT_SQL = f"INSERT INTO TURN ({_INSERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)"

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def append(self, record: TurnRecord) -> int:
        """Insert a new TURN row and return its id.

        Args:
            record: TurnRecord with `id=None`.

        Raises:
            StorageError: If the row could not be written.
        """
        self._check_role(record)
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(self._INSERT_SQL, self._insert_params(record))
                await conn.commit()
                return cur.lastrowid
        except aiosqlite.Error as exc:
            LOGGER.error("Failed to append %s turn for session %s: %s", record.role, record.session_id, exc)
            raise StorageError("Failed to persist turn") from exc

    async def append_assistant_turn(self, record: TurnRecord, max_panels: int) -> int:
        """Insert an assistant turn only if the pair is still below `max_panels`.

        The count and the insert run inside one `BEGIN IMMEDIATE` transaction,
        so concurrent writers for the same pair are serialized by SQLite and the
        panel limit holds across requests and processes.

        Raises:
            StoryCompleteError: If the pair already holds `max_panels` assistant turns.
            StorageError: If the transaction failed.
        """
        if record.role != ASSISTANT:
            raise ValueError("append_assistant_turn only accepts assistant turns")
        try:
            async with self._db.connection() as conn:
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    count = await self._count_assistant(conn, record.session_id, record.game_id)
                    if count >= max_panels:
                        await conn.rollback()
                        raise StoryCompleteError()
                    cur = await conn.execute(self._INSERT_SQL, self._insert_params(record))
                    await conn.commit()
                    return cur.lastrowid
                except aiosqlite.Error:
                    await conn.rollback()
                    raise
        except aiosqlite.Error as exc:
            LOGGER.error("Failed to append assistant turn for session %s: %s", record.session_id, exc)
            raise StorageError("Failed to persist assistant turn") from exc

    async def list_recent(
        self, session_id: str, game_id: str, limit: int, include_system: bool = False
    ) -> List[TurnRecord]:
        """Return the `limit` most recent turns for a pair, oldest first."""
        role_filter = "" if include_system else "AND role != ?"
        params: tuple = (session_id, game_id) if include_system else (session_id, game_id, SYSTEM)
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    f"SELECT {self._COLUMN_LIST} FROM TURN "
                    f"WHERE session_id = ? AND game_id = ? {role_filter} "
                    "ORDER BY id DESC LIMIT ?",
                    params + (limit,),
                )
                rows = await cur.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError("Failed to read conversation history") from exc
        return [self._row_to_record(r) for r in reversed(rows)]

    async def list_all(self, session_id: str, game_id: str) -> List[TurnRecord]:
        """Return every turn for a pair in creation order, system turns included."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    f"SELECT {self._COLUMN_LIST} FROM TURN WHERE session_id = ? AND game_id = ? ORDER BY id ASC",
                    (session_id, game_id),
                )
                rows = await cur.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError("Failed to read conversation history") from exc
        return [self._row_to_record(r) for r in rows]

    async def count_assistant_turns(self, session_id: str, game_id: str) -> int:
        """Return the number of assistant turns (panels) for a pair."""
        try:
            async with self._db.connection() as conn:
                return await self._count_assistant(conn, session_id, game_id)
        except aiosqlite.Error as exc:
            raise StorageError("Failed to count panels") from exc

    @staticmethod
    async def _count_assistant(conn: aiosqlite.Connection, session_id: str, game_id: str) -> int:
        cur = await conn.execute(
            "SELECT COUNT(*) FROM TURN WHERE session_id = ? AND game_id = ? AND role = ?",
            (session_id, game_id, ASSISTANT),
        )
        row = await cur.fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    @staticmethod
    def _check_role(record: TurnRecord) -> None:
        if record.role not in ROLES:
            raise ValueError(f"Unknown turn role: {record.role!r}")

    @staticmethod
    def _insert_params(record: TurnRecord) -> tuple:
        return (
            record.parent_id,
            record.session_id,
            record.game_id,
            record.user_id,
            record.role,
            record.content,
            record.model,
            record.created_at or time.time(),
        )

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> TurnRecord:
        """Convert a DB row tuple into a TurnRecord."""
        return TurnRecord(
            id=row[0],
            parent_id=row[1],
            session_id=row[2],
            game_id=row[3],
            user_id=row[4],
            role=row[5],
            content=row[6],
            model=row[7],
            created_at=row[8],
        )
