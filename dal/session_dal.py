"""Async Data Access Layer for the SESSION table."""

from __future__ import annotations

import time
from typing import Optional

import aiosqlite

from models.session_models import SessionRecord
from services.narrative.errors import StorageError
from utils.database_init import AsyncDatabaseInitializer


class SessionDAL:
    """Sessions are created once and never mutated or deleted."""

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_session(self, session_id: str, user_id: Optional[str] = None) -> SessionRecord:
        """Register a session token.

        Raises:
            ValueError: If the token is already registered.
            StorageError: On any other database failure.
        """
        record = SessionRecord(session_id=session_id, user_id=user_id, created_at=time.time())
        try:
            async with self._db.connection() as conn:
                await conn.execute(
                    "INSERT INTO SESSION (session_id, user_id, created_at) VALUES (?, ?, ?)",
                    (record.session_id, record.user_id, record.created_at),
                )
                await conn.commit()
        except aiosqlite.IntegrityError as exc:
            raise ValueError(f"Session {session_id} already exists") from exc
        except aiosqlite.Error as exc:
            raise StorageError("Failed to create session") from exc
        return record

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        """Return the session for `session_id`, or None if not found."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    "SELECT session_id, user_id, created_at FROM SESSION WHERE session_id = ?",
                    (session_id,),
                )
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError("Failed to load session") from exc
        if row is None:
            return None
        return SessionRecord(session_id=row[0], user_id=row[1], created_at=row[2])
