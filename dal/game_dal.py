"""Async Data Access Layer for the GAME table."""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence
from uuid import uuid4

import aiosqlite

from models.session_models import GameRecord
from services.narrative.errors import StorageError
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class GameDAL:
    """Read access to game templates plus the registration and image-reference writes."""

    _COLUMNS = (
        "id",
        "slug",
        "title",
        "description",
        "tagline",
        "genre",
        "subgenre",
        "prompt_model",
        "article_context",
        "image_url",
        "created_at",
    )
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_game(self, record: GameRecord) -> GameRecord:
        """Insert a game template and return it with its id and timestamp filled in.

        Raises:
            ValueError: If the slug is already taken.
            StorageError: On any other database failure.
        """
        game = GameRecord(
            id=record.id or uuid4().hex,
            slug=record.slug,
            title=record.title,
            description=record.description,
            tagline=record.tagline,
            genre=record.genre,
            subgenre=record.subgenre,
            prompt_model=record.prompt_model,
            article_context=record.article_context,
            image_url=record.image_url,
            created_at=record.created_at or time.time(),
        )
        placeholders = ", ".join("?" for _ in self._COLUMNS)
        try:
            async with self._db.connection() as conn:
                await conn.execute(
                    f"INSERT INTO GAME ({self._COLUMN_LIST}) VALUES ({placeholders})",
                    tuple(getattr(game, col) for col in self._COLUMNS),
                )
                await conn.commit()
        except aiosqlite.IntegrityError as exc:
            raise ValueError(f"Game slug {record.slug!r} already exists") from exc
        except aiosqlite.Error as exc:
            raise StorageError("Failed to create game") from exc
        return game

    async def get_game(self, game_ref: str) -> Optional[GameRecord]:
        """Return the game whose id or slug equals `game_ref`, or None."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    f"SELECT {self._COLUMN_LIST} FROM GAME WHERE id = ? OR slug = ? "
                    "ORDER BY CASE WHEN id = ? THEN 0 ELSE 1 END LIMIT 1",
                    (game_ref, game_ref, game_ref),
                )
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError("Failed to load game") from exc
        return self._row_to_record(row) if row else None

    async def list_games(self, limit: int = 25, offset: int = 0) -> List[GameRecord]:
        """List games, newest first."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    f"SELECT {self._COLUMN_LIST} FROM GAME ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                    (limit, offset),
                )
                rows = await cur.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError("Failed to list games") from exc
        return [self._row_to_record(r) for r in rows]

    async def update_image_reference(self, game_id: str, image_url: str) -> bool:
        """Best-effort update of the generated art reference. Returns True if a row changed.

        Failures are logged and reported as False; callers run this outside the
        turn-generation path.
        """
        try:
            async with self._db.connection() as conn:
                await conn.execute("UPDATE GAME SET image_url = ? WHERE id = ?", (image_url, game_id))
                await conn.commit()
                cur = await conn.execute("SELECT changes()")
                changed = await cur.fetchone()
                return bool(changed and changed[0] > 0)
        except aiosqlite.Error as exc:
            LOGGER.warning("Image reference update for game %s failed: %s", game_id, exc)
            return False

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> GameRecord:
        return GameRecord(
            id=row[0],
            slug=row[1],
            title=row[2],
            description=row[3],
            tagline=row[4],
            genre=row[5],
            subgenre=row[6],
            prompt_model=row[7],
            article_context=row[8],
            image_url=row[9],
            created_at=row[10],
        )
