"""Print stored story transcripts from the project's SQLite database.

Every (session, game) pair found in the TURN table is printed in creation
order, with parent links, so a play-through can be audited or replayed. It
reuses the same `DATABASE_DIR` behavior as the application via
`utils.database_init.AsyncDatabaseInitializer`.

Run: set the `DATABASE_DIR` environment variable and run
      `python print_db.py [session_id]`.
"""
import asyncio
import sys
from typing import List, Optional, Tuple

from dal.turn_dal import TurnDAL
from models.turn_record import ASSISTANT, TurnRecord
from utils.database_init import AsyncDatabaseInitializer


async def _pairs(initializer: AsyncDatabaseInitializer, session_id: Optional[str]) -> List[Tuple[str, str]]:
    """Return the distinct (session_id, game_id) pairs, oldest conversation first."""
    sql = "SELECT session_id, game_id, MIN(id) AS first_id FROM TURN"
    params: tuple = ()
    if session_id:
        sql += " WHERE session_id = ?"
        params = (session_id,)
    sql += " GROUP BY session_id, game_id ORDER BY first_id"
    async with initializer.connection() as conn:
        cur = await conn.execute(sql, params)
        return [(row[0], row[1]) for row in await cur.fetchall()]


def _format_turn(turn: TurnRecord) -> str:
    parent = f" <- {turn.parent_id}" if turn.parent_id is not None else ""
    text = " ".join(turn.content.split())
    return f"  [{turn.id}{parent}] {turn.role.upper()} ({turn.model}): {text}"


async def main(session_id: Optional[str] = None) -> None:
    """Print every transcript, or only those of `session_id`."""
    initializer = AsyncDatabaseInitializer()
    turns_dal = TurnDAL(initializer)
    for pair_session, game_id in await _pairs(initializer, session_id):
        turns = await turns_dal.list_all(pair_session, game_id)
        panels = sum(1 for turn in turns if turn.role == ASSISTANT)
        print(f"Session {pair_session} / game {game_id} ({panels} panels)")
        for turn in turns:
            print(_format_turn(turn))
        print()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
