"""Rebuild bounded conversation context from the persisted turn log."""

from __future__ import annotations

from typing import List

from dal.turn_dal import TurnDAL
from models.session_models import ContextMessage
from models.turn_record import ASSISTANT, USER

DEFAULT_CONTEXT_LIMIT = 20


class ContextAssembler:
    """Return the most recent conversational turns of a pair, oldest first.

    System turns never reach the generator; they are filtered before the limit
    is applied, so a pair with more than `limit` user/assistant turns always
    yields exactly `limit` messages.
    """

    def __init__(self, turns: TurnDAL, limit: int = DEFAULT_CONTEXT_LIMIT) -> None:
        if limit < 1:
            raise ValueError("Context limit must be at least 1.")
        self.turns = turns
        self.limit = limit

    async def assemble(self, session_id: str, game_id: str) -> List[ContextMessage]:
        records = await self.turns.list_recent(session_id, game_id, self.limit)
        return [
            ContextMessage(role=record.role, content=record.content)
            for record in records
            if record.role in (USER, ASSISTANT)
        ]
