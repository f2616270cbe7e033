"""Panel limit bookkeeping derived from persisted assistant turns."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from dal.turn_dal import TurnDAL
from services.narrative.errors import StoryCompleteError

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_PANELS = 5


@dataclass(frozen=True)
class PanelState:
    """`Open(count)` while `count < max_panels`, `Exhausted` afterwards."""

    count: int
    max_panels: int

    @property
    def exhausted(self) -> bool:
        return self.count >= self.max_panels

    @property
    def next_panel(self) -> int:
        return self.count + 1

    @property
    def label(self) -> str:
        return "Exhausted" if self.exhausted else f"Open({self.count})"


class PanelCounter:
    """Read the panel count from the turn store on every request.

    There is no in-memory counter and no reset: once a pair reaches
    `max_panels` it stays exhausted.
    """

    def __init__(self, turns: TurnDAL, max_panels: int = DEFAULT_MAX_PANELS) -> None:
        if max_panels < 1:
            raise ValueError("max_panels must be at least 1.")
        self.turns = turns
        self.max_panels = max_panels

    async def state(self, session_id: str, game_id: str) -> PanelState:
        count = await self.turns.count_assistant_turns(session_id, game_id)
        return PanelState(count=count, max_panels=self.max_panels)

    async def ensure_open(self, session_id: str, game_id: str) -> PanelState:
        """Return the open state or raise StoryCompleteError."""
        state = await self.state(session_id, game_id)
        if state.exhausted:
            LOGGER.info("Story complete for session %s game %s (%d panels)", session_id, game_id, state.count)
            raise StoryCompleteError()
        return state
