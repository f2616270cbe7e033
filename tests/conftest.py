"""
Pytest fixtures for the narrative engine tests.
"""

import asyncio
import json
from typing import List

import pytest

from dal.game_dal import GameDAL
from dal.session_dal import SessionDAL
from dal.turn_dal import TurnDAL
from models.session_models import GameRecord
from models.stream_events import StreamEvent
from models.turn_record import ASSISTANT, USER, USER_INPUT_MODEL, TurnRecord
from services.openai.story_generator import StoryGenerator
from utils.database_init import AsyncDatabaseInitializer

SESSION_ID = "6f1c2a7e-3b9d-4c55-8a21-0d4e5f6a7b8c"
GAME_ID = "G1"


class ScriptedGenerator(StoryGenerator):
    """Replays a fixed list of events for every call and records the requests."""

    def __init__(self, events: List[StreamEvent], delay: float = 0.0, hang: bool = False) -> None:
        self.events = list(events)
        self.delay = delay
        self.hang = hang
        self.requests = []
        self.closed = 0

    def stream(self, request):
        self.requests.append(request)
        return self._run()

    async def _run(self):
        try:
            for event in self.events:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield event
            if self.hang:
                await asyncio.sleep(3600)
        finally:
            self.closed += 1


def parse_frames(frames: List[str]) -> List[dict]:
    """Decode `data: <json>` SSE frames."""
    decoded = []
    for frame in frames:
        assert frame.startswith("data: ") and frame.endswith("\n\n")
        decoded.append(json.loads(frame[len("data: "):].strip()))
    return decoded


def make_game(game_id: str = GAME_ID, slug: str = "the-last-heist") -> GameRecord:
    return GameRecord(
        id=game_id,
        slug=slug,
        title="The Last Heist",
        description="A crew of retired thieves gets pulled back for one final job.",
        tagline="I said I was out. I lied.",
        genre="Thriller",
        subgenre="Caper",
        prompt_model="gpt-4o-mini",
        article_context="An essay on why people chase one last score.",
    )


@pytest.fixture
def db_initializer(tmp_path, monkeypatch) -> AsyncDatabaseInitializer:
    """Fresh SQLite database under a temporary DATABASE_DIR."""
    monkeypatch.setenv("DATABASE_DIR", str(tmp_path / "db"))
    initializer = AsyncDatabaseInitializer()
    asyncio.run(initializer.ensure_database())
    return initializer


@pytest.fixture
def turns(db_initializer) -> TurnDAL:
    return TurnDAL(db_initializer)


@pytest.fixture
def seeded(db_initializer):
    """Register session SESSION_ID and game G1; returns (session, game)."""

    async def _seed():
        game = await GameDAL(db_initializer).create_game(make_game())
        session = await SessionDAL(db_initializer).create_session(SESSION_ID, user_id="player-1")
        return session, game

    return asyncio.run(_seed())


@pytest.fixture
def add_turns(turns, seeded):
    """Append alternating user/assistant exchanges to the seeded pair."""

    def _add(exchanges: int, session_id: str = SESSION_ID, game_id: str = GAME_ID) -> List[int]:
        async def _run():
            ids = []
            for index in range(exchanges):
                user_id = await turns.append(
                    TurnRecord(None, session_id, game_id, USER, f"move {index}", USER_INPUT_MODEL)
                )
                assistant_id = await turns.append(
                    TurnRecord(None, session_id, game_id, ASSISTANT, f"panel {index}", "gpt-4o-mini", parent_id=user_id)
                )
                ids.extend([user_id, assistant_id])
            return ids

        return asyncio.run(_run())

    return _add
