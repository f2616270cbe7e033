from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"

ROLES = (SYSTEM, USER, ASSISTANT)

# Backend tag stored on turns typed by the player.
USER_INPUT_MODEL = "user-input"


@dataclass
class TurnRecord:
    """In-memory representation of a row in the TURN table.

    Attributes:
        id: Primary key (None for new records). Monotonic, so it also orders turns.
        session_id: Session token the turn belongs to.
        game_id: Game the turn belongs to.
        role: One of `system`, `user`, `assistant`.
        content: Message text.
        model: Backend identifier that produced the turn, or `user-input`.
        parent_id: Turn that triggered this one (assistant turns only).
        user_id: Owning user copied from the session, if any.
        created_at: Unix timestamp (seconds, fractional) when the row was inserted.
    """

    id: Optional[int]
    session_id: str
    game_id: str
    role: str
    content: str
    model: str
    parent_id: Optional[int] = None
    user_id: Optional[str] = None
    created_at: Optional[float] = None
