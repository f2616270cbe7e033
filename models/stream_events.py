"""Typed events exchanged between the generator, the controller and the caller."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

CONTENT = "content"
END = "end"
ERROR = "error"


@dataclass(frozen=True)
class StoryOption:
    """A numbered choice offered at the end of a panel."""

    id: int
    text: str


@dataclass(frozen=True)
class StreamEvent:
    """One event of a generation stream.

    `content` carries a text fragment, `end` closes a clean turn and may carry
    the parsed choices, `error` closes a failed turn. `game_complete` marks the
    error raised when the panel limit has been reached.
    """

    type: str
    content: str = ""
    error: Optional[str] = None
    options: List[StoryOption] = field(default_factory=list)
    game_complete: bool = False

    @classmethod
    def text(cls, fragment: str) -> "StreamEvent":
        return cls(type=CONTENT, content=fragment)

    @classmethod
    def end(cls, options: Optional[List[StoryOption]] = None) -> "StreamEvent":
        return cls(type=END, options=list(options or []))

    @classmethod
    def failure(cls, message: str, game_complete: bool = False) -> "StreamEvent":
        return cls(type=ERROR, error=message, game_complete=game_complete)

    @property
    def is_terminal(self) -> bool:
        return self.type in (END, ERROR)

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON body sent to the caller for this event."""
        if self.type == CONTENT:
            return {"type": CONTENT, "content": self.content}
        if self.type == END:
            return {"type": END, "options": [{"id": o.id, "text": o.text} for o in self.options]}
        payload: Dict[str, Any] = {"type": ERROR, "error": self.error or "Generation failed"}
        if self.game_complete:
            payload["gameComplete"] = True
        return payload

    def to_frame(self) -> str:
        """Encode the event as a server-sent event frame."""
        return f"data: {json.dumps(self.to_payload())}\n\n"
