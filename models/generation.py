"""Inputs handed to a story generator."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import unquote

from models.session_models import ContextMessage, GameRecord

LOGGER = logging.getLogger(__name__)

START = "start"
CONTINUE = "continue"


@dataclass(frozen=True)
class AIPreferences:
	"""Caller-side generation preferences, read from the `ai_preferences` cookie."""

	preferred_model: Optional[str] = None
	max_output_tokens: Optional[int] = None

	@classmethod
	def from_cookie(cls, raw: Optional[str]) -> "AIPreferences":
		"""Parse a URL-encoded JSON cookie value; malformed input yields defaults."""
		if not raw:
			return cls()
		try:
			data = json.loads(unquote(raw))
		except ValueError:
			LOGGER.warning("Ignoring malformed ai_preferences cookie")
			return cls()
		if not isinstance(data, dict):
			LOGGER.warning("Ignoring ai_preferences cookie that is not an object")
			return cls()
		model = data.get("preferredModel")
		tokens = data.get("maxOutputTokens")
		return cls(
			preferred_model=model.strip() if isinstance(model, str) and model.strip() else None,
			max_output_tokens=tokens if isinstance(tokens, int) and not isinstance(tokens, bool) and tokens > 0 else None,
		)


@dataclass(frozen=True)
class GenerationRequest:
	"""Everything a generator needs for one panel.

	`mode` is `start` for the opening panel (built from `game`) or `continue`
	for a reply (built from `context` plus `trigger_message`).
	"""

	mode: str
	game: GameRecord
	backend: str
	panel_number: int
	max_panels: int
	trigger_message: str = ""
	context: List[ContextMessage] = field(default_factory=list)
	thematic_context: Optional[str] = None
	preferences: AIPreferences = field(default_factory=AIPreferences)

	@property
	def is_final_panel(self) -> bool:
		return self.panel_number >= self.max_panels
