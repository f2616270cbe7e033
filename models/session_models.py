"""Session and game records read by the narrative engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class SessionRecord:
	"""One player's play-through, identified by a caller-supplied UUID token."""

	session_id: str
	user_id: Optional[str] = None
	created_at: Optional[float] = None


@dataclass
class GameRecord:
	"""Content template that drives generation."""

	id: str
	slug: str
	title: str
	description: str
	tagline: str
	genre: str
	subgenre: str
	prompt_model: str
	article_context: Optional[str] = None
	image_url: Optional[str] = None
	created_at: Optional[float] = None


@dataclass(frozen=True)
class ContextMessage:
	"""Conversation entry handed to the generator, reduced to role and content."""

	role: str
	content: str
