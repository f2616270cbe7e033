"""Prompt helpers for opening and continuing a story game."""

from __future__ import annotations

from typing import Optional

from models.session_models import GameRecord


def start_game_prompt(game: GameRecord, article_context: Optional[str] = None) -> str:
	"""Return the instruction that opens a game on panel 1."""
	context_block = (
		f"# ARTICLE CONTEXT (use to enhance narrative authenticity)\n{article_context.strip()}\n\n"
		if article_context and article_context.strip()
		else ""
	)
	article_rule = " and incorporates themes from the article" if context_block else ""
	return (
		"You are an interactive text game engine.\n\n"
		"# GAME DETAILS\n"
		f"Title: {game.title}\n"
		f"Genre: {game.genre}\n"
		f"Subgenre: {game.subgenre}\n"
		f"Description: {game.description}\n"
		f"Tagline: {game.tagline}\n\n"
		f"{context_block}"
		"# RULES\n"
		"* Stay in character and maintain the game's tone\n"
		"* Keep responses relatively short for tight feedback loops\n"
		"* Always end with exactly 4 numbered options (1. 2. 3. 4.)\n"
		"* Be concise, witty, and engaging\n"
		f"* Ensure the story aligns with the game description{article_rule}\n"
		"* Make choices meaningful with real consequences\n"
		'* Begin each option with the number, period, and space (e.g., "1. ")\n\n'
		"Start the game now. Set the scene and present 4 initial choices."
	)


def continue_game_prompt(
	game: GameRecord,
	panel_number: int,
	max_panels: int,
	final_panel: bool,
	article_context: Optional[str] = None,
) -> str:
	"""Return the system instruction for a mid-game panel; `final_panel` asks for the conclusion."""
	if final_panel:
		pacing = (
			f"This is panel {panel_number} of {max_panels}, the final panel. "
			"Bring the story to a satisfying conclusion and do not offer further options."
		)
	else:
		pacing = (
			f"This is panel {panel_number} of {max_panels}. "
			"Advance the story in response to the player and end with exactly 4 numbered options (1. 2. 3. 4.)."
		)
	context_block = (
		f"\n\nKeep the narrative consistent with this source material:\n{article_context.strip()}"
		if article_context and article_context.strip()
		else ""
	)
	return (
		f"You are the interactive text game engine running \"{game.title}\" "
		f"({game.genre} / {game.subgenre}). Stay in character, keep the tone, and keep responses short. "
		f"{pacing}{context_block}"
	)
