"""FastAPI routes that stream story panels."""

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from controllers.game_play_controller import continue_game, start_game

router = APIRouter(prefix="/games", tags=["play"])


async def _json_body(request: Request) -> Any:
	"""Decode the JSON body; undecodable input is passed on as None so validation rejects it."""
	try:
		return await request.json()
	except ValueError:
		return None


@router.post("/chat")
async def continue_game_route(request: Request):
	"""Continue a game with the player's message; answered as text/event-stream."""
	try:
		return await continue_game(request, await _json_body(request))
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{game_ref}/start")
async def start_game_route(request: Request, game_ref: str):
	"""Start a game (by id or slug) for a session; answered as text/event-stream."""
	try:
		return await start_game(request, game_ref, await _json_body(request))
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
