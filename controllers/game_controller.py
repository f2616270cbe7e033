"""Game template, session registration and transcript helpers."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, HTTPException, Request

from dal.game_dal import GameDAL
from dal.session_dal import SessionDAL
from dal.turn_dal import TurnDAL
from models.session_models import GameRecord
from models.turn_record import ASSISTANT, TurnRecord
from services.narrative.errors import StorageError
from utils.request_validation import is_uuid


def game_to_dict(game: GameRecord) -> Dict[str, Any]:
    return {
        "id": game.id,
        "slug": game.slug,
        "title": game.title,
        "description": game.description,
        "tagline": game.tagline,
        "genre": game.genre,
        "subgenre": game.subgenre,
        "promptModel": game.prompt_model,
        "articleContext": game.article_context,
        "imageUrl": game.image_url,
        "createdAt": game.created_at,
    }


def turn_to_dict(turn: TurnRecord) -> Dict[str, Any]:
    return {
        "id": turn.id,
        "parentId": turn.parent_id,
        "role": turn.role,
        "content": turn.content,
        "model": turn.model,
        "createdAt": turn.created_at,
    }


async def create_game(request: Request, record: GameRecord) -> Dict[str, Any]:
    """Register a game template and return it."""
    try:
        game = await GameDAL(request.app.state.db_initializer).create_game(record)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    return game_to_dict(game)


async def list_games(request: Request, limit: int, offset: int) -> Dict[str, Any]:
    games = await GameDAL(request.app.state.db_initializer).list_games(limit=limit, offset=offset)
    return {"games": [game_to_dict(game) for game in games], "limit": limit, "offset": offset}


async def get_game(request: Request, game_ref: str) -> Dict[str, Any]:
    """Return one game by id or slug.

    Raises:
        HTTPException(404) if the game is not found.
    """
    game = await GameDAL(request.app.state.db_initializer).get_game(game_ref)
    if game is None:
        raise HTTPException(status_code=404, detail="Game not found")
    return game_to_dict(game)


async def update_game_image(
    request: Request, game_ref: str, image_url: str, background_tasks: BackgroundTasks
) -> Dict[str, Any]:
    """Schedule the best-effort image reference update after the response is sent."""
    game_dal = GameDAL(request.app.state.db_initializer)
    game = await game_dal.get_game(game_ref)
    if game is None:
        raise HTTPException(status_code=404, detail="Game not found")
    background_tasks.add_task(game_dal.update_image_reference, game.id, image_url)
    return {"gameId": game.id, "imageUrl": image_url, "scheduled": True}


async def create_session(request: Request, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    """Register a caller-supplied session token."""
    if not is_uuid(session_id):
        raise HTTPException(status_code=400, detail="sessionId must be a UUID")
    try:
        session = await SessionDAL(request.app.state.db_initializer).create_session(session_id, user_id)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"sessionId": session.session_id, "userId": session.user_id, "createdAt": session.created_at}


async def get_transcript(request: Request, game_ref: str, session_id: str) -> Dict[str, Any]:
    """Return the full ordered turn log of a (session, game) pair for audit or replay."""
    db_initializer = request.app.state.db_initializer
    game = await GameDAL(db_initializer).get_game(game_ref)
    if game is None:
        raise HTTPException(status_code=404, detail="Game not found")
    if await SessionDAL(db_initializer).get_session(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")

    turns = await TurnDAL(db_initializer).list_all(session_id, game.id)
    panel_count = sum(1 for turn in turns if turn.role == ASSISTANT)
    max_panels = request.app.state.settings.max_panels
    return {
        "sessionId": session_id,
        "gameId": game.id,
        "panelCount": panel_count,
        "maxPanels": max_panels,
        "complete": panel_count >= max_panels,
        "turns": [turn_to_dict(turn) for turn in turns],
    }
