"""Start and continue story games over server-sent events."""

from __future__ import annotations

import logging
from typing import Any, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from dal.game_dal import GameDAL
from dal.session_dal import SessionDAL
from dal.turn_dal import TurnDAL
from models.generation import AIPreferences
from models.session_models import GameRecord, SessionRecord
from services.narrative.errors import NarrativeError, NotFoundError, ValidationError
from services.narrative.session_controller import StreamingSessionController
from utils.request_validation import Invalid, validate_continue, validate_start
from utils.settings import EngineSettings

LOGGER = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
PREFERENCES_COOKIE = "ai_preferences"


def _error_response(exc: NarrativeError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


def _session_controller(request: Request) -> StreamingSessionController:
    """Build a controller from the shared database initializer, generator and settings."""
    state = request.app.state
    settings: EngineSettings = state.settings
    return StreamingSessionController(
        TurnDAL(state.db_initializer),
        state.story_generator,
        max_panels=settings.max_panels,
        context_limit=settings.context_limit,
        generation_timeout=float(settings.generation_timeout_seconds),
    )


async def _load_pair(request: Request, session_id: str, game_ref: str) -> Tuple[SessionRecord, GameRecord]:
    db_initializer = request.app.state.db_initializer
    game = await GameDAL(db_initializer).get_game(game_ref)
    if game is None:
        raise NotFoundError("Game not found")
    session = await SessionDAL(db_initializer).get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    return session, game


def _preferences(request: Request) -> AIPreferences:
    return AIPreferences.from_cookie(request.cookies.get(PREFERENCES_COOKIE))


async def start_game(request: Request, game_ref: str, body: Any) -> Response:
    """Open the first panel of a game for a session.

    Validation, lookups, the panel check and the system-turn write all happen
    before the stream opens and are reported as plain JSON rejections.

    Returns:
        A `text/event-stream` response, or a JSON error response.
    """
    result = validate_start(body, game_ref)
    if isinstance(result, Invalid):
        return _error_response(ValidationError("Invalid request data", result.details))
    start = result.value

    try:
        session, game = await _load_pair(request, start.session_id, start.game_ref)
        stream = await _session_controller(request).open_start(session, game, _preferences(request))
    except NarrativeError as exc:
        LOGGER.info("Start rejected for session %s: %s", start.session_id, exc.message)
        return _error_response(exc)

    return StreamingResponse(
        stream.frames(request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def continue_game(request: Request, body: Any) -> Response:
    """Persist the player's message and stream the next panel.

    A story that has already reached its panel limit is answered with a
    stream holding a single `error` frame flagged `gameComplete`.
    """
    result = validate_continue(body)
    if isinstance(result, Invalid):
        return _error_response(ValidationError("Invalid request data", result.details))
    chat = result.value

    try:
        session, game = await _load_pair(request, chat.session_id, chat.game_id)
        stream = await _session_controller(request).open_continue(
            session, game, chat.message, _preferences(request)
        )
    except NarrativeError as exc:
        LOGGER.info("Chat rejected for session %s: %s", chat.session_id, exc.message)
        return _error_response(exc)

    return StreamingResponse(
        stream.frames(request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
