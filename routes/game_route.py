"""FastAPI routes for game templates and transcripts."""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request
from pydantic import BaseModel, Field

from controllers.game_controller import create_game, get_game, get_transcript, list_games, update_game_image
from models.session_models import GameRecord

router = APIRouter(prefix="/games", tags=["games"])


class GamePayload(BaseModel):
    slug: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str
    tagline: str
    genre: str
    subgenre: str
    promptModel: str = "gpt-4o-mini"
    articleContext: Optional[str] = None
    imageUrl: Optional[str] = None


class ImagePayload(BaseModel):
    imageUrl: str = Field(min_length=1)


@router.post("", status_code=201)
async def create_game_route(request: Request, payload: GamePayload):
    record = GameRecord(
        id="",
        slug=payload.slug,
        title=payload.title,
        description=payload.description,
        tagline=payload.tagline,
        genre=payload.genre,
        subgenre=payload.subgenre,
        prompt_model=payload.promptModel,
        article_context=payload.articleContext,
        image_url=payload.imageUrl,
    )
    try:
        return await create_game(request, record)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("")
async def list_games_route(request: Request, limit: int = Query(25, ge=1, le=100), offset: int = Query(0, ge=0)):
    """List registered games, newest first."""
    try:
        return await list_games(request, limit, offset)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{game_ref}")
async def get_game_route(request: Request, game_ref: str):
    try:
        return await get_game(request, game_ref)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.patch("/{game_ref}/image", status_code=202)
async def update_game_image_route(
    request: Request, game_ref: str, payload: ImagePayload, background_tasks: BackgroundTasks
):
    """Accept a generated art reference; the write happens after the response."""
    try:
        return await update_game_image(request, game_ref, payload.imageUrl, background_tasks)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{game_ref}/sessions/{session_id}/turns")
async def get_transcript_route(request: Request, game_ref: str, session_id: str):
    """Return the ordered turn log of one play-through."""
    try:
        return await get_transcript(request, game_ref, session_id)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
