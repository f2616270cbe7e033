"""FastAPI routes for session registration."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.game_controller import create_session

router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionPayload(BaseModel):
	sessionId: str
	userId: Optional[str] = None


@router.post("", status_code=201)
async def create_session_route(request: Request, payload: SessionPayload):
	try:
		return await create_session(request, payload.sessionId, payload.userId)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
