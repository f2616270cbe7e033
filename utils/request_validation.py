"""Validation helpers for inbound game-play requests.

Each validator takes the decoded JSON body and returns either `Ok(request)`
or `Invalid(details)`; nothing is raised, so callers decide how to reject.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar, Union
from uuid import UUID

T = TypeVar("T")


@dataclass(frozen=True)
class StartRequest:
    session_id: str
    game_ref: str


@dataclass(frozen=True)
class ContinueRequest:
    session_id: str
    game_id: str
    message: str


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    details: List[str] = field(default_factory=list)


ValidationResult = Union[Ok[T], Invalid]


def is_uuid(value: Any) -> bool:
    """Return True for a canonical hyphenated UUID string."""
    if not isinstance(value, str):
        return False
    try:
        return str(UUID(value)) == value.lower()
    except ValueError:
        return False


def _session_id(body: Any, errors: List[str]) -> Optional[str]:
    value = body.get("sessionId") if isinstance(body, dict) else None
    if value is None:
        errors.append("sessionId: required")
        return None
    if not is_uuid(value):
        errors.append("sessionId: must be a UUID")
        return None
    return value


def _non_empty(body: Any, key: str, errors: List[str]) -> Optional[str]:
    value = body.get(key) if isinstance(body, dict) else None
    if value is None:
        errors.append(f"{key}: required")
        return None
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{key}: must be a non-empty string")
        return None
    return value


def validate_start(body: Any, game_ref: str) -> ValidationResult:
    """Validate a start-game body (`{"sessionId": uuid}`) plus the game path segment."""
    errors: List[str] = []
    if not isinstance(body, dict):
        return Invalid(["body: must be a JSON object"])
    session_id = _session_id(body, errors)
    if not game_ref or not game_ref.strip():
        errors.append("game: required")
    if errors:
        return Invalid(errors)
    return Ok(StartRequest(session_id=session_id, game_ref=game_ref.strip()))


def validate_continue(body: Any) -> ValidationResult:
    """Validate a chat body (`{"sessionId": uuid, "gameId": str, "message": str}`)."""
    if not isinstance(body, dict):
        return Invalid(["body: must be a JSON object"])
    errors: List[str] = []
    session_id = _session_id(body, errors)
    game_id = _non_empty(body, "gameId", errors)
    message = _non_empty(body, "message", errors)
    if errors:
        return Invalid(errors)
    return Ok(ContinueRequest(session_id=session_id, game_id=game_id.strip(), message=message.strip()))
