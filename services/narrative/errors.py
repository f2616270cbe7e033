"""Error taxonomy shared by the narrative engine and its HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class NarrativeError(Exception):
    """Base class; `status_code` is used when the error is reported before streaming."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class ValidationError(NarrativeError):
    """Malformed or missing request fields."""

    status_code = 400

    def __init__(self, message: str, details: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.details = list(details or [])

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(NarrativeError):
    """Unknown session or game."""

    status_code = 404


class StoryCompleteError(NarrativeError):
    """The panel limit for a (session, game) pair has been reached."""

    status_code = 409

    def __init__(self, message: str = "Story is complete! View your finished comic.") -> None:
        super().__init__(message)

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["gameComplete"] = True
        return body


class GenerationError(NarrativeError):
    """The generation backend failed, timed out, or was cancelled."""

    status_code = 502


class StorageError(NarrativeError):
    """A read or write against the turn store failed."""

    status_code = 500
