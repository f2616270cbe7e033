"""Story panel generation built on OpenAI streaming Responses.

`StoryGenerator` is the contract the narrative engine depends on: a call
returns a lazy, finite, non-restartable async iterator of `StreamEvent`s
(`content` fragments, then exactly one terminal `end` or `error`). The
OpenAI implementation covers both the opening panel and mid-game replies.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from models.generation import START, AIPreferences, GenerationRequest
from models.stream_events import StreamEvent
from models.turn_record import ASSISTANT
from services.narrative.option_parser import parse_options
from services.openai.story_prompts import continue_game_prompt, start_game_prompt

LOGGER = logging.getLogger(__name__)

DEFAULT_STORY_MODEL = "gpt-4o-mini"
SUPPORTED_MODEL_PREFIXES = ("gpt", "o1", "o3", "o4")


class StoryGenerator(ABC):
    """Base contract for generation backends."""

    def resolve_backend(self, backend: Optional[str], preferences: AIPreferences) -> str:
        """Return the backend identifier that `stream` will actually use."""
        return preferences.preferred_model or backend or DEFAULT_STORY_MODEL

    @abstractmethod
    def stream(self, request: GenerationRequest) -> AsyncIterator[StreamEvent]:
        """Return a lazy iterator of content events closed by one `end` or `error`."""


def _message(role: str, text: str) -> Dict[str, Any]:
    content_type = "output_text" if role == ASSISTANT else "input_text"
    return {"type": "message", "role": role, "content": [{"type": content_type, "text": text}]}


class OpenAIStoryGenerator(StoryGenerator):
    """Stream story panels from the OpenAI Responses API."""

    def __init__(self, client: AsyncOpenAI, default_model: str = DEFAULT_STORY_MODEL, max_output_tokens: int = 1200) -> None:
        if client is None:
            raise ValueError("AsyncOpenAI client is required.")
        self.client = client
        self.default_model = default_model
        self.max_output_tokens = max_output_tokens

    def resolve_backend(self, backend: Optional[str], preferences: AIPreferences) -> str:
        candidate = (preferences.preferred_model or backend or "").strip()
        if candidate.startswith(SUPPORTED_MODEL_PREFIXES):
            return candidate
        if candidate:
            LOGGER.warning("Unsupported story model %r, falling back to %s", candidate, self.default_model)
        return self.default_model

    def build_input(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        """Return the Responses API `input` list for a start or continue request."""
        if request.mode == START:
            return [_message("user", start_game_prompt(request.game, request.thematic_context))]
        system = continue_game_prompt(
            request.game,
            request.panel_number,
            request.max_panels,
            request.is_final_panel,
            request.thematic_context,
        )
        history = [_message(msg.role, msg.content) for msg in request.context]
        return [_message("system", system), *history, _message("user", request.trigger_message)]

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamEvent]:
        """Yield content fragments, then `end` (with parsed options) or a single `error`."""
        model = self.resolve_backend(request.backend, request.preferences)
        failure = "Failed to start game" if request.mode == START else "Failed to process game input"
        start = time.time()
        parts: List[str] = []
        response_stream = None
        try:
            response_stream = await self.client.responses.create(
                model=model,
                input=self.build_input(request),
                max_output_tokens=request.preferences.max_output_tokens or self.max_output_tokens,
                stream=True,
            )
            async for event in response_stream:
                event_type = getattr(event, "type", None)
                if event_type == "response.output_text.delta":
                    delta = getattr(event, "delta", "") or ""
                    if delta:
                        parts.append(delta)
                        yield StreamEvent.text(delta)
                elif event_type in ("response.failed", "error"):
                    LOGGER.error("Story generation failed upstream (%s): %s", model, self._event_error(event))
                    yield StreamEvent.failure(failure)
                    return
        except Exception as exc:
            LOGGER.error("OpenAI Responses API error (%s): %s", model, exc)
            yield StreamEvent.failure(failure)
            return
        finally:
            close = getattr(response_stream, "close", None)
            if close is not None:
                try:
                    await close()
                except Exception as exc:
                    LOGGER.warning("Failed to close OpenAI response stream: %s", exc)

        LOGGER.info(
            "Panel %d/%d generated with %s in %.3fs",
            request.panel_number,
            request.max_panels,
            model,
            time.time() - start,
        )
        yield StreamEvent.end(parse_options("".join(parts)))

    @staticmethod
    def _event_error(event: Any) -> str:
        message = getattr(event, "message", None)
        if message:
            return str(message)
        response = getattr(event, "response", None)
        error = getattr(response, "error", None) if response is not None else None
        return str(getattr(error, "message", None) or error or "unknown error")
