"""Streaming session controller: one story panel per request.

`StreamingSessionController` holds the shared collaborators (turn store,
generator, limits) and opens a `TurnStream` per request. A `TurnStream` is
the state machine for that request alone:

    Idle -> Validating -> Persisting -> Generating -> Accumulating
         -> Finalizing -> Closed

with `ErrorClosed` reachable from every state after Idle. `prepare()` covers
validation, the panel check and the trigger-turn write, and raises before any
stream is opened. `frames()` then yields server-sent event frames; a producer
task pulls the generator under its own deadline, so a caller that stops
reading cannot keep the upstream generation open. The
assistant turn is written once, after a clean `end`, and never on the error,
timeout or disconnect paths.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from dal.turn_dal import TurnDAL
from models.generation import CONTINUE, START, AIPreferences, GenerationRequest
from models.session_models import GameRecord, SessionRecord
from models.stream_events import CONTENT, END, StreamEvent
from models.turn_record import ASSISTANT, SYSTEM, USER, USER_INPUT_MODEL, TurnRecord
from services.narrative.context_assembler import DEFAULT_CONTEXT_LIMIT, ContextAssembler
from services.narrative.errors import (
    GenerationError,
    NarrativeError,
    StorageError,
    StoryCompleteError,
    ValidationError,
)
from services.narrative.panel_counter import DEFAULT_MAX_PANELS, PanelCounter
from services.openai.story_generator import StoryGenerator

LOGGER = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


class SessionPhase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    GENERATING = "generating"
    ACCUMULATING = "accumulating"
    FINALIZING = "finalizing"
    CLOSED = "closed"
    ERROR_CLOSED = "error_closed"


_TRANSITIONS = {
    SessionPhase.IDLE: {SessionPhase.VALIDATING},
    SessionPhase.VALIDATING: {SessionPhase.PERSISTING, SessionPhase.ERROR_CLOSED},
    SessionPhase.PERSISTING: {SessionPhase.GENERATING, SessionPhase.ERROR_CLOSED},
    SessionPhase.GENERATING: {SessionPhase.ACCUMULATING, SessionPhase.FINALIZING, SessionPhase.ERROR_CLOSED},
    SessionPhase.ACCUMULATING: {SessionPhase.ACCUMULATING, SessionPhase.FINALIZING, SessionPhase.ERROR_CLOSED},
    SessionPhase.FINALIZING: {SessionPhase.CLOSED, SessionPhase.ERROR_CLOSED},
    SessionPhase.CLOSED: set(),
    SessionPhase.ERROR_CLOSED: set(),
}

TERMINAL_PHASES = (SessionPhase.CLOSED, SessionPhase.ERROR_CLOSED)


class TurnStream:
    """State machine and accumulator for a single start or continue request."""

    def __init__(
        self,
        *,
        turns: TurnDAL,
        generator: StoryGenerator,
        session: SessionRecord,
        game: GameRecord,
        mode: str,
        message: str = "",
        preferences: Optional[AIPreferences] = None,
        max_panels: int = DEFAULT_MAX_PANELS,
        context_limit: int = DEFAULT_CONTEXT_LIMIT,
        generation_timeout: float = 120.0,
    ) -> None:
        if mode not in (START, CONTINUE):
            raise ValueError(f"Unknown generation mode: {mode!r}")
        self.turns = turns
        self.generator = generator
        self.session = session
        self.game = game
        self.mode = mode
        self.message = message
        self.preferences = preferences or AIPreferences()
        self.max_panels = max_panels
        self.context_limit = context_limit
        self.generation_timeout = generation_timeout

        self.phase = SessionPhase.IDLE
        self.trigger_turn_id: Optional[int] = None
        self.assistant_turn_id: Optional[int] = None
        self.request: Optional[GenerationRequest] = None
        self._parts: List[str] = []
        self._pending_error: Optional[StreamEvent] = None

    @property
    def accumulated(self) -> str:
        return "".join(self._parts)

    def _transition(self, target: SessionPhase) -> None:
        if target not in _TRANSITIONS[self.phase]:
            raise RuntimeError(f"Illegal transition {self.phase.value} -> {target.value}")
        self.phase = target

    def _fail(self) -> None:
        if self.phase not in TERMINAL_PHASES:
            self._transition(SessionPhase.ERROR_CLOSED)

    async def prepare(self) -> None:
        """Validate, check the panel limit, assemble context and persist the trigger turn.

        Raises:
            ValidationError: For an empty continue message.
            StoryCompleteError: For a start request on an exhausted pair.
            StorageError: If the history read or trigger write failed.
        """
        self._transition(SessionPhase.VALIDATING)
        message = self.message.strip()
        if self.mode == CONTINUE and not message:
            self._fail()
            raise ValidationError("Invalid request data", ["message: must not be empty"])

        session_id, game_id = self.session.session_id, self.game.id
        try:
            try:
                panels = await PanelCounter(self.turns, self.max_panels).ensure_open(session_id, game_id)
            except StoryCompleteError as exc:
                if self.mode == START:
                    raise
                # Continue requests report completion inside the stream; nothing is written.
                self._pending_error = StreamEvent.failure(exc.message, game_complete=True)
                return
            LOGGER.debug("Session %s game %s panel state %s", session_id, game_id, panels.label)

            context = []
            if self.mode == CONTINUE:
                context = await ContextAssembler(self.turns, self.context_limit).assemble(session_id, game_id)
            backend = self.generator.resolve_backend(self.game.prompt_model, self.preferences)

            self._transition(SessionPhase.PERSISTING)
            if self.mode == START:
                trigger = TurnRecord(
                    id=None,
                    session_id=session_id,
                    game_id=game_id,
                    role=SYSTEM,
                    content=f"Starting game: {self.game.title}",
                    model=f"{backend}:StartGame-v2",
                    user_id=self.session.user_id,
                )
            else:
                trigger = TurnRecord(
                    id=None,
                    session_id=session_id,
                    game_id=game_id,
                    role=USER,
                    content=message,
                    model=USER_INPUT_MODEL,
                    user_id=self.session.user_id,
                )
            self.trigger_turn_id = await self.turns.append(trigger)
        except NarrativeError:
            self._fail()
            raise

        self.request = GenerationRequest(
            mode=self.mode,
            game=self.game,
            backend=backend,
            panel_number=panels.next_panel,
            max_panels=self.max_panels,
            trigger_message=message,
            context=context,
            thematic_context=self.game.article_context,
            preferences=self.preferences,
        )

    async def frames(self, is_disconnected: Optional[DisconnectCheck] = None) -> AsyncIterator[str]:
        """Yield SSE frames until a terminal frame has been sent.

        Args:
            is_disconnected: Optional coroutine function polled before each frame;
                when it returns True the generation is cancelled silently.
        """
        if self._pending_error is not None:
            self._fail()
            yield self._pending_error.to_frame()
            return
        if self.phase != SessionPhase.PERSISTING or self.request is None:
            raise RuntimeError("prepare() must complete before streaming")

        self._transition(SessionPhase.GENERATING)
        events = self.generator.stream(self.request)
        queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue(maxsize=1)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.generation_timeout
        producer = asyncio.ensure_future(self._pump(events, queue, self.generation_timeout))
        try:
            while True:
                event = await self._next_event(queue, producer, deadline - loop.time())
                if is_disconnected is not None and await is_disconnected():
                    LOGGER.info(
                        "Caller disconnected from session %s game %s; generation cancelled",
                        self.session.session_id,
                        self.game.id,
                    )
                    self._fail()
                    return
                if event.type == CONTENT:
                    self._transition(SessionPhase.ACCUMULATING)
                    self._parts.append(event.content)
                    yield event.to_frame()
                elif event.type == END:
                    self._transition(SessionPhase.FINALIZING)
                    self.assistant_turn_id = await self._finalize()
                    self._transition(SessionPhase.CLOSED)
                    yield event.to_frame()
                    return
                else:
                    raise GenerationError(event.error or "Generation failed")
        except NarrativeError as exc:
            self._fail()
            LOGGER.error(
                "Turn stream for session %s game %s closed with %s: %s",
                self.session.session_id,
                self.game.id,
                type(exc).__name__,
                exc.message,
            )
            yield StreamEvent.failure(exc.message, game_complete=isinstance(exc, StoryCompleteError)).to_frame()
        except Exception:
            self._fail()
            LOGGER.exception("Unexpected turn stream failure for session %s", self.session.session_id)
            yield StreamEvent.failure("Failed to process message").to_frame()
        finally:
            # Covers cancellation and early close by the caller as well.
            self._fail()
            if not producer.done():
                producer.cancel()
            await asyncio.wait([producer])
            if not producer.cancelled() and producer.exception() is not None:
                LOGGER.debug("Generation for session %s ended with %r", self.session.session_id, producer.exception())

    async def _pump(
        self, events: AsyncIterator[StreamEvent], queue: "asyncio.Queue[StreamEvent]", timeout: float
    ) -> None:
        """Pull generator events into `queue` until a terminal one, within `timeout` seconds.

        Runs apart from the caller, so a caller that stops reading cannot keep
        the upstream generation open past the deadline.
        """
        try:
            await asyncio.wait_for(self._produce(events, queue), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Generation for session %s game %s exceeded %.1fs", self.session.session_id, self.game.id, timeout
            )
            raise GenerationError("Generation timed out") from None

    @staticmethod
    async def _produce(events: AsyncIterator[StreamEvent], queue: "asyncio.Queue[StreamEvent]") -> None:
        try:
            while True:
                try:
                    event = await events.__anext__()
                except StopAsyncIteration:
                    raise GenerationError("Generation ended before the panel was complete") from None
                await queue.put(event)
                if event.is_terminal:
                    return
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

    @staticmethod
    async def _next_event(
        queue: "asyncio.Queue[StreamEvent]", producer: "asyncio.Future[None]", remaining: float
    ) -> StreamEvent:
        if remaining <= 0:
            raise GenerationError("Generation timed out")
        getter = asyncio.ensure_future(queue.get())
        try:
            done, _ = await asyncio.wait({getter, producer}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not getter.done():
                getter.cancel()
        if getter in done:
            return getter.result()
        if producer in done:
            error = producer.exception()
            if error is not None:
                raise error
            raise GenerationError("Generation ended before the panel was complete")
        raise GenerationError("Generation timed out")

    async def _finalize(self) -> int:
        if self.assistant_turn_id is not None:
            raise RuntimeError("Assistant turn already persisted for this request")
        record = TurnRecord(
            id=None,
            session_id=self.session.session_id,
            game_id=self.game.id,
            role=ASSISTANT,
            content=self.accumulated,
            model=self.request.backend,
            parent_id=self.trigger_turn_id,
            user_id=self.session.user_id,
        )
        try:
            return await self.turns.append_assistant_turn(record, self.max_panels)
        except StorageError:
            LOGGER.error("Assistant turn for session %s was not persisted", self.session.session_id)
            raise


class StreamingSessionController:
    """Open per-request turn streams against shared collaborators."""

    def __init__(
        self,
        turns: TurnDAL,
        generator: StoryGenerator,
        *,
        max_panels: int = DEFAULT_MAX_PANELS,
        context_limit: int = DEFAULT_CONTEXT_LIMIT,
        generation_timeout: float = 120.0,
    ) -> None:
        self.turns = turns
        self.generator = generator
        self.max_panels = max_panels
        self.context_limit = context_limit
        self.generation_timeout = generation_timeout

    def _stream(self, session: SessionRecord, game: GameRecord, mode: str, message: str, preferences) -> TurnStream:
        return TurnStream(
            turns=self.turns,
            generator=self.generator,
            session=session,
            game=game,
            mode=mode,
            message=message,
            preferences=preferences,
            max_panels=self.max_panels,
            context_limit=self.context_limit,
            generation_timeout=self.generation_timeout,
        )

    async def open_start(
        self, session: SessionRecord, game: GameRecord, preferences: Optional[AIPreferences] = None
    ) -> TurnStream:
        """Prepare the opening panel; raises StoryCompleteError on an exhausted pair."""
        stream = self._stream(session, game, START, "", preferences)
        await stream.prepare()
        return stream

    async def open_continue(
        self,
        session: SessionRecord,
        game: GameRecord,
        message: str,
        preferences: Optional[AIPreferences] = None,
    ) -> TurnStream:
        """Prepare a reply panel; an exhausted pair yields a single completion frame."""
        stream = self._stream(session, game, CONTINUE, message, preferences)
        await stream.prepare()
        return stream
