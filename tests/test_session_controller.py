import asyncio

import pytest

from conftest import GAME_ID, SESSION_ID, ScriptedGenerator, parse_frames
from models.generation import CONTINUE, START, AIPreferences
from models.stream_events import StoryOption, StreamEvent
from models.turn_record import ASSISTANT, SYSTEM, USER, USER_INPUT_MODEL
from services.narrative.errors import StorageError, StoryCompleteError, ValidationError
from services.narrative.session_controller import SessionPhase, StreamingSessionController, TurnStream

OPTIONS = [StoryOption(1, "Crack the safe"), StoryOption(2, "Call it off")]


def collect(stream, is_disconnected=None):
    async def run():
        return [frame async for frame in stream.frames(is_disconnected)]

    return parse_frames(asyncio.run(run()))


@pytest.fixture
def controller_for(turns):
    def _build(generator, **kwargs):
        kwargs.setdefault("max_panels", 5)
        kwargs.setdefault("context_limit", 20)
        return StreamingSessionController(turns, generator, **kwargs)

    return _build


class TestContinue:
    def test_fragments_are_forwarded_in_order_and_persisted_once(self, turns, seeded, controller_for):
        session, game = seeded
        generator = ScriptedGenerator([StreamEvent.text("a"), StreamEvent.text("b"), StreamEvent.end(OPTIONS)])
        stream = asyncio.run(controller_for(generator).open_continue(session, game, "  open the vault  "))

        frames = collect(stream)

        assert frames == [
            {"type": "content", "content": "a"},
            {"type": "content", "content": "b"},
            {"type": "end", "options": [{"id": 1, "text": "Crack the safe"}, {"id": 2, "text": "Call it off"}]},
        ]
        history = asyncio.run(turns.list_all(SESSION_ID, GAME_ID))
        assert [(t.role, t.content) for t in history] == [(USER, "open the vault"), (ASSISTANT, "ab")]
        assert history[0].model == USER_INPUT_MODEL
        assert history[0].user_id == "player-1"
        assert history[1].parent_id == history[0].id
        assert history[1].model == "gpt-4o-mini"
        assert stream.phase is SessionPhase.CLOSED
        assert stream.assistant_turn_id == history[1].id

    def test_prepare_persists_trigger_without_generating(self, turns, seeded, controller_for):
        session, game = seeded
        generator = ScriptedGenerator([StreamEvent.end()])
        stream = asyncio.run(controller_for(generator).open_continue(session, game, "next move"))

        assert generator.requests == []
        assert stream.phase is SessionPhase.PERSISTING
        assert stream.trigger_turn_id is not None
        assert [t.role for t in asyncio.run(turns.list_all(SESSION_ID, GAME_ID))] == [USER]

    def test_generation_request_contents(self, turns, add_turns, seeded, controller_for):
        session, game = seeded
        add_turns(2)
        generator = ScriptedGenerator([StreamEvent.end()])
        stream = asyncio.run(
            controller_for(generator).open_continue(
                session, game, "next move", AIPreferences(preferred_model="gpt-4.1")
            )
        )
        collect(stream)

        request = generator.requests[0]
        assert request.mode == CONTINUE
        assert request.panel_number == 3
        assert request.trigger_message == "next move"
        assert request.backend == "gpt-4.1"
        assert request.thematic_context == game.article_context
        assert [m.content for m in request.context] == ["move 0", "panel 0", "move 1", "panel 1"]

    def test_error_event_closes_stream_without_assistant_turn(self, turns, seeded, controller_for):
        session, game = seeded
        generator = ScriptedGenerator(
            [StreamEvent.text("partial"), StreamEvent.failure("Failed to process game input")]
        )
        stream = asyncio.run(controller_for(generator).open_continue(session, game, "go"))

        frames = collect(stream)

        assert frames == [
            {"type": "content", "content": "partial"},
            {"type": "error", "error": "Failed to process game input"},
        ]
        history = asyncio.run(turns.list_all(SESSION_ID, GAME_ID))
        assert [t.role for t in history] == [USER]
        assert stream.phase is SessionPhase.ERROR_CLOSED
        assert stream.assistant_turn_id is None

    def test_stream_ending_without_terminal_event_is_an_error(self, turns, seeded, controller_for):
        session, game = seeded
        generator = ScriptedGenerator([StreamEvent.text("a")])
        stream = asyncio.run(controller_for(generator).open_continue(session, game, "go"))

        frames = collect(stream)

        assert frames[-1]["type"] == "error"
        assert asyncio.run(turns.count_assistant_turns(SESSION_ID, GAME_ID)) == 0

    def test_exhausted_story_yields_one_completion_frame_and_writes_nothing(
        self, turns, add_turns, seeded, controller_for
    ):
        session, game = seeded
        add_turns(5)
        before = asyncio.run(turns.list_all(SESSION_ID, GAME_ID))
        generator = ScriptedGenerator([StreamEvent.text("never"), StreamEvent.end()])

        stream = asyncio.run(controller_for(generator).open_continue(session, game, "one more"))
        frames = collect(stream)

        assert frames == [
            {"type": "error", "error": "Story is complete! View your finished comic.", "gameComplete": True}
        ]
        assert asyncio.run(turns.list_all(SESSION_ID, GAME_ID)) == before
        assert generator.requests == []
        assert stream.phase is SessionPhase.ERROR_CLOSED

    def test_empty_message_is_rejected_before_any_write(self, turns, seeded, controller_for):
        session, game = seeded
        generator = ScriptedGenerator([StreamEvent.end()])
        with pytest.raises(ValidationError):
            asyncio.run(controller_for(generator).open_continue(session, game, "   "))
        assert asyncio.run(turns.list_all(SESSION_ID, GAME_ID)) == []

    def test_losing_the_last_panel_race_reports_completion(self, turns, add_turns, seeded, controller_for):
        session, game = seeded
        add_turns(4)
        controller = controller_for(ScriptedGenerator([StreamEvent.text("x"), StreamEvent.end()]))
        first = asyncio.run(controller.open_continue(session, game, "first"))
        second = asyncio.run(controller.open_continue(session, game, "second"))

        assert collect(first)[-1]["type"] == "end"
        frames = collect(second)

        assert frames[-1] == {
            "type": "error",
            "error": "Story is complete! View your finished comic.",
            "gameComplete": True,
        }
        assert asyncio.run(turns.count_assistant_turns(SESSION_ID, GAME_ID)) == 5
        assert second.phase is SessionPhase.ERROR_CLOSED


class TestStart:
    def test_opening_panel_is_parented_to_the_system_turn(self, turns, seeded, controller_for):
        session, game = seeded
        generator = ScriptedGenerator([StreamEvent.text("Rain on neon."), StreamEvent.end(OPTIONS)])
        stream = asyncio.run(controller_for(generator).open_start(session, game))

        frames = collect(stream)

        assert [f["type"] for f in frames] == ["content", "end"]
        request = generator.requests[0]
        assert request.mode == START
        assert request.panel_number == 1
        assert request.context == []
        history = asyncio.run(turns.list_all(SESSION_ID, GAME_ID))
        system, assistant = history
        assert system.role == SYSTEM
        assert system.content == "Starting game: The Last Heist"
        assert system.model == "gpt-4o-mini:StartGame-v2"
        assert assistant.parent_id == system.id
        assert assistant.content == "Rain on neon."

    def test_start_on_exhausted_story_raises_before_writing(self, turns, add_turns, seeded, controller_for):
        session, game = seeded
        add_turns(5)
        generator = ScriptedGenerator([StreamEvent.end()])
        with pytest.raises(StoryCompleteError):
            asyncio.run(controller_for(generator).open_start(session, game))
        assert asyncio.run(turns.count_assistant_turns(SESSION_ID, GAME_ID)) == 5
        assert len(asyncio.run(turns.list_all(SESSION_ID, GAME_ID))) == 10


class TestCancellation:
    def test_timeout_closes_generation_without_assistant_turn(self, turns, seeded, controller_for):
        session, game = seeded
        generator = ScriptedGenerator([StreamEvent.text("slow")], hang=True)
        stream = asyncio.run(
            controller_for(generator, generation_timeout=0.05).open_continue(session, game, "wait")
        )

        frames = collect(stream)

        assert frames == [
            {"type": "content", "content": "slow"},
            {"type": "error", "error": "Generation timed out"},
        ]
        assert generator.closed == 1
        assert asyncio.run(turns.count_assistant_turns(SESSION_ID, GAME_ID)) == 0

    def test_disconnect_stops_silently_without_assistant_turn(self, turns, seeded, controller_for):
        session, game = seeded
        generator = ScriptedGenerator([StreamEvent.text("a"), StreamEvent.text("b"), StreamEvent.end()])
        stream = asyncio.run(controller_for(generator).open_continue(session, game, "bye"))
        checks = iter([False, True, True])

        async def is_disconnected():
            return next(checks)

        frames = collect(stream, is_disconnected)

        assert frames == [{"type": "content", "content": "a"}]
        assert generator.closed == 1
        assert stream.phase is SessionPhase.ERROR_CLOSED
        assert asyncio.run(turns.count_assistant_turns(SESSION_ID, GAME_ID)) == 0


    def test_stalled_caller_does_not_hold_generation_open(self, turns, seeded, controller_for):
        session, game = seeded
        generator = ScriptedGenerator([StreamEvent.text("a"), StreamEvent.text("b"), StreamEvent.end()])
        stream = asyncio.run(
            controller_for(generator, generation_timeout=0.1).open_continue(session, game, "hold on")
        )

        async def stall_after_first_frame():
            frames = stream.frames()
            first = await frames.__anext__()
            await asyncio.sleep(0.4)
            closed_while_stalled = generator.closed
            rest = [frame async for frame in frames]
            return [first, *rest], closed_while_stalled

        raw, closed_while_stalled = asyncio.run(stall_after_first_frame())
        frames = parse_frames(raw)

        assert closed_while_stalled == 1
        assert frames[0] == {"type": "content", "content": "a"}
        assert frames[-1] == {"type": "error", "error": "Generation timed out"}
        assert all(frame["type"] != "end" for frame in frames)
        assert stream.phase is SessionPhase.ERROR_CLOSED
        assert asyncio.run(turns.count_assistant_turns(SESSION_ID, GAME_ID)) == 0


class TestStorageFailure:
    def test_assistant_write_failure_becomes_error_frame(self, turns, seeded, controller_for, monkeypatch):
        session, game = seeded

        async def failing_append(record, max_panels):
            raise StorageError("Failed to persist assistant turn")

        monkeypatch.setattr(turns, "append_assistant_turn", failing_append)
        generator = ScriptedGenerator([StreamEvent.text("a"), StreamEvent.end(OPTIONS)])
        stream = asyncio.run(controller_for(generator).open_continue(session, game, "go"))

        frames = collect(stream)

        assert frames == [
            {"type": "content", "content": "a"},
            {"type": "error", "error": "Failed to persist assistant turn"},
        ]
        assert stream.phase is SessionPhase.ERROR_CLOSED
        assert stream.assistant_turn_id is None
        assert asyncio.run(turns.count_assistant_turns(SESSION_ID, GAME_ID)) == 0


class TestTurnStream:
    def test_frames_before_prepare_is_an_error(self, turns, seeded):
        session, game = seeded
        stream = TurnStream(
            turns=turns, generator=ScriptedGenerator([]), session=session, game=game, mode=CONTINUE, message="hi"
        )
        with pytest.raises(RuntimeError):
            collect(stream)

    def test_unknown_mode(self, turns, seeded):
        session, game = seeded
        with pytest.raises(ValueError):
            TurnStream(turns=turns, generator=ScriptedGenerator([]), session=session, game=game, mode="resume")
