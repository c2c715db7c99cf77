"""Tests for ReaderSession — the interactive continuation protocol."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from conftest import StubLLM
from tale_forge.choices import ChoiceResolutionError
from tale_forge.generation import GenerationRequestError, HttpGenerationClient
from tale_forge.llm import HttpLLM
from tale_forge.models import Choice, StorySegment
from tale_forge.pipeline import HttpMediaGenerator, ReaderSession, ReaderState, StoryWriter
from tale_forge.storage import StorageError


def _choices() -> list[Choice]:
    return [Choice(id=f"choice-{i}", text=f"Option {i}") for i in range(3)]


def _seed(storage, story, count: int, end: bool = False) -> None:
    for position in range(1, count + 1):
        is_end = end and position == count
        storage.create_segment(StorySegment(
            story_id=story.id,
            content=f"Segment {position} of the story.",
            position=position,
            choices=[] if is_end else _choices(),
            is_end=is_end,
        ))


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def on_complete() -> MagicMock:
    return MagicMock()


@pytest.fixture
def session(story, storage, generation, scheduler, on_complete, sleep) -> ReaderSession:
    return ReaderSession(
        story.id, storage, generation, scheduler,
        on_complete=on_complete, sleep=sleep,
    )


# ---------------------------------------------------------------------------
# Choosing
# ---------------------------------------------------------------------------

class TestSelectChoice:
    async def test_advances_to_new_segment(self, session, storage, story, generation) -> None:
        _seed(storage, story, 1)
        session.refresh()

        assert await session.select_choice("choice-2") is True

        assert generation.calls[0] == ("segment", story.id, 2)
        assert session.state is ReaderState.SEGMENT_READY
        assert session.current_segment.position == 2
        assert session.index == 1
        assert session.error is None

    async def test_every_new_segment_has_three_choices(self, session, storage, story) -> None:
        _seed(storage, story, 1)
        session.refresh()
        for _ in range(3):
            assert await session.select_choice("choice-0")
        non_endings = [s for s in session.segments if not s.is_end]
        assert len(non_endings) == 4
        assert all(len(s.choices) == 3 for s in non_endings)

    async def test_backend_failure_leaves_segments_untouched(self, session, storage, story, generation) -> None:
        _seed(storage, story, 1)
        session.refresh()
        before = list(session.segments)
        generation.segment_error = GenerationRequestError("model offline")

        assert await session.select_choice("choice-1") is False

        assert session.state is ReaderState.FAILED
        assert isinstance(session.error, GenerationRequestError)
        assert session.segments == before
        assert session.index == 0

    async def test_unknown_choice_makes_no_backend_call(self, session, storage, story, generation) -> None:
        _seed(storage, story, 1)
        session.refresh()

        assert await session.select_choice("choice-9") is False

        assert generation.calls == []
        assert session.state is ReaderState.FAILED
        assert isinstance(session.error, ChoiceResolutionError)

    async def test_choice_on_ending_segment_is_rejected(self, session, storage, story, generation) -> None:
        _seed(storage, story, 3, end=True)
        session.refresh()
        session.next_segment()
        session.next_segment()
        assert session.current_segment.is_end

        assert await session.select_choice("choice-0") is False

        assert generation.calls == []
        assert isinstance(session.error, ChoiceResolutionError)

    async def test_second_request_while_generating_is_refused(self, session, storage, story, generation) -> None:
        _seed(storage, story, 1)
        session.refresh()
        release = asyncio.Event()
        real_generate = generation.generate_segment

        async def slow_generate(story_id, choice_index=None):
            await release.wait()
            return await real_generate(story_id, choice_index)

        generation.generate_segment = slow_generate
        first = asyncio.create_task(session.select_choice("choice-0"))
        await asyncio.sleep(0)
        assert session.state is ReaderState.GENERATING

        assert await session.select_choice("choice-1") is False
        assert await session.request_ending() is False

        release.set()
        assert await first is True
        assert len(session.segments) == 2

    async def test_waits_for_segment_to_appear(self, session, storage, story, generation, sleep) -> None:
        _seed(storage, story, 1)
        session.refresh()
        generation.persist = False
        attempts = 0

        async def late_write(_seconds):
            nonlocal attempts
            attempts += 1
            if attempts == 2:
                storage.create_segment(StorySegment(
                    story_id=story.id, content="Late arrival", position=2, choices=_choices(),
                ))

        sleep.side_effect = late_write

        assert await session.select_choice("choice-0") is True
        assert session.current_segment.content == "Late arrival"
        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.0)

    async def test_gives_up_when_segment_never_appears(self, session, storage, story, generation, sleep) -> None:
        _seed(storage, story, 1)
        session.refresh()
        generation.persist = False

        assert await session.select_choice("choice-0") is False

        assert session.state is ReaderState.FAILED
        assert "after 5 refetches" in str(session.error)
        assert sleep.await_count == 4


# ---------------------------------------------------------------------------
# Endings and completion
# ---------------------------------------------------------------------------

class TestEnding:
    async def test_request_ending(self, session, storage, story, scheduler, on_complete) -> None:
        _seed(storage, story, 2)
        session.refresh()

        assert await session.request_ending() is True

        assert session.state is ReaderState.ENDING_READY
        assert session.current_segment.is_end
        on_complete.assert_not_called()
        scheduler.advance(1.5)
        on_complete.assert_not_called()
        scheduler.advance(0.5)
        on_complete.assert_called_once()
        called_story, final = on_complete.call_args[0]
        assert called_story.id == story.id
        assert final.is_end

    async def test_completion_fires_once(self, session, storage, story, scheduler, on_complete) -> None:
        _seed(storage, story, 2, end=True)
        session.refresh()
        session.next_segment()
        session.refresh()
        session.refresh()
        scheduler.advance(5)
        session.refresh()
        scheduler.advance(5)
        on_complete.assert_called_once()

    async def test_completion_gets_final_segment_after_stepping_back(
        self, session, storage, story, scheduler, on_complete
    ) -> None:
        _seed(storage, story, 3, end=True)
        session.refresh()
        session.next_segment()
        session.next_segment()
        session.previous_segment()
        assert session.current_segment.position == 2

        scheduler.advance(2.0)

        on_complete.assert_called_once()
        final = on_complete.call_args[0][1]
        assert final.position == 3
        assert final.is_end

    async def test_close_cancels_completion(self, session, storage, story, scheduler, on_complete) -> None:
        _seed(storage, story, 1, end=True)
        session.refresh()
        session.close()
        scheduler.advance(5)
        on_complete.assert_not_called()

    async def test_ending_failure(self, session, storage, story, generation) -> None:
        _seed(storage, story, 2)
        session.refresh()
        generation.ending_error = GenerationRequestError("no ending")

        assert await session.request_ending() is False
        assert session.state is ReaderState.FAILED
        assert len(session.segments) == 2


# ---------------------------------------------------------------------------
# Illustrations
# ---------------------------------------------------------------------------

class TestIllustrations:
    async def test_url_attached_after_generation(self, session, storage, story, generation) -> None:
        _seed(storage, story, 1)
        session.refresh()
        await session.select_choice("choice-0")
        await session.wait_for_illustrations()

        image_calls = [c for c in generation.calls if c[0] == "image"]
        new_segment = storage.list_segments(story.id)[1]
        assert image_calls == [(
            "image", new_segment.id,
            "Illustration for a children's story segment: " + new_segment.content[:100] + "...",
        )]
        assert new_segment.image_url == "https://images.example/pic.png"

    async def test_stored_image_prompt_preferred(self, session, storage, story, generation) -> None:
        _seed(storage, story, 1)
        session.refresh()
        await session.request_ending()
        await session.wait_for_illustrations()
        assert generation.calls[-1][2] == "Final illustration: Mira at home"

    async def test_failure_does_not_affect_segment_result(
        self, session, storage, story, failing_images
    ) -> None:
        _seed(storage, story, 1)
        session.refresh()

        assert await session.select_choice("choice-0") is True
        await session.wait_for_illustrations()

        assert session.state is ReaderState.SEGMENT_READY
        assert session.error is None
        assert storage.list_segments(story.id)[1].image_url is None

    async def test_unexpected_exception_is_swallowed(self, session, storage, story, generation) -> None:
        _seed(storage, story, 1)
        session.refresh()
        generation.image_error = RuntimeError("socket closed")

        assert await session.select_choice("choice-0") is True
        await session.wait_for_illustrations()
        assert session.error is None

    async def test_no_url_leaves_segment_alone(self, session, storage, story, generation) -> None:
        _seed(storage, story, 1)
        session.refresh()
        generation.image_url = None
        await session.select_choice("choice-0")
        await session.wait_for_illustrations()
        assert storage.list_segments(story.id)[1].image_url is None


# ---------------------------------------------------------------------------
# Audio and navigation
# ---------------------------------------------------------------------------

class TestAudio:
    async def test_request_audio(self, session, storage, story) -> None:
        _seed(storage, story, 1)
        session.refresh()
        assert await session.request_audio() == "https://audio.example/story.mp3"

    async def test_audio_failure_recorded(self, session, storage, story, generation) -> None:
        _seed(storage, story, 1)
        session.refresh()
        generation.audio_error = GenerationRequestError("tts down")
        assert await session.request_audio() is None
        assert isinstance(session.error, GenerationRequestError)


class TestNavigation:
    def test_empty_story(self, session) -> None:
        session.refresh()
        assert session.current_segment is None
        assert session.has_next is False
        assert session.total_words == 0

    def test_walk_forward_and_back(self, session, storage, story) -> None:
        _seed(storage, story, 3)
        session.refresh()
        assert session.current_segment.position == 1
        assert session.next_segment().position == 2
        assert session.next_segment().position == 3
        assert session.has_next is False
        assert session.next_segment().position == 3
        assert session.previous_segment().position == 2
        assert session.restart().position == 1
        assert session.previous_segment().position == 1

    def test_total_words(self, session, storage, story) -> None:
        _seed(storage, story, 2)
        session.refresh()
        assert session.total_words == 10

    def test_missing_story(self, storage, generation, scheduler) -> None:
        session = ReaderSession("ghost", storage, generation, scheduler)
        with pytest.raises(LookupError):
            session.refresh()


# ---------------------------------------------------------------------------
# Transport failures through real clients
# ---------------------------------------------------------------------------

def _html_reply() -> MagicMock:
    resp = MagicMock(status_code=200)
    resp.json.side_effect = json.JSONDecodeError("Expecting value", "<html>oops</html>", 0)
    return resp


class TestTransportFailures:
    @pytest.fixture
    def writer_session(self, story, storage, scheduler, sleep) -> ReaderSession:
        writer = StoryWriter(storage, HttpLLM("http://localhost:5001"))
        _seed(storage, story, 1)
        session = ReaderSession(story.id, storage, writer, scheduler, sleep=sleep)
        session.refresh()
        return session

    async def test_non_json_text_backend(self, writer_session, storage, story) -> None:
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_html_reply())):
            assert await writer_session.select_choice("choice-0") is False

        assert writer_session.state is ReaderState.FAILED
        assert isinstance(writer_session.error, GenerationRequestError)
        assert "invalid JSON" in str(writer_session.error)
        assert len(storage.list_segments(story.id)) == 1

    async def test_connection_reset(self, writer_session) -> None:
        mock_post = AsyncMock(side_effect=httpx.ReadError("connection reset"))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await writer_session.select_choice("choice-0") is False
            assert await writer_session.request_ending() is False

        assert writer_session.state is ReaderState.FAILED
        assert "connection reset" in str(writer_session.error)

    @pytest.mark.parametrize("outcome", [
        {"side_effect": httpx.RemoteProtocolError("peer closed")},
        {"return_value": _html_reply()},
    ])
    async def test_remote_generation_service(self, story, storage, scheduler, sleep, outcome) -> None:
        _seed(storage, story, 1)
        client = HttpGenerationClient("http://localhost:8000/api")
        session = ReaderSession(story.id, storage, client, scheduler, sleep=sleep)
        session.refresh()

        with patch("httpx.AsyncClient.post", AsyncMock(**outcome)):
            assert await session.select_choice("choice-1") is False

        assert session.state is ReaderState.FAILED
        assert isinstance(session.error, GenerationRequestError)


class TestAudioFailures:
    async def test_story_deleted(self, story, storage, scheduler) -> None:
        _seed(storage, story, 1)
        writer = StoryWriter(storage, StubLLM({}), speaker=AsyncMock(return_value="https://a/1.mp3"))
        session = ReaderSession(story.id, storage, writer, scheduler)
        session.refresh()
        storage.delete_story(story.id)

        assert await session.request_audio() is None
        assert isinstance(session.error, StorageError)

    async def test_non_json_media_backend(self, story, storage, scheduler) -> None:
        _seed(storage, story, 1)
        speaker = HttpMediaGenerator("http://media.local/tts")
        session = ReaderSession(story.id, storage, StoryWriter(storage, StubLLM({}), speaker=speaker), scheduler)
        session.refresh()

        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_html_reply())):
            assert await session.request_audio() is None

        assert isinstance(session.error, GenerationRequestError)
        assert storage.get_story(story.id).audio_url is None
