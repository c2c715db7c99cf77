"""Tests for StoryWriter — continuation, choices, endings and media."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from conftest import StubLLM
from tale_forge.generation import GenerationRequestError, IllustrationError
from tale_forge.llm import LLMError
from tale_forge.models import CreationMode, Story
from tale_forge.pipeline import HttpMediaGenerator, StoryWriter
from tale_forge.storage import StorageError

OPENING = "Mira found a shiny door in the middle of the forest."
NEXT = "Mira knocked, and a friendly owl opened the door."
CHOICES = "1. Open the door\n2. Knock politely first\n3. Walk around the tree"
ENDING = "Mira flew home on the owl's back and told her family everything."


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------

class TestGenerateSegment:
    async def test_first_segment_saved_with_three_choices(self, storage, story):
        llm = StubLLM({"segment": [OPENING], "choices": [CHOICES]})
        writer = StoryWriter(storage, llm)

        payload = await writer.generate_segment(story.id)

        saved = storage.list_segments(story.id)
        assert [s.id for s in saved] == [payload.segment.id]
        assert saved[0].position == 1
        assert saved[0].content == OPENING
        assert [c.text for c in saved[0].choices] == [
            "Open the door", "Knock politely first", "Walk around the tree",
        ]
        assert [c.id for c in saved[0].choices] == ["choice-0", "choice-1", "choice-2"]
        assert saved[0].image_prompt.startswith("Illustration for a children's story segment: Mira found")

    async def test_segment_prompt_contents(self, storage, story):
        llm = StubLLM({"segment": [OPENING], "choices": [CHOICES]})
        await StoryWriter(storage, llm).generate_segment(story.id)

        prompt = llm.prompts("segment")[0]
        assert story.prompt in prompt
        assert "about 80 words" in prompt
        assert "Previous story segment" not in prompt
        assert "The reader chose" not in prompt
        assert "child aged 5" in llm.prompts("choices")[0]
        assert OPENING in llm.prompts("choices")[0]

    async def test_continuation_includes_previous_text_and_choice(self, storage, story):
        llm = StubLLM({"segment": [OPENING, NEXT], "choices": [CHOICES, CHOICES]})
        writer = StoryWriter(storage, llm)
        await writer.generate_segment(story.id)

        payload = await writer.generate_segment(story.id, 1)

        prompt = llm.prompts("segment")[1]
        assert f"Previous story segment: {OPENING}" in prompt
        assert "The reader chose: Knock politely first" in prompt
        assert payload.segment.position == 2

    async def test_out_of_range_choice_continues_without_it(self, storage, story):
        llm = StubLLM({"segment": [OPENING, NEXT], "choices": [CHOICES, CHOICES]})
        writer = StoryWriter(storage, llm)
        await writer.generate_segment(story.id)

        payload = await writer.generate_segment(story.id, 7)

        assert "The reader chose" not in llm.prompts("segment")[1]
        assert payload.segment.position == 2

    async def test_choice_stage_failure_uses_fallbacks(self, storage, story):
        llm = StubLLM({"segment": [OPENING], "choices": [LLMError("overloaded")]})
        payload = await StoryWriter(storage, llm).generate_segment(story.id)
        assert [c.text for c in payload.choices] == [
            "Go through the door", "Look for another way", "Wait and listen first",
        ]

    async def test_segment_stage_failure_raises(self, storage, story):
        llm = StubLLM({"segment": [LLMError("Cannot connect")]})
        with pytest.raises(GenerationRequestError, match="segment generation failed"):
            await StoryWriter(storage, llm).generate_segment(story.id)
        assert storage.list_segments(story.id) == []

    async def test_unknown_story(self, storage):
        with pytest.raises(StorageError):
            await StoryWriter(storage, StubLLM({})).generate_segment("missing")


# ---------------------------------------------------------------------------
# Endings
# ---------------------------------------------------------------------------

class TestGenerateEnding:
    async def test_ending_saved_as_final_segment(self, storage, story):
        llm = StubLLM({"segment": [OPENING], "choices": [CHOICES], "ending": [ENDING]})
        writer = StoryWriter(storage, llm)
        await writer.generate_segment(story.id)

        payload = await writer.generate_ending(story.id)

        assert payload.is_end
        assert payload.segment.position == 2
        assert payload.segment.is_end
        assert payload.segment.choices == []
        assert payload.image_prompt.startswith("Final illustration: Mira flew home")

    async def test_ending_prompt(self, storage, story):
        llm = StubLLM({"segment": [OPENING], "choices": [CHOICES], "ending": [ENDING]})
        writer = StoryWriter(storage, llm)
        await writer.generate_segment(story.id)
        await writer.generate_ending(story.id)

        prompt = llm.prompts("ending")[0]
        assert 'Title: "Mira\'s Space Adventure"' in prompt
        assert "Write approximately 110 words" in prompt
        assert "Target Age: 5 years old" in prompt
        assert "Use simple vocabulary (2-3 syllables)" in prompt
        assert 'COMPLETELY resolve the quest: "Complete the adventure"' in prompt
        assert "Conflict Resolution: Get home" in prompt
        assert OPENING in prompt

    async def test_ending_words_capped(self, storage):
        long_story = storage.create_story(Story(
            user_id="u", title="Long", creation_mode=CreationMode.ADVANCED,
            metadata={"words_per_chapter": 400},
        ))
        llm = StubLLM({"ending": [ENDING]})
        await StoryWriter(storage, llm).generate_ending(long_story.id)
        assert "Write approximately 200 words" in llm.prompts("ending")[0]

    async def test_no_segments_after_ending(self, storage, story):
        llm = StubLLM({"ending": [ENDING]})
        writer = StoryWriter(storage, llm)
        await writer.generate_ending(story.id)

        with pytest.raises(GenerationRequestError, match="already ended"):
            await writer.generate_segment(story.id)
        with pytest.raises(GenerationRequestError, match="already ended"):
            await writer.generate_ending(story.id)
        assert len(storage.list_segments(story.id)) == 1


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------

class TestMedia:
    async def _first_segment(self, storage, story, **kwargs):
        writer = StoryWriter(storage, StubLLM({"segment": [OPENING], "choices": [CHOICES]}), **kwargs)
        payload = await writer.generate_segment(story.id)
        return writer, payload.segment

    async def test_image_without_backend(self, storage, story):
        writer, segment = await self._first_segment(storage, story)
        with pytest.raises(IllustrationError):
            await writer.generate_image(segment.id, segment.image_prompt)

    async def test_image_url_attached_to_segment(self, storage, story):
        painter = AsyncMock(return_value="https://img.example/1.png")
        writer, segment = await self._first_segment(storage, story, painter=painter)

        url = await writer.generate_image(segment.id, "A shiny door")

        assert url == "https://img.example/1.png"
        painter.assert_awaited_once_with("A shiny door")
        stored = storage.get_segment(segment.id)
        assert stored.image_url == url
        assert stored.image_prompt == "A shiny door"

    async def test_image_backend_failure(self, storage, story):
        painter = AsyncMock(side_effect=GenerationRequestError("busy"))
        writer, segment = await self._first_segment(storage, story, painter=painter)
        with pytest.raises(IllustrationError):
            await writer.generate_image(segment.id, "A shiny door")
        assert storage.get_segment(segment.id).image_url is None

    async def test_audio_narrates_title_and_segments(self, storage, story):
        speaker = AsyncMock(return_value="https://audio.example/1.mp3")
        writer, _ = await self._first_segment(storage, story, speaker=speaker)

        url = await writer.generate_audio(story.id)

        text = speaker.await_args.args[0]
        assert text.startswith("Mira's Space Adventure\n\n")
        assert OPENING in text
        assert storage.get_story(story.id).audio_url == url

    async def test_audio_without_backend(self, storage, story):
        writer, _ = await self._first_segment(storage, story)
        with pytest.raises(GenerationRequestError):
            await writer.generate_audio(story.id)

    async def test_audio_for_empty_story(self, storage, story):
        writer = StoryWriter(storage, StubLLM({}), speaker=AsyncMock())
        with pytest.raises(GenerationRequestError, match="no text"):
            await writer.generate_audio(story.id)


class TestHttpMediaGenerator:
    def _response(self, body: dict) -> MagicMock:
        resp = MagicMock()
        resp.json.return_value = body
        resp.raise_for_status = MagicMock()
        return resp

    async def test_posts_prompt_and_reads_url(self):
        mock_post = AsyncMock(return_value=self._response({"url": "https://img.example/2.png"}))
        generator = HttpMediaGenerator("http://media.local/image", api_key="k")
        with patch("httpx.AsyncClient.post", mock_post):
            url = await generator("A shiny door")

        assert url == "https://img.example/2.png"
        call = mock_post.call_args
        assert call.args[0] == "http://media.local/image"
        assert call.kwargs["json"] == {"prompt": "A shiny door"}
        assert call.kwargs["headers"]["Authorization"] == "Bearer k"

    async def test_connection_error(self):
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(GenerationRequestError, match="failed"):
                await HttpMediaGenerator("http://media.local/image")("x")

    async def test_invalid_json(self):
        resp = self._response({})
        resp.json.side_effect = ValueError("Expecting value")
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
            with pytest.raises(GenerationRequestError, match="invalid JSON"):
                await HttpMediaGenerator("http://media.local/image")("x")

    async def test_missing_url(self):
        mock_post = AsyncMock(return_value=self._response({}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(GenerationRequestError, match="no url"):
                await HttpMediaGenerator("http://media.local/image")("x")
