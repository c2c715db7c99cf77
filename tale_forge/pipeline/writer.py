"""Story writer — the generation collaborator backed by a local LLM.

StoryWriter implements GenerationClient by rendering the continuation,
choice and ending prompts, calling the injected LLM and appending the
result to storage at the next free position.

Segment flow:
  1. Refuse if the story's last segment is already an ending.
  2. Resolve the chosen option text from the previous segment, if any.
  3. "segment" call → story text.
  4. "choices" call → exactly three choices (parse_choices tops up).
  5. Save the segment with an image prompt derived from its text.

Illustrations and narration go through MediaGenerator callables:

    async def __call__(self, prompt: str) -> str: ...   # returns a URL
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from tale_forge.choices import choice_text, parse_choices
from tale_forge.difficulty import (
    DEFAULT_WORD_COUNT,
    difficulty_to_age,
    parse_age,
    vocabulary_guidelines,
)
from tale_forge.generation import GenerationRequestError, IllustrationError, derive_image_prompt
from tale_forge.llm import LLM, LLMError
from tale_forge.models import SegmentPayload, Story, StorySegment
from tale_forge.prompts import CHOICES_PROMPT, ENDING_PROMPT, SEGMENT_PROMPT, render_prompt
from tale_forge.storage import Persistence, StorageError

logger = logging.getLogger(__name__)

MAX_ENDING_WORDS = 200
ENDING_EXTRA_WORDS = 30


class MediaGenerator(Protocol):
    async def __call__(self, prompt: str) -> str: ...


class HttpMediaGenerator:
    """POSTs {"prompt": ...} to an endpoint and reads {"url": ...} back."""

    def __init__(self, endpoint_url: str, api_key: str = "", timeout: float = 60.0) -> None:
        self._url = endpoint_url
        self._api_key = api_key
        self._timeout = timeout

    async def __call__(self, prompt: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json={"prompt": prompt}, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise GenerationRequestError(f"Media backend at {self._url} failed: {e}") from e
        try:
            data = resp.json()
        except ValueError as e:
            raise GenerationRequestError(f"Media backend at {self._url} returned invalid JSON") from e
        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise GenerationRequestError(f"Media backend at {self._url} returned no url")
        return url


class StoryWriter:
    def __init__(
        self,
        storage: Persistence,
        llm: LLM,
        painter: MediaGenerator | None = None,
        speaker: MediaGenerator | None = None,
    ) -> None:
        self._storage = storage
        self._llm = llm
        self._painter = painter
        self._speaker = speaker

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, story_id: str) -> tuple[Story, list[StorySegment]]:
        story = self._storage.get_story(story_id)
        if story is None:
            raise StorageError(f"Story {story_id!r} not found")
        segments = self._storage.list_segments(story_id)
        if segments and segments[-1].is_end:
            raise GenerationRequestError(f"Story {story_id!r} has already ended")
        return story, segments

    async def _call(self, stage: str, prompt: str) -> str:
        try:
            return await self._llm(stage, prompt)
        except LLMError as e:
            raise GenerationRequestError(f"{stage} generation failed: {e}") from e

    @staticmethod
    def _reader_age(story: Story) -> float:
        target = story.metadata.get("target_age")
        if target in (None, ""):
            return difficulty_to_age(story.difficulty)
        return parse_age(target)

    @staticmethod
    def _words_per_chapter(story: Story) -> int:
        try:
            return int(story.metadata.get("words_per_chapter") or DEFAULT_WORD_COUNT)
        except (TypeError, ValueError):
            return DEFAULT_WORD_COUNT

    def _save(self, story: Story, content: str, **fields) -> StorySegment:
        segment = StorySegment(
            story_id=story.id,
            content=content,
            position=self._storage.next_position(story.id),
            **fields,
        )
        try:
            self._storage.create_segment(segment)
        except ValueError as e:
            raise GenerationRequestError(str(e)) from e
        logger.info(
            "segment saved story=%s position=%d end=%s words=%d",
            story.id, segment.position, segment.is_end, segment.word_count,
        )
        return segment

    # ------------------------------------------------------------------
    # GenerationClient
    # ------------------------------------------------------------------

    async def generate_segment(
        self, story_id: str, choice_index: int | None = None
    ) -> SegmentPayload:
        story, segments = self._load(story_id)
        previous = segments[-1] if segments else None

        chosen = ""
        if previous is not None and choice_index is not None:
            if 0 <= choice_index < len(previous.choices):
                chosen = choice_text(previous.choices[choice_index])
            else:
                logger.warning(
                    "choice index %d out of range for story=%s, continuing without it",
                    choice_index, story_id,
                )

        content = await self._call("segment", render_prompt(SEGMENT_PROMPT, {
            "story_prompt": story.prompt,
            "title": story.title,
            "word_count": self._words_per_chapter(story),
            "previous_segment": previous.content if previous else "",
            "chosen": chosen,
        }))

        try:
            raw_choices = await self._call("choices", render_prompt(CHOICES_PROMPT, {
                "age": f"{self._reader_age(story):g}",
                "segment": content,
            }))
        except GenerationRequestError as e:
            logger.warning("choice generation failed story=%s, using fallbacks: %s", story_id, e)
            raw_choices = ""
        choices = parse_choices(raw_choices, content)

        segment = self._save(
            story, content,
            choices=choices,
            image_prompt=derive_image_prompt(content),
        )
        return SegmentPayload(
            content=content,
            choices=choices,
            image_prompt=segment.image_prompt,
            segment=segment,
        )

    async def generate_ending(self, story_id: str) -> SegmentPayload:
        story, segments = self._load(story_id)
        age = self._reader_age(story)
        ending_words = min(self._words_per_chapter(story) + ENDING_EXTRA_WORDS, MAX_ENDING_WORDS)
        meta = story.metadata

        content = await self._call("ending", render_prompt(ENDING_PROMPT, {
            "title": story.title,
            "genre": story.genre,
            "age": f"{age:g}",
            "theme": story.theme,
            "setting": story.setting,
            "quest": meta.get("quest") or "Complete the adventure",
            "moral_lesson": story.moral_lesson,
            "conflict": meta.get("conflict") or "",
            "story_so_far": "\n\n".join(s.content for s in segments),
            "ending_words": ending_words,
            "vocabulary": vocabulary_guidelines(age),
        }))

        segment = self._save(
            story, content,
            is_end=True,
            image_prompt=derive_image_prompt(content, final=True),
        )
        return SegmentPayload(
            content=content,
            image_prompt=segment.image_prompt,
            is_end=True,
            segment=segment,
        )

    async def generate_image(self, segment_id: str, image_prompt: str) -> str | None:
        if self._painter is None:
            raise IllustrationError("No image backend configured")
        try:
            url = await self._painter(image_prompt)
        except GenerationRequestError as e:
            raise IllustrationError(str(e)) from e
        self._storage.update_segment(segment_id, {"image_url": url, "image_prompt": image_prompt})
        return url

    async def generate_audio(self, story_id: str) -> str:
        if self._speaker is None:
            raise GenerationRequestError("No audio backend configured")
        story = self._storage.get_story(story_id)
        if story is None:
            raise StorageError(f"Story {story_id!r} not found")
        segments = self._storage.list_segments(story_id)
        if not segments:
            raise GenerationRequestError(f"Story {story_id!r} has no text to narrate")
        text = "\n\n".join([story.title] + [s.content for s in segments])
        url = await self._speaker(text)
        self._storage.update_story(story_id, {"audio_url": url})
        return url
