"""Shared fixtures: tmp_path storage, a persisted story, and collaborator doubles."""

from pathlib import Path

import pytest

from tale_forge.clock import ManualScheduler
from tale_forge.generation import IllustrationError
from tale_forge.models import Choice, CreationMode, SegmentPayload, Story, StorySegment
from tale_forge.storage import Storage


# ---------------------------------------------------------------------------
# StubLLM — dispatches by stage name, independent queue per stage
# ---------------------------------------------------------------------------

class StubLLM:
    """Deterministic LLM stand-in for tests.

    Provide a dict mapping stage name → list of responses (in call order).
    A response that is an exception instance is raised instead of returned.
    """

    def __init__(self, responses: dict[str, list]) -> None:
        self._queues: dict[str, list] = {k: list(v) for k, v in responses.items()}
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, stage: str, prompt: str) -> str:
        self.calls.append((stage, prompt))
        queue = self._queues.get(stage)
        if not queue:
            raise AssertionError(
                f"StubLLM: unexpected call to stage={stage!r} "
                f"(no responses queued). calls so far: {self.calls}"
            )
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def prompts(self, stage: str) -> list[str]:
        return [p for s, p in self.calls if s == stage]


# ---------------------------------------------------------------------------
# FakeGeneration — a generation backend that writes straight to storage
# ---------------------------------------------------------------------------

class FakeGeneration:
    """Behaves like the remote service: persists each segment before returning.

    Set segment_error / ending_error / image_error / audio_error to make the
    matching call raise. Set persist=False to simulate a segment that never
    shows up in storage.
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage
        self.calls: list[tuple] = []
        self.segment_error: Exception | None = None
        self.ending_error: Exception | None = None
        self.image_error: Exception | None = None
        self.audio_error: Exception | None = None
        self.image_url: str | None = "https://images.example/pic.png"
        self.persist = True

    def _save(self, story_id: str, content: str, **fields) -> StorySegment:
        segment = StorySegment(
            story_id=story_id,
            content=content,
            position=self._storage.next_position(story_id),
            **fields,
        )
        if self.persist:
            self._storage.create_segment(segment)
        return segment

    async def generate_segment(self, story_id: str, choice_index: int | None = None) -> SegmentPayload:
        self.calls.append(("segment", story_id, choice_index))
        if self.segment_error:
            raise self.segment_error
        position = self._storage.next_position(story_id)
        segment = self._save(
            story_id,
            f"Part {position}: Mira floated past a ring of glowing moons.",
            choices=[Choice(id=f"choice-{i}", text=f"Option {i}") for i in range(3)],
        )
        return SegmentPayload(content=segment.content, choices=segment.choices, segment=segment)

    async def generate_ending(self, story_id: str) -> SegmentPayload:
        self.calls.append(("ending", story_id))
        if self.ending_error:
            raise self.ending_error
        segment = self._save(
            story_id,
            "Mira landed safely at home and hugged her family.",
            is_end=True,
            image_prompt="Final illustration: Mira at home",
        )
        return SegmentPayload(content=segment.content, is_end=True, segment=segment)

    async def generate_image(self, segment_id: str, image_prompt: str) -> str | None:
        self.calls.append(("image", segment_id, image_prompt))
        if self.image_error:
            raise self.image_error
        return self.image_url

    async def generate_audio(self, story_id: str) -> str:
        self.calls.append(("audio", story_id))
        if self.audio_error:
            raise self.audio_error
        return "https://audio.example/story.mp3"

    def kinds(self) -> list[str]:
        return [c[0] for c in self.calls]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    return Storage(tmp_path)


@pytest.fixture
def story(storage: Storage) -> Story:
    return storage.create_story(Story(
        user_id="user-1",
        title="Mira's Space Adventure",
        child_name="Mira",
        genre="space",
        theme="Exploration and Science",
        setting="Distant Galaxy",
        difficulty=3,
        moral_lesson="Be kind to others",
        prompt="Create a space story for young children featuring Mira.",
        creation_mode=CreationMode.EASY,
        metadata={"words_per_chapter": 80, "target_age": 5, "conflict": "Get home"},
    ))


@pytest.fixture
def generation(storage: Storage) -> FakeGeneration:
    return FakeGeneration(storage)


@pytest.fixture
def failing_images(generation: FakeGeneration) -> FakeGeneration:
    generation.image_error = IllustrationError("image backend down")
    return generation


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
