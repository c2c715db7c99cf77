"""Reader session — the interactive continuation protocol for one story.

A session holds a pointer into the story's segment list. Advancing is
always refetch-driven: after the generation collaborator reports success
the session re-reads the list from persistence and only then moves the
pointer to the new last segment. The list itself is never edited locally.

State machine:

    awaiting_choice ─► generating ─┬─► segment_ready
                                   ├─► ending_ready
                                   └─► failed

Generation failures are logged and kept in `error`; the entry points
return False instead of raising. Illustrations run as background tasks
whose failures are logged and otherwise ignored.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from tale_forge.choices import ChoiceResolutionError, choice_text, resolve_choice_index
from tale_forge.clock import Scheduler, TimerHandle
from tale_forge.generation import GenerationClient, GenerationRequestError, image_prompt_for
from tale_forge.models import Story, StorySegment
from tale_forge.storage import Persistence, StorageError

from .polling import StalledGenerationMonitor

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Story, StorySegment], None]


class ReaderState(str, Enum):
    AWAITING_CHOICE = "awaiting_choice"
    GENERATING = "generating"
    SEGMENT_READY = "segment_ready"
    ENDING_READY = "ending_ready"
    FAILED = "failed"


async def illustrate(
    segment: StorySegment,
    *,
    storage: Persistence,
    generation: GenerationClient,
) -> str | None:
    """Request an illustration and attach its URL to the segment.

    Failures are logged and reported as None.
    """
    prompt = image_prompt_for(segment)
    try:
        url = await generation.generate_image(segment.id, prompt)
        if url:
            storage.update_segment(segment.id, {"image_url": url})
    except Exception:
        logger.warning("illustration failed segment=%s", segment.id, exc_info=True)
        return None
    logger.debug("illustration segment=%s url=%s", segment.id, url)
    return url


class ReaderSession:
    def __init__(
        self,
        story_id: str,
        storage: Persistence,
        generation: GenerationClient,
        scheduler: Scheduler,
        on_complete: CompletionCallback | None = None,
        ending_delay: float = 2.0,
        refetch_attempts: int = 5,
        refetch_interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.story_id = story_id
        self._storage = storage
        self._generation = generation
        self._scheduler = scheduler
        self._on_complete = on_complete
        self._ending_delay = ending_delay
        self._refetch_attempts = refetch_attempts
        self._refetch_interval = refetch_interval
        self._sleep = sleep

        self.story: Story | None = None
        self.segments: list[StorySegment] = []
        self.index = 0
        self.state = ReaderState.AWAITING_CHOICE
        self.error: Exception | None = None

        self._completion: TimerHandle | None = None
        self._completed = False
        self._closed = False
        self._illustrations: set[asyncio.Task] = set()
        self.monitor: StalledGenerationMonitor | None = None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _reload(self) -> None:
        self.story = self._storage.get_story(self.story_id)
        if self.story is None:
            raise StorageError(f"Story {self.story_id!r} not found")
        self.segments = self._storage.list_segments(self.story_id)
        if self.index >= len(self.segments):
            self.index = max(len(self.segments) - 1, 0)

    def refresh(self) -> list[StorySegment]:
        """Re-read the story and its segments, then check for an ending."""
        self._reload()
        self._detect_ending()
        return self.segments

    @property
    def current_segment(self) -> StorySegment | None:
        if not self.segments:
            return None
        return self.segments[self.index]

    @property
    def has_next(self) -> bool:
        return self.index < len(self.segments) - 1

    @property
    def total_words(self) -> int:
        return sum(s.word_count for s in self.segments)

    def next_segment(self) -> StorySegment | None:
        if self.has_next:
            self.index += 1
            self._detect_ending()
        return self.current_segment

    def previous_segment(self) -> StorySegment | None:
        if self.index > 0:
            self.index -= 1
        return self.current_segment

    def restart(self) -> StorySegment | None:
        self.index = 0
        return self.current_segment

    # ------------------------------------------------------------------
    # Ending detection
    # ------------------------------------------------------------------

    def _detect_ending(self) -> None:
        segment = self.current_segment
        if segment is None or not segment.is_end:
            return
        if self._on_complete is None or self._completion is not None or self._completed:
            return
        self._completion = self._scheduler.call_later(
            self._ending_delay, lambda: self._complete(segment)
        )

    def _complete(self, segment: StorySegment) -> None:
        if self._closed or self.story is None:
            return
        self._completed = True
        logger.info("story complete id=%s segments=%d", self.story_id, len(self.segments))
        self._on_complete(self.story, segment)

    # ------------------------------------------------------------------
    # Continuation
    # ------------------------------------------------------------------

    async def select_choice(self, choice_id: str) -> bool:
        """Continue the story from one of the current segment's choices."""
        if self.state is ReaderState.GENERATING:
            logger.warning("choice %s ignored, story=%s is already generating", choice_id, self.story_id)
            return False

        segment = self.current_segment
        choices = segment.choices if segment is not None else []
        try:
            index = resolve_choice_index(choice_id, choices)
        except ChoiceResolutionError as e:
            logger.warning("choice resolution failed story=%s: %s", self.story_id, e)
            self.error = e
            self.state = ReaderState.FAILED
            return False

        if 0 <= index < len(choices):
            logger.info("story=%s choice=%d %r", self.story_id, index, choice_text(choices[index]))
        return await self._continue(
            lambda: self._generation.generate_segment(self.story_id, index), "segment"
        )

    async def request_ending(self) -> bool:
        if self.state is ReaderState.GENERATING:
            logger.warning("ending request ignored, story=%s is already generating", self.story_id)
            return False
        return await self._continue(
            lambda: self._generation.generate_ending(self.story_id), "ending"
        )

    async def request_audio(self) -> str | None:
        try:
            url = await self._generation.generate_audio(self.story_id)
        except (GenerationRequestError, StorageError) as e:
            logger.error("audio generation failed story=%s: %s", self.story_id, e)
            self.error = e
            return None
        self.story = self._storage.get_story(self.story_id) or self.story
        return url

    async def _continue(self, request: Callable[[], Awaitable[object]], kind: str) -> bool:
        previous = len(self.segments)
        self.state = ReaderState.GENERATING
        self.error = None
        try:
            await request()
            if self._closed:
                logger.debug("%s arrived after close story=%s", kind, self.story_id)
                return False
            await self._await_new_segment(previous)
        except (GenerationRequestError, StorageError) as e:
            logger.error("%s generation failed story=%s: %s", kind, self.story_id, e)
            self.error = e
            self.state = ReaderState.FAILED
            return False

        self.index = len(self.segments) - 1
        segment = self.segments[self.index]
        self.state = ReaderState.ENDING_READY if segment.is_end else ReaderState.SEGMENT_READY
        logger.info(
            "story=%s advanced to position=%d end=%s", self.story_id, segment.position, segment.is_end
        )
        self.dispatch_illustration(segment)
        self._detect_ending()
        return True

    async def _await_new_segment(self, previous: int) -> None:
        for attempt in range(self._refetch_attempts):
            if attempt:
                await self._sleep(self._refetch_interval)
            self._reload()
            if len(self.segments) > previous:
                return
        raise GenerationRequestError(
            f"No new segment for story {self.story_id} after {self._refetch_attempts} refetches"
        )

    # ------------------------------------------------------------------
    # Illustrations
    # ------------------------------------------------------------------

    def dispatch_illustration(self, segment: StorySegment) -> asyncio.Task:
        task = asyncio.create_task(
            illustrate(segment, storage=self._storage, generation=self._generation)
        )
        self._illustrations.add(task)
        task.add_done_callback(self._illustrations.discard)
        return task

    async def wait_for_illustrations(self) -> None:
        if self._illustrations:
            await asyncio.gather(*self._illustrations)

    def close(self) -> None:
        """Stop timers. Requests already sent are left to finish."""
        self._closed = True
        if self._completion is not None:
            self._completion.cancel()
        if self.monitor is not None:
            self.monitor.stop()
