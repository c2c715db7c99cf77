"""Story creation — from a GenerationContext to a persisted story.

Flow:
  1. Resolve the strategy for the context's mode and run its pipeline.
  2. On validation failure, stop. Nothing is persisted.
  3. Persist the story header.
  4. Ask the generation collaborator for the first segment (no choice).
  5. Dispatch the first illustration in the background.

A failed first-segment request leaves the header in place; the reader's
stalled-generation monitor or a later retry picks the story up from there.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from tale_forge.generation import GenerationClient, GenerationRequestError
from tale_forge.models import GenerationContext, GenerationResult, Story, StorySegment
from tale_forge.storage import Persistence
from tale_forge.strategies import StrategyFactory

from .reader import illustrate

logger = logging.getLogger(__name__)


@dataclass
class CreationOutcome:
    result: GenerationResult
    story: Story | None = None
    first_segment: StorySegment | None = None
    error: GenerationRequestError | None = None
    illustration: asyncio.Task | None = None

    @property
    def warnings(self) -> list[str]:
        return self.result.warnings

    @property
    def validation_errors(self) -> list[str] | None:
        return self.result.validation_errors


async def create_story(
    context: GenerationContext,
    *,
    factory: StrategyFactory,
    storage: Persistence,
    generation: GenerationClient,
    dispatch_illustration: bool = True,
    background: set[asyncio.Task] | None = None,
) -> CreationOutcome:
    """Create a story and its first segment.

    Pass `background` to keep the illustration task referenced after the
    caller returns; it is discarded from the set once done.
    """
    strategy = factory.get_strategy(context.mode)
    result = strategy.generate_story(context)
    if not result.is_valid:
        return CreationOutcome(result=result)

    story = storage.create_story(Story(user_id=context.user_id, **result.story))
    logger.info("story created id=%s mode=%s user=%s", story.id, context.mode.value, context.user_id)
    outcome = CreationOutcome(result=result, story=story)

    try:
        await generation.generate_segment(story.id)
    except GenerationRequestError as e:
        logger.error("first segment failed story=%s: %s", story.id, e)
        outcome.error = e
        return outcome

    segments = storage.list_segments(story.id)
    if not segments:
        outcome.error = GenerationRequestError(f"First segment of story {story.id} was not saved")
        logger.error("%s", outcome.error)
        return outcome

    outcome.first_segment = segments[0]
    if dispatch_illustration:
        outcome.illustration = asyncio.create_task(
            illustrate(outcome.first_segment, storage=storage, generation=generation)
        )
        if background is not None:
            background.add(outcome.illustration)
            outcome.illustration.add_done_callback(background.discard)
    return outcome
