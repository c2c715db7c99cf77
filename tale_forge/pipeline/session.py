"""Opening a reader on a story, wired from app config.

open_reader() builds the pieces a reader needs:

  1. A generation client (HttpGenerationClient on base_url unless one is given).
  2. A scheduler (AsyncioScheduler unless one is given).
  3. A ReaderSession with the timings from config["reader"], refreshed once.
  4. While the story has no segments, a StalledGenerationMonitor that refetches
     through the session. session.close() stops it.

Call it from inside a running event loop when the default scheduler is used.
"""

from __future__ import annotations

import logging
from typing import Any

from tale_forge.clock import AsyncioScheduler, Scheduler
from tale_forge.generation import GenerationClient, HttpGenerationClient
from tale_forge.storage import Persistence, StorageError

from .polling import StalledGenerationMonitor
from .reader import CompletionCallback, ReaderSession

logger = logging.getLogger(__name__)


def open_reader(
    story_id: str,
    config: dict[str, Any],
    storage: Persistence,
    *,
    base_url: str = "",
    api_key: str = "",
    anon_key: str = "",
    generation: GenerationClient | None = None,
    scheduler: Scheduler | None = None,
    on_complete: CompletionCallback | None = None,
) -> ReaderSession:
    timings = config["reader"]
    if generation is None:
        generation = HttpGenerationClient(
            base_url, api_key=api_key, anon_key=anon_key,
            timeout=float(config["llm"]["timeout"]),
        )
    scheduler = scheduler or AsyncioScheduler()

    session = ReaderSession(
        story_id, storage, generation, scheduler,
        on_complete=on_complete,
        ending_delay=float(timings["ending_delay"]),
        refetch_attempts=int(timings["refetch_attempts"]),
        refetch_interval=float(timings["refetch_interval"]),
    )
    session.refresh()
    if session.segments:
        return session

    def refetch() -> None:
        try:
            session.refresh()
        except StorageError as e:
            logger.warning("refetch failed story=%s: %s", story_id, e)
            session.monitor.stop()

    session.monitor = StalledGenerationMonitor(
        refetch,
        lambda: bool(session.segments),
        scheduler,
        burst_interval=float(timings["burst_interval"]),
        burst_duration=float(timings["burst_duration"]),
        background_interval=float(timings["background_interval"]),
    )
    session.monitor.start()
    logger.info("story=%s has no segments yet, polling for the first one", story_id)
    return session
