"""JSON file storage — the persistence collaborator.

Stories and their segments live as JSON documents below one base directory,
read and rewritten whole on every call.

Directory layout:

    {base}/
      stories/
        {story_id}.json        ← story header
        {story_id}/
          segments.json        ← StorySegment list, ascending position

Anything else that offers the same methods (see Persistence) can stand in
for Storage; the reader session and the writer only use the protocol.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any, Protocol

from tale_forge.models import Story, StorySegment

# Segments are immutable once written, apart from their illustration.
MUTABLE_SEGMENT_FIELDS = {"image_url", "image_prompt"}
MUTABLE_STORY_FIELDS = {"title", "audio_url", "metadata"}


class StorageError(LookupError):
    """Raised when a story or segment does not exist."""


class Persistence(Protocol):
    def create_story(self, story: Story) -> Story: ...

    def get_story(self, story_id: str) -> Story | None: ...

    def list_stories(self, user_id: str) -> list[Story]: ...

    def update_story(self, story_id: str, fields: dict[str, Any]) -> Story: ...

    def delete_story(self, story_id: str) -> bool: ...

    def create_segment(self, segment: StorySegment) -> StorySegment: ...

    def list_segments(self, story_id: str) -> list[StorySegment]: ...

    def update_segment(self, segment_id: str, fields: dict[str, Any]) -> StorySegment: ...

    def next_position(self, story_id: str) -> int: ...


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._stories_root = base_path / "stories"
        self._stories_root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _story_file(self, story_id: str) -> Path:
        return self._stories_root / f"{story_id}.json"

    def _story_dir(self, story_id: str) -> Path:
        return self._stories_root / story_id

    def _segments_file(self, story_id: str) -> Path:
        return self._story_dir(story_id) / "segments.json"

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2))

    def _write_segments(self, story_id: str, segments: list[StorySegment]) -> None:
        self._write_json(
            self._segments_file(story_id),
            [s.model_dump(mode="json") for s in segments],
        )

    # ------------------------------------------------------------------
    # Stories
    # ------------------------------------------------------------------

    def create_story(self, story: Story) -> Story:
        self._story_file(story.id).write_text(story.model_dump_json(indent=2))
        self._story_dir(story.id).mkdir(exist_ok=True)
        return story

    def get_story(self, story_id: str) -> Story | None:
        path = self._story_file(story_id)
        if not path.is_file():
            return None
        return Story.model_validate_json(path.read_text())

    def list_stories(self, user_id: str) -> list[Story]:
        """A user's stories, newest first."""
        stories = [
            Story.model_validate_json(path.read_text())
            for path in self._stories_root.glob("*.json")
        ]
        mine = [s for s in stories if s.user_id == user_id]
        return sorted(mine, key=lambda s: s.created_at, reverse=True)

    def update_story(self, story_id: str, fields: dict[str, Any]) -> Story:
        story = self.get_story(story_id)
        if story is None:
            raise StorageError(f"Story {story_id!r} not found")
        allowed = {k: v for k, v in fields.items() if k in MUTABLE_STORY_FIELDS}
        updated = story.model_copy(update=allowed)
        self._story_file(story_id).write_text(updated.model_dump_json(indent=2))
        return updated

    def delete_story(self, story_id: str) -> bool:
        """Delete a story and all its segments."""
        path = self._story_file(story_id)
        if not path.is_file():
            return False
        path.unlink()
        child_dir = self._story_dir(story_id)
        if child_dir.is_dir():
            shutil.rmtree(child_dir)
        return True

    # ------------------------------------------------------------------
    # Segments (append-only, ordered by position)
    # ------------------------------------------------------------------

    def list_segments(self, story_id: str) -> list[StorySegment]:
        path = self._segments_file(story_id)
        if not path.exists():
            return []
        segments = [StorySegment.model_validate(s) for s in self._read_json(path)]
        return sorted(segments, key=lambda s: s.position)

    def next_position(self, story_id: str) -> int:
        return max((s.position for s in self.list_segments(story_id)), default=0) + 1

    def create_segment(self, segment: StorySegment) -> StorySegment:
        """Append a segment. Its position must be the next free one."""
        if self.get_story(segment.story_id) is None:
            raise StorageError(f"Story {segment.story_id!r} not found")
        existing = self.list_segments(segment.story_id)
        expected = len(existing) + 1
        if segment.position != expected:
            raise ValueError(
                f"Segment position {segment.position} breaks the sequence, expected {expected}"
            )
        if existing and existing[-1].is_end:
            raise ValueError(f"Story {segment.story_id!r} has already ended")
        self._story_dir(segment.story_id).mkdir(exist_ok=True)
        self._write_segments(segment.story_id, existing + [segment])
        return segment

    def get_segment(self, segment_id: str) -> StorySegment | None:
        for story_dir in self._stories_root.iterdir():
            if not story_dir.is_dir():
                continue
            for segment in self.list_segments(story_dir.name):
                if segment.id == segment_id:
                    return segment
        return None

    def update_segment(self, segment_id: str, fields: dict[str, Any]) -> StorySegment:
        """Patch a segment's illustration fields; everything else is fixed."""
        found = self.get_segment(segment_id)
        if found is None:
            raise StorageError(f"Segment {segment_id!r} not found")
        allowed = {k: v for k, v in fields.items() if k in MUTABLE_SEGMENT_FIELDS}
        segments = self.list_segments(found.story_id)
        for i, segment in enumerate(segments):
            if segment.id == segment_id:
                segments[i] = segment.model_copy(update=allowed)
                found = segments[i]
                break
        self._write_segments(found.story_id, segments)
        return found
