"""Core domain models.

Strategies, the reader session and storage all operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class CreationMode(str, Enum):
    """Story creation mode; selects the generation strategy."""

    EASY = "easy"
    TEMPLATE = "template"
    ADVANCED = "advanced"


# ---------------------------------------------------------------------------
# Generation pipeline
# ---------------------------------------------------------------------------

class ContextMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    created_at: datetime = Field(default_factory=_now)
    template_id: str | None = None
    session_id: str | None = None


class GenerationContext(BaseModel):
    """One generation request. Built by the caller, discarded after the call."""

    model_config = ConfigDict(frozen=True)

    mode: CreationMode
    user_id: str
    raw_data: dict[str, Any] = Field(default_factory=dict)
    metadata: ContextMetadata = Field(default_factory=ContextMetadata)


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class GenerationResult(BaseModel):
    """Output of one pipeline run.

    `story` is empty whenever `validation_errors` is set.
    """

    story: dict[str, Any] = Field(default_factory=dict)
    validation_errors: list[str] | None = None
    warnings: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors


# ---------------------------------------------------------------------------
# Persisted entities
# ---------------------------------------------------------------------------

class Character(BaseModel):
    """A story character, embedded in the story's metadata bag."""

    id: str
    name: str = ""
    description: str = ""
    role: str = "supporting"  # "main" | "antagonist" | "supporting"
    traits: list[str] = Field(default_factory=list)


class Choice(BaseModel):
    id: str
    text: str
    next_segment_id: str | None = None


class Story(BaseModel):
    """Story header."""

    id: str = Field(default_factory=new_id)
    user_id: str
    title: str
    child_name: str = ""
    genre: str = ""
    theme: str = ""
    setting: str = ""
    difficulty: int = Field(default=5, ge=1, le=10)
    moral_lesson: str = ""
    prompt: str = ""
    creation_mode: CreationMode
    template_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    audio_url: str | None = None
    created_at: datetime = Field(default_factory=_now)


class StorySegment(BaseModel):
    """One unit of narrative plus its outgoing choices.

    Non-ending segments carry exactly three choices; the ending segment
    carries none.
    """

    id: str = Field(default_factory=new_id)
    story_id: str
    content: str
    position: int = Field(ge=1)
    choices: list[Choice] = Field(default_factory=list)
    image_prompt: str = ""
    image_url: str | None = None
    is_end: bool = False
    created_at: datetime = Field(default_factory=_now)

    @property
    def word_count(self) -> int:
        return len(self.content.split())


class SegmentPayload(BaseModel):
    """What the generation collaborator returns for a segment or an ending."""

    content: str
    choices: list[Choice] = Field(default_factory=list)
    image_prompt: str = ""
    is_end: bool = False
    segment: StorySegment | None = None
