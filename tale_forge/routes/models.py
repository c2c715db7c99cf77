"""Pydantic request bodies for the API endpoints.

Generation bodies use the camelCase field names of the generation
service wire format.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tale_forge.models import CreationMode


class CreateStoryBody(BaseModel):
    mode: CreationMode
    user_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    template_id: str | None = None
    session_id: str | None = None


class _CamelBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SegmentBody(_CamelBody):
    story_id: str = Field(alias="storyId")
    choice_index: int | None = Field(default=None, alias="choiceIndex", ge=0)


class StoryIdBody(_CamelBody):
    story_id: str = Field(alias="storyId")


class ImageBody(_CamelBody):
    segment_id: str = Field(alias="segmentId")
    image_prompt: str = Field(alias="imagePrompt", min_length=1)
