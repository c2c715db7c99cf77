"""Generation collaborator: protocol, errors and the HTTP client.

The reader session and the creation orchestrator talk to whatever writes
segments through GenerationClient. Two implementations exist:

    HttpGenerationClient  — calls a remote generation service (this module).
    StoryWriter           — writes locally through an LLM (pipeline/writer.py).

Wire shapes used by the HTTP client (and served by tale_forge.app):

    POST /generate-story-segment  {"storyId", "choiceIndex"?}  → {"segment": {...}}
    POST /generate-story-ending   {"storyId"}                  → {"segment": {...}}
    POST /regenerate-image        {"segmentId", "imagePrompt"} → {"imageUrl": str | null}
    POST /generate-audio          {"storyId"}                  → {"audioUrl": str}
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from tale_forge.models import Choice, SegmentPayload, StorySegment

logger = logging.getLogger(__name__)

ILLUSTRATION_PREFIX = "Illustration for a children's story segment: "
FINAL_ILLUSTRATION_PREFIX = "Final illustration: "
IMAGE_PROMPT_PREVIEW_CHARS = 100


class GenerationRequestError(RuntimeError):
    """Raised when the generation backend fails or returns something unusable."""


class IllustrationError(GenerationRequestError):
    """Raised when an illustration cannot be produced."""


class GenerationClient(Protocol):
    async def generate_segment(
        self, story_id: str, choice_index: int | None = None
    ) -> SegmentPayload: ...

    async def generate_ending(self, story_id: str) -> SegmentPayload: ...

    async def generate_image(self, segment_id: str, image_prompt: str) -> str | None: ...

    async def generate_audio(self, story_id: str) -> str: ...


def derive_image_prompt(content: str, final: bool = False) -> str:
    prefix = FINAL_ILLUSTRATION_PREFIX if final else ILLUSTRATION_PREFIX
    return f"{prefix}{content[:IMAGE_PROMPT_PREVIEW_CHARS]}..."


def image_prompt_for(segment: StorySegment) -> str:
    """The segment's own image prompt, or one derived from its opening text."""
    return segment.image_prompt or derive_image_prompt(segment.content)


def payload_from_response(data: Any) -> SegmentPayload:
    """Turn a {"segment": {...}} response body into a SegmentPayload."""
    if not isinstance(data, dict) or not isinstance(data.get("segment"), dict):
        raise GenerationRequestError("Generation response has no segment")
    raw = data["segment"]

    choices = []
    for i, choice in enumerate(raw.get("choices") or []):
        if isinstance(choice, dict):
            choices.append(Choice(id=choice.get("id") or f"choice-{i}", text=str(choice.get("text", ""))))
        else:
            choices.append(Choice(id=f"choice-{i}", text=str(choice)))

    content = raw.get("content")
    if not isinstance(content, str) or not content.strip():
        raise GenerationRequestError("Generation response segment has no content")

    segment: StorySegment | None = None
    if "story_id" in raw and "position" in raw:
        try:
            segment = StorySegment.model_validate(
                {**raw, "choices": choices, "image_prompt": raw.get("image_prompt") or ""}
            )
        except ValidationError as e:
            raise GenerationRequestError(f"Malformed segment in response: {e}") from e

    return SegmentPayload(
        content=content,
        choices=choices,
        image_prompt=raw.get("image_prompt") or "",
        is_end=bool(raw.get("is_end", False)),
        segment=segment,
    )


class HttpGenerationClient:
    """Client for a remote generation service.

    Args:
        base_url:  Service root, e.g. "http://localhost:8000/api".
        api_key:   User access token, sent as a Bearer token.
        anon_key:  Project key, sent in the "apikey" header.
        timeout:   HTTP timeout in seconds. Segment generation is slow.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        anon_key: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._anon_key = anon_key
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        if self._anon_key:
            headers["apikey"] = self._anon_key
        return headers

    async def _post(self, path: str, body: dict[str, Any]) -> Any:
        url = f"{self._base_url}{path}"
        logger.debug("generation call url=%s", url)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise GenerationRequestError(f"Cannot connect to generation service at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise GenerationRequestError(
                f"Generation service returned HTTP {e.response.status_code} for {path}"
            ) from e
        except httpx.TimeoutException as e:
            raise GenerationRequestError(f"Generation service timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise GenerationRequestError(f"Generation service request to {path} failed: {e}") from e

        try:
            return resp.json()
        except ValueError as e:
            raise GenerationRequestError(f"Generation service returned invalid JSON for {path}") from e

    async def generate_segment(
        self, story_id: str, choice_index: int | None = None
    ) -> SegmentPayload:
        body: dict[str, Any] = {"storyId": story_id}
        if choice_index is not None:
            body["choiceIndex"] = choice_index
        return payload_from_response(await self._post("/generate-story-segment", body))

    async def generate_ending(self, story_id: str) -> SegmentPayload:
        payload = payload_from_response(
            await self._post("/generate-story-ending", {"storyId": story_id})
        )
        return payload.model_copy(update={"is_end": True})

    async def generate_image(self, segment_id: str, image_prompt: str) -> str | None:
        try:
            data = await self._post(
                "/regenerate-image", {"segmentId": segment_id, "imagePrompt": image_prompt}
            )
        except GenerationRequestError as e:
            raise IllustrationError(str(e)) from e
        if not isinstance(data, dict):
            raise IllustrationError("Image response is not an object")
        return data.get("imageUrl") or None

    async def generate_audio(self, story_id: str) -> str:
        data = await self._post("/generate-audio", {"storyId": story_id})
        url = data.get("audioUrl") if isinstance(data, dict) else None
        if not url:
            raise GenerationRequestError("Audio response has no audioUrl")
        return url
