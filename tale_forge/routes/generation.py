"""Generation endpoints, served by the StoryWriter.

Same paths and bodies as the remote generation service, so an
HttpGenerationClient pointed at /api talks to this app.
"""

from fastapi import APIRouter, HTTPException, Request

from tale_forge.generation import GenerationRequestError
from tale_forge.storage import StorageError

from .models import ImageBody, SegmentBody, StoryIdBody

router = APIRouter()


@router.post("/generate-story-segment")
async def generate_segment(body: SegmentBody, request: Request):
    """Write the next segment, optionally following one of the last segment's choices."""
    try:
        payload = await request.app.state.writer.generate_segment(body.story_id, body.choice_index)
    except StorageError:
        raise HTTPException(404, "Story not found")
    except GenerationRequestError as e:
        raise HTTPException(502, str(e))
    return {"segment": payload.segment}


@router.post("/generate-story-ending")
async def generate_ending(body: StoryIdBody, request: Request):
    """Write the final segment."""
    try:
        payload = await request.app.state.writer.generate_ending(body.story_id)
    except StorageError:
        raise HTTPException(404, "Story not found")
    except GenerationRequestError as e:
        raise HTTPException(502, str(e))
    return {"segment": payload.segment}


@router.post("/regenerate-image")
async def regenerate_image(body: ImageBody, request: Request):
    """Illustrate a segment and attach the image URL to it."""
    try:
        url = await request.app.state.writer.generate_image(body.segment_id, body.image_prompt)
    except StorageError:
        raise HTTPException(404, "Segment not found")
    except GenerationRequestError as e:
        raise HTTPException(502, str(e))
    return {"imageUrl": url}


@router.post("/generate-audio")
async def generate_audio(body: StoryIdBody, request: Request):
    """Narrate the whole story and attach the audio URL to it."""
    try:
        url = await request.app.state.writer.generate_audio(body.story_id)
    except StorageError:
        raise HTTPException(404, "Story not found")
    except GenerationRequestError as e:
        raise HTTPException(502, str(e))
    return {"audioUrl": url}
