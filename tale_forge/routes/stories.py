"""Story creation, listing, reading and deletion."""

from fastapi import APIRouter, HTTPException, Request

from tale_forge.models import ContextMetadata, GenerationContext
from tale_forge.pipeline import create_story

from .models import CreateStoryBody

router = APIRouter()


@router.post("/stories", status_code=201)
async def create(body: CreateStoryBody, request: Request):
    """Run the creation pipeline, persist the story and write its first segment."""
    state = request.app.state
    context = GenerationContext(
        mode=body.mode,
        user_id=body.user_id,
        raw_data=body.data,
        metadata=ContextMetadata(template_id=body.template_id, session_id=body.session_id),
    )
    outcome = await create_story(
        context,
        factory=state.factory,
        storage=state.storage,
        generation=state.writer,
        dispatch_illustration=state.illustrations,
        background=state.background_tasks,
    )
    if outcome.validation_errors:
        raise HTTPException(422, {
            "errors": outcome.validation_errors,
            "warnings": outcome.warnings,
        })
    return {
        "story": outcome.story,
        "segment": outcome.first_segment,
        "warnings": outcome.warnings,
        "error": str(outcome.error) if outcome.error else None,
    }


@router.get("/stories")
async def list_stories(user_id: str, request: Request):
    """List a user's stories, newest first."""
    return request.app.state.storage.list_stories(user_id)


@router.get("/stories/{story_id}")
async def get_story(story_id: str, request: Request):
    """Get a story header with its segments in reading order."""
    storage = request.app.state.storage
    story = storage.get_story(story_id)
    if story is None:
        raise HTTPException(404, "Story not found")
    return {"story": story, "segments": storage.list_segments(story_id)}


@router.delete("/stories/{story_id}")
async def delete_story(story_id: str, request: Request):
    """Delete a story and all its segments."""
    if not request.app.state.storage.delete_story(story_id):
        raise HTTPException(404, "Story not found")
    return {"ok": True}
