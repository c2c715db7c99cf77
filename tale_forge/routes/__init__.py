"""FastAPI API endpoints under /api.

Endpoint groups: health + settings, stories (create/list/read/delete) and
the generation endpoints (segment, ending, image, audio).
"""

from fastapi import APIRouter

from .generation import router as generation_router
from .settings import router as settings_router
from .stories import router as stories_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(stories_router)
router.include_router(generation_router)
