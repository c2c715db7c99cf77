"""Health check and settings endpoints."""

from fastapi import APIRouter, Request

from tale_forge.config import get_config, update_config

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get app settings (text backend, media endpoints, reader timings)."""
    return get_config(request.app.state.data_dir)


@router.patch("/settings")
async def update_settings(body: dict, request: Request):
    """Update app settings (partial merge). Takes effect on the next start."""
    return update_config(request.app.state.data_dir, body)
