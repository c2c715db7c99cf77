import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from tale_forge.config import get_config, resolve_data_dir
from tale_forge.llm import LLM, HttpLLM
from tale_forge.pipeline import HttpMediaGenerator, MediaGenerator, StoryWriter
from tale_forge.routes import router
from tale_forge.storage import Storage
from tale_forge.strategies import default_factory

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)


def _media(section: dict) -> MediaGenerator | None:
    if not section.get("endpoint_url"):
        return None
    return HttpMediaGenerator(section["endpoint_url"], section.get("api_key", ""))


def create_app(
    data_dir: Path | None = None,
    llm: LLM | None = None,
    painter: MediaGenerator | None = None,
    speaker: MediaGenerator | None = None,
) -> FastAPI:
    resolved = resolve_data_dir(data_dir)
    config = get_config(resolved)

    if llm is None:
        conn = config["llm"]
        llm = HttpLLM(
            conn["provider_url"],
            api_key=conn["api_key"],
            provider_format=conn["provider_format"],
            model=conn["model"],
            timeout=float(conn["timeout"]),
        )
    painter = painter or _media(config["image"])
    speaker = speaker or _media(config["audio"])

    storage = Storage(resolved)
    app = FastAPI(title="Tale Forge")
    app.state.data_dir = resolved
    app.state.storage = storage
    app.state.factory = default_factory()
    app.state.writer = StoryWriter(storage, llm, painter=painter, speaker=speaker)
    app.state.illustrations = painter is not None
    app.state.background_tasks = set()
    app.include_router(router, prefix="/api")

    logger.info("tale forge app data_dir=%s illustrations=%s", resolved, painter is not None)
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
