"""Trilingua: trilingual (Japanese / English / Chinese) dictionary and sentence analysis service."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from log import get_logger

logger = get_logger("trilingua.backend")

from llm import GenAIClient
from analysis import AnalysisClient
from media import AudioSink, MediaClient
from storage import BlobStore, SqliteBlobStore
from history import HistoryStore
from session import SessionController
from routes import router


def create_app(client: Optional[GenAIClient] = None, blob_store: Optional[BlobStore] = None,
               sink: Optional[AudioSink] = None) -> FastAPI:
    """Wire the services together. Nothing touches the network or disk until start-up."""
    client = client or GenAIClient()
    history = HistoryStore(blob_store if blob_store is not None else SqliteBlobStore())
    analysis = AnalysisClient(client)
    media = MediaClient(client, sink=sink)
    session = SessionController(analysis, media, history)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        history.load()
        if not client.configured:
            logger.warning("No API key configured; lookups will fail until one is set",
                           extra={"component": "config"})
        yield

    app = FastAPI(title="Trilingua", lifespan=lifespan)
    app.state.client = client
    app.state.history = history
    app.state.analysis = analysis
    app.state.media = media
    app.state.session = session
    app.include_router(router)
    return app


app = create_app()
