import inspect
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from openai import AsyncOpenAI

from routes.chat_stream_route import router as chat_stream_router
from routes.voice_ws import router as voice_router
from utils.settings import Settings

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

LOGGER = logging.getLogger(__name__)


async def _close_quietly(client) -> None:
    """Close a client exposing either `aclose` or `close`, sync or async."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception:
        # Ignore shutdown errors to avoid masking more important issues.
        pass


def create_app(
    settings: Optional[Settings] = None,
    openai_client: Optional[AsyncOpenAI] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Any of `settings`, `openai_client` or `http_client` may be supplied to
    replace what the lifespan would otherwise build from the environment.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan manager to initialize:
          - the resolved settings (mock vs. live relay, voice limits)
          - the shared httpx client used for the upstream stream
          - the OpenAI async client used by voice calls
        and attach them to `app.state`.
        """
        resolved = settings or Settings.from_env()
        app.state.settings = resolved

        app.state.http_client = http_client or httpx.AsyncClient()

        client = openai_client
        if client is None and resolved.openai_api_key:
            try:
                client = AsyncOpenAI(api_key=resolved.openai_api_key)
            except Exception as exc:
                raise RuntimeError("Failed to initialize OpenAI Async client") from exc
        if client is None:
            LOGGER.warning("OPENAI_API_KEY is not set; voice calls are disabled")
        app.state.openai_client = client

        LOGGER.info("Chat stream relay running in %s mode", "mock" if resolved.mock_mode else "live")
        try:
            yield
        finally:
            if http_client is None:
                await _close_quietly(app.state.http_client)
            if openai_client is None and app.state.openai_client is not None:
                await _close_quietly(app.state.openai_client)

    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting relay mode and OpenAI client presence.
        """
        resolved = getattr(request.app.state, "settings", None)
        has_openai = getattr(request.app.state, "openai_client", None) is not None
        mode = "mock" if resolved is None or resolved.mock_mode else "live"
        return {"ok": True, "mode": mode, "openai_available": has_openai}

    # Register application routers
    app.include_router(chat_stream_router)
    app.include_router(voice_router)

    return app


app = create_app()
