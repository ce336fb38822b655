"""HTTP front for the edit relay.

GET /health reports liveness. POST /edit_file reads the target file, asks the
fast-apply model for the updated contents and returns them as JSON or, when
the body sets "stream": true, relays the upstream stream as text/event-stream.
"""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from enum import Enum
from typing import Any, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import ServerConfig
from edit_handler import handle_edit_request, handle_edit_stream
from errors import RelayError
from morph_client import MorphClient

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RelayPhase(str, Enum):
    """Streaming response state. Once headers are committed there is no way back."""

    HEADERS_COMMITTED = "headers_committed"
    WRITING_BODY = "writing_body"


def sse_error_event(message: str) -> bytes:
    return f"event: error\ndata: {json.dumps({'error': message})}\n\n".encode("utf-8")


async def relay_edit_stream(
    config: ServerConfig, client: MorphClient, payload: Any
) -> AsyncIterator[bytes]:
    """Pass upstream chunks through as they arrive; report failures as an error event.

    Runs after the 200 status and SSE headers have been sent, so failures can
    only be signalled in the body.
    """
    phase = RelayPhase.HEADERS_COMMITTED
    try:
        chunks = await handle_edit_stream(config, client, payload)
        async with aclosing(chunks):
            async for chunk in chunks:
                phase = RelayPhase.WRITING_BODY
                yield chunk
    except RelayError as e:
        logger.error("Streaming edit failed during %s: %s", phase.value, e.message)
        yield sse_error_event(e.message)
    except Exception as e:
        logger.exception("Streaming edit failed during %s", phase.value)
        yield sse_error_event(str(e) or "Internal server error")


def create_app(
    config: ServerConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> FastAPI:
    """Build the relay application around an already-resolved config."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Own the upstream httpx client for the lifetime of the app."""
        app.state.client = httpx.AsyncClient(transport=transport, timeout=config.timeout)
        logger.info(
            "Morph relay ready on http://%s:%s (upstream=%s, model=%s)",
            config.host,
            config.port,
            config.base_url,
            config.model,
        )
        yield
        await app.state.client.aclose()

    app = FastAPI(title="Morph edit relay", lifespan=lifespan)
    app.state.config = config

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=404, content={"error": "Not found"})
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": detail})

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled server error", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.post("/edit_file")
    async def edit_file(http_request: Request):
        """Apply an edit to a local file through the fast-apply model."""
        raw_body = await http_request.body()
        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Failed to parse JSON body: %s", e)
            return JSONResponse(status_code=400, content={"error": "Malformed JSON body"})

        client = MorphClient(config, http_request.app.state.client)

        if isinstance(payload, dict) and payload.get("stream") is True:
            return StreamingResponse(
                relay_edit_stream(config, client, payload),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        try:
            result = await handle_edit_request(config, client, payload)
        except RelayError as e:
            logger.error("Edit request failed: %s", e.message)
            return JSONResponse(status_code=400, content={"error": e.message})

        return JSONResponse(content=result.model_dump(exclude_none=True))

    return app
