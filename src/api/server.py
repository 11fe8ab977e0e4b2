"""Local HTTP API the overlay talks to.

Runs on the asyncio event loop alongside the orchestrator. Uses aiohttp's
AppRunner/TCPSite for non-blocking start/stop.

Routes:
    GET    /health             liveness
    POST   /ask                stream an answer as server-sent events
    POST   /memories           save a snippet
    GET    /memories           list saved snippets
    DELETE /memories/{id}      delete a snippet
    GET    /settings/display   overlay appearance defaults
"""

from __future__ import annotations

import json
import logging
from typing import Any

from aiohttp import web
from pydantic import BaseModel, Field, ValidationError

from src.config import settings
from src.conversation.orchestrator import Orchestrator
from src.errors import StorageError

logger = logging.getLogger(__name__)

ORCHESTRATOR_KEY = web.AppKey("orchestrator", Orchestrator)

SECRET_HEADER = "X-Askpane-Secret"

_ERROR_STATUS = {
    "invalid": 400,
    "configuration": 400,
    "network": 502,
    "storage": 500,
}


class AskRequest(BaseModel):
    conversation_id: str = Field(min_length=1)
    question: str
    page_context: str = ""
    is_new_search: bool = False


class SaveRequest(BaseModel):
    text: str
    source_url: str = ""


async def _read_json(request: web.Request) -> dict[str, Any] | None:
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


@web.middleware
async def _auth_middleware(request: web.Request, handler):
    """Require the shared secret on every route but /health, when one is set."""
    if settings.api_shared_secret and request.path != "/health":
        secret = request.headers.get(SECRET_HEADER, "")
        if secret != settings.api_shared_secret:
            logger.warning("Request rejected: invalid secret (path=%s)", request.path)
            return web.json_response({"error": "unauthorized"}, status=401)
    return await handler(request)


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


async def _handle_ask(request: web.Request) -> web.StreamResponse:
    """POST /ask — relay the answer stream as SSE events."""
    payload = await _read_json(request)
    if payload is None:
        return web.json_response({"error": "invalid JSON"}, status=400)
    try:
        ask = AskRequest.model_validate(payload)
    except ValidationError as exc:
        return web.json_response({"error": str(exc)}, status=400)

    orchestrator = request.app[ORCHESTRATOR_KEY]
    channel = await orchestrator.ask(
        ask.conversation_id, ask.question, ask.page_context, ask.is_new_search
    )

    response = web.StreamResponse(
        headers={"Content-Type": "text/event-stream", "Cache-Control": "no-cache"}
    )
    await response.prepare(request)

    try:
        async for event in channel:
            await response.write(f"data: {json.dumps(event.to_dict())}\n\n".encode())
    except ConnectionResetError:
        # The ask keeps running to completion so history stays consistent.
        logger.info("Client disconnected from ask stream (%s)", ask.conversation_id)
        return response

    await response.write_eof()
    return response


async def _handle_save(request: web.Request) -> web.Response:
    """POST /memories — embed and persist a snippet."""
    payload = await _read_json(request)
    if payload is None:
        return web.json_response({"error": "invalid JSON"}, status=400)
    try:
        save = SaveRequest.model_validate(payload)
    except ValidationError as exc:
        return web.json_response({"error": str(exc)}, status=400)

    result = await request.app[ORCHESTRATOR_KEY].save(save.text, save.source_url)
    if not result.success:
        status = _ERROR_STATUS.get(result.error_kind or "", 500)
        return web.json_response({"error": result.error}, status=status)
    return web.json_response(result.data, status=201)


async def _handle_list(request: web.Request) -> web.Response:
    """GET /memories — every saved snippet, newest first, without embeddings."""
    records = await request.app[ORCHESTRATOR_KEY].list_memories()
    return web.json_response({"memories": [r.to_public_dict() for r in records]})


async def _handle_delete(request: web.Request) -> web.Response:
    """DELETE /memories/{id} — unknown ids succeed."""
    try:
        memory_id = int(request.match_info["memory_id"])
    except ValueError:
        return web.json_response({"error": "memory id must be an integer"}, status=400)

    try:
        await request.app[ORCHESTRATOR_KEY].delete_memory(memory_id)
    except StorageError as exc:
        logger.error("Delete failed: %s", exc)
        return web.json_response({"error": str(exc)}, status=500)
    return web.json_response({"ok": True})


async def _handle_display_settings(request: web.Request) -> web.Response:
    """GET /settings/display — appearance defaults for the overlay."""
    return web.json_response(settings.display_settings())


def _create_web_app(orchestrator: Orchestrator | None = None) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_auth_middleware])
    app[ORCHESTRATOR_KEY] = orchestrator or Orchestrator()
    app.router.add_get("/health", _health)
    app.router.add_post("/ask", _handle_ask)
    app.router.add_post("/memories", _handle_save)
    app.router.add_get("/memories", _handle_list)
    app.router.add_delete("/memories/{memory_id}", _handle_delete)
    app.router.add_get("/settings/display", _handle_display_settings)
    return app


class ApiServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        orchestrator: Orchestrator | None = None,
    ) -> None:
        self.host = host or settings.server_host
        self.port = port or settings.server_port
        self._orchestrator = orchestrator
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for overlay requests."""
        if not settings.has_api_key:
            logger.warning("GEMINI_API_KEY is empty — asks and saves will be rejected")

        app = _create_web_app(self._orchestrator)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("API server listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully, letting in-flight asks finish."""
        if self._runner is not None:
            orchestrator = self._runner.app[ORCHESTRATOR_KEY]
            await orchestrator.drain()
            await self._runner.cleanup()
            self._runner = None
            logger.info("API server stopped")
