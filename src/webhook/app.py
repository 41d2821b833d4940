# src/webhook/app.py - v1
"""FastAPI application exposing the Feishu event webhook.

POST /feishu/webhook   URL verification, file staging and trigger events
GET  /health           liveness probe

The handler only classifies and dispatches; staging and pipeline runs happen
in background tasks so the response is never held up by them.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from pdfdigest.core.errors import ValidationError
from pdfdigest.services import Services
from pdfdigest.version import __version__
from pdfdigest.webhook.events import (
    FileStagingEvent,
    TriggerEvent,
    UrlChallenge,
    classify_event,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SHUTDOWN_DRAIN_SECONDS = 60.0


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy", "version": __version__}


@router.post("/feishu/webhook")
async def feishu_webhook(request: Request) -> JSONResponse:
    """Receive a Feishu event callback."""
    services: Services = request.app.state.services
    settings = services.settings

    try:
        payload = json.loads(await request.body())
    except ValueError:
        return JSONResponse({"error": "Invalid JSON"}, status_code=400)

    try:
        event = classify_event(
            payload,
            verification_token=settings.feishu_verification_token,
            trigger_phrases=settings.trigger_phrases_list,
            extension=settings.document_extension,
        )
    except ValidationError as e:
        logger.error("Rejected webhook call: %s", e)
        return JSONResponse({"error": "Invalid token"}, status_code=403)

    try:
        if isinstance(event, UrlChallenge):
            logger.info("URL verification successful")
            return JSONResponse({"challenge": event.challenge})

        if isinstance(event, (FileStagingEvent, TriggerEvent)):
            logger.info(
                "Dispatching %s for conversation %s", event.kind, event.conversation_id,
            )
            services.dispatcher.dispatch(event)
        else:
            logger.debug("Ignoring event: %s", event.reason)
    except Exception:
        logger.exception("Webhook processing error")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    # Acknowledge everything else so the platform does not retry
    return JSONResponse({"ok": True})


def create_app(services: Services) -> FastAPI:
    """Build the FastAPI app around an already wired service graph."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("pdfdigest %s webhook starting", __version__)
        yield
        await services.dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        await services.aclose()
        logger.info("pdfdigest webhook stopped")

    app = FastAPI(title="pdfdigest", version=__version__, lifespan=lifespan)
    app.state.services = services
    app.include_router(router)
    return app
