"""FastAPI app receiving GitHub discussion webhooks."""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .config import Config
from .services.archive_service import ArchiveService
from .sync.events import WebhookEvent, WebhookPayloadError, parse_webhook_event
from .sync.ports import MappingStore
from .sync.reverse import ReverseSyncHandler

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def verify_github_signature(payload: bytes, signature: str, secret: str) -> bool:
    """Check an X-Hub-Signature-256 header against the raw body.

    Args:
        payload: Raw request body bytes
        signature: Header value, ``sha256=<hex digest>``
        secret: Shared webhook secret

    Returns:
        True if the digest matches
    """
    if not signature.startswith(SIGNATURE_PREFIX):
        logger.warning("Webhook signature missing or not sha256")
        return False

    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature[len(SIGNATURE_PREFIX):])


def _decode_event(body: bytes, event_type: str, delivery_id: str) -> Optional[WebhookEvent]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error("Delivery %s: body is not JSON: %s", delivery_id, e)
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        return parse_webhook_event(event_type, payload)
    except WebhookPayloadError as e:
        logger.error("Delivery %s rejected: %s", delivery_id, e)
        raise HTTPException(status_code=400, detail="Invalid event payload")


def create_webhook_app(
    config: Config,
    reverse_handler: ReverseSyncHandler,
    mappings: MappingStore,
    archive: Optional[ArchiveService] = None,
) -> FastAPI:
    """Build the webhook application.

    Args:
        config: Application configuration (webhook secret)
        reverse_handler: Applies GitHub events to Discord
        mappings: Mapping store, exposed read-only under /debug
        archive: Optional archive, exposed read-only under /debug

    Returns:
        FastAPI app
    """
    app = FastAPI(
        title="Discussion Bridge",
        description="GitHub Discussions <-> Discord forum bridge",
        version="1.0.0",
    )
    started_at = time.monotonic()
    webhook_secret = config.github.webhook_secret.get_secret_value()

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        return {
            "status": "ok",
            "service": "discussion-bridge",
            "uptime_seconds": round(time.monotonic() - started_at, 1),
        }

    @app.post("/webhooks/github")
    async def github_webhook(request: Request) -> JSONResponse:
        """Verify, decode and apply one delivery.

        The sync handler runs before the response is sent, so GitHub sees a
        500 (and can redeliver) when it fails.
        """
        body = await request.body()
        event_type = request.headers.get("X-GitHub-Event", "")
        delivery_id = request.headers.get("X-GitHub-Delivery", "")
        logger.info("Webhook delivery %s: event=%s", delivery_id, event_type)

        if not verify_github_signature(
            body, request.headers.get("X-Hub-Signature-256", ""), webhook_secret
        ):
            logger.warning("Delivery %s (%s) has an invalid signature", delivery_id, event_type)
            raise HTTPException(status_code=401, detail="Invalid signature")

        event = _decode_event(body, event_type, delivery_id)
        if event is None:
            return JSONResponse({"status": "ignored", "delivery_id": delivery_id})

        try:
            result = await reverse_handler.handle_event(event)
        except Exception:
            logger.exception("Delivery %s failed while syncing to Discord", delivery_id)
            return JSONResponse({"status": "error", "delivery_id": delivery_id}, status_code=500)

        logger.info("Delivery %s (%s): %s", delivery_id, event_type, result.value)
        return JSONResponse({"status": result.value, "delivery_id": delivery_id})

    @app.get("/debug/mappings")
    async def debug_mappings() -> list[dict[str, Any]]:
        return [mapping.to_dict() for mapping in await mappings.list_all()]

    @app.get("/debug/archive")
    async def debug_archive() -> dict[str, list[dict[str, Any]]]:
        if archive is None:
            return {"posts": [], "comments": []}
        return {
            "posts": [post.to_dict() for post in await archive.list_posts()],
            "comments": [comment.to_dict() for comment in await archive.list_comments()],
        }

    return app
