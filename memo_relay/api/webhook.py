"""
Webhook endpoint for ingesting chat platform events.
"""
import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from memo_relay.api.metrics import record_queue_event
from memo_relay.core.config import Settings, get_settings
from memo_relay.core.logging import get_logger
from memo_relay.core.security import get_validated_body
from memo_relay.schemas.message import ErrorResponse, WebhookPayload
from memo_relay.services.message_queue import enqueue_events
from memo_relay.store.kv import KVStore, get_store

logger = get_logger(__name__)

router = APIRouter(tags=["Webhook"])


@router.post(
    "/webhook",
    response_class=PlainTextResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed event batch"},
        401: {"model": ErrorResponse, "description": "Invalid signature"},
    },
    summary="Ingest webhook events",
    description="Receive a batch of platform events and queue every text message. Requires a valid HMAC-SHA256 signature."
)
async def ingest_events(
    validated_body: Annotated[bytes, Depends(get_validated_body)],
    store: Annotated[KVStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> PlainTextResponse:
    """
    Ingest a webhook event batch.
    
    - Validates HMAC-SHA256 signature (via dependency)
    - Parses the whole batch before writing anything
    - Queues text messages; re-delivered events overwrite their own key
    """
    try:
        payload = WebhookPayload.model_validate(json.loads(validated_body))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Invalid JSON in webhook request: {e}")
        raise HTTPException(status_code=400, detail="Invalid JSON")
    except ValidationError as e:
        logger.warning(f"Validation error in webhook request: {e}")
        raise HTTPException(status_code=400, detail="Invalid event batch")
    
    queued = enqueue_events(store, payload, ttl_seconds=settings.message_ttl_seconds)
    record_queue_event("enqueued", len(queued))
    
    logger.info(
        "Webhook batch ingested",
        extra={
            "extra_data": {
                "events": len(payload.events),
                "queued": len(queued),
                "message_ids": [m.message_id for m in queued],
            }
        }
    )
    
    return PlainTextResponse("OK")
