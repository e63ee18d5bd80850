"""
Ack endpoint: the consumer removes messages it has processed.
"""
import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from memo_relay.api.metrics import record_queue_event
from memo_relay.core.logging import get_logger
from memo_relay.core.security import require_api_token
from memo_relay.schemas.message import AckRequest, AckResponse, ErrorResponse
from memo_relay.services.message_queue import ack_messages
from memo_relay.store.kv import KVStore, get_store

logger = get_logger(__name__)

router = APIRouter(tags=["Consumer"], dependencies=[Depends(require_api_token)])


@router.post(
    "/ack",
    response_model=AckResponse,
    responses={
        400: {"model": ErrorResponse, "description": "messageIds is not an array of strings"},
        401: {"model": ErrorResponse, "description": "Missing or wrong bearer token"},
    },
    summary="Acknowledge messages",
    description="Delete queued messages by messageId. Unknown ids are ignored."
)
async def ack(
    request: Request,
    store: Annotated[KVStore, Depends(get_store)],
) -> AckResponse:
    # Body is parsed here rather than by FastAPI so auth is always checked first
    try:
        ack_request = AckRequest.model_validate(json.loads(await request.body()))
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.warning(f"Invalid ack request: {e}")
        raise HTTPException(status_code=400, detail="messageIds must be an array of strings")
    
    deleted = ack_messages(store, ack_request.message_ids)
    record_queue_event("acked", deleted)
    
    logger.info(
        "Messages acknowledged",
        extra={
            "extra_data": {
                "requested": len(ack_request.message_ids),
                "deleted": deleted,
            }
        }
    )
    
    return AckResponse(deleted=deleted)
