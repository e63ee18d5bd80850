"""
Pull endpoint: the consumer fetches queued messages oldest-first.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from memo_relay.api.metrics import record_queue_event
from memo_relay.core.config import Settings, get_settings
from memo_relay.core.logging import get_logger
from memo_relay.core.security import require_api_token
from memo_relay.schemas.message import ErrorResponse, PullResponse
from memo_relay.services.message_queue import pull_messages
from memo_relay.store.kv import KVStore, get_store

logger = get_logger(__name__)

router = APIRouter(tags=["Consumer"], dependencies=[Depends(require_api_token)])


@router.get(
    "/pull",
    response_model=PullResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid limit"},
        401: {"model": ErrorResponse, "description": "Missing or wrong bearer token"},
    },
    summary="Pull queued messages",
    description="Return unacknowledged messages in arrival order. Read-only."
)
async def pull(
    store: Annotated[KVStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings)],
    limit: Annotated[Optional[str], Query(description="Maximum number of messages to return")] = None,
) -> PullResponse:
    """
    Pull queued messages.
    
    - **limit**: page size (default 50, also used for an empty value); a later call starts again from the oldest message
    """
    if not limit:
        page_size = settings.pull_default_limit
    else:
        try:
            page_size = int(limit)
        except ValueError:
            raise HTTPException(status_code=400, detail="limit must be an integer")
    
    if not 1 <= page_size <= settings.pull_max_limit:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {settings.pull_max_limit}")
    
    messages = pull_messages(store, page_size)
    record_queue_event("pulled", len(messages))
    
    logger.debug(
        "Pulled messages",
        extra={"extra_data": {"returned": len(messages), "limit": page_size}}
    )
    
    return PullResponse(messages=messages)
