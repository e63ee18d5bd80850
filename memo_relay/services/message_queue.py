"""
Pull/ack message queue on top of the key-value store.

Entries live under ``msg:<receivedAt>:<messageId>``. The timestamp is
zero-padded to a fixed width so that ascending key order is arrival order.
Each entry carries ``{"messageId": ...}`` metadata so acks can find it from
a key listing without loading values.
"""
import json
import time
from typing import Iterable, List

from pydantic import ValidationError

from memo_relay.core.logging import get_logger
from memo_relay.schemas.message import QueuedMessage, WebhookPayload
from memo_relay.store.kv import KeyValueStore

logger = get_logger(__name__)

KEY_PREFIX = "msg:"
TIMESTAMP_WIDTH = 20
DEFAULT_TTL_SECONDS = 864000  # 10 days


def message_key(received_at: int, message_id: str) -> str:
    """Composite key whose lexicographic order follows received_at."""
    return f"{KEY_PREFIX}{received_at:0{TIMESTAMP_WIDTH}d}:{message_id}"


def _now_ms() -> int:
    return int(time.time() * 1000)


def enqueue_events(
    store: KeyValueStore,
    payload: WebhookPayload,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
) -> List[QueuedMessage]:
    """Queue every text message of a webhook batch; other events are skipped."""
    queued = []
    
    for event in payload.events:
        if not event.is_text_message:
            logger.debug("Skipping non-text event", extra={"extra_data": {"event_type": event.type}})
            continue
        
        message = QueuedMessage(
            message_id=event.message.id,
            user_id=event.source.user_id if event.source else None,
            text=event.message.text,
            received_at=event.timestamp,
            created_at=_now_ms(),
        )
        store.put(
            message_key(message.received_at, message.message_id),
            message.model_dump_json(by_alias=True),
            metadata={"messageId": message.message_id},
            expiration_ttl=ttl_seconds,
        )
        queued.append(message)
    
    return queued


def pull_messages(store: KeyValueStore, limit: int) -> List[QueuedMessage]:
    """Return up to `limit` queued messages, oldest first. Never mutates the store."""
    messages = []
    
    for key in store.list(prefix=KEY_PREFIX, limit=limit):
        value = store.get(key.name)
        if value is None:
            # Deleted or expired between listing and fetching
            continue
        try:
            messages.append(QueuedMessage.model_validate(json.loads(value)))
        except (json.JSONDecodeError, ValidationError):
            logger.error("Unreadable queue entry skipped", extra={"extra_data": {"key": key.name}})
    
    return messages


def ack_messages(store: KeyValueStore, message_ids: Iterable[str]) -> int:
    """
    Delete the queued entries whose metadata messageId is in `message_ids`.
    
    Lists the whole prefix so entries beyond any pull page are reachable.
    Returns the number of entries actually removed; unknown or already
    acknowledged ids contribute nothing.
    """
    wanted = set(message_ids)
    if not wanted:
        return 0
    
    deleted = 0
    for key in store.list(prefix=KEY_PREFIX):
        meta = key.metadata or {}
        if meta.get("messageId") in wanted and store.delete(key.name):
            deleted += 1
    
    return deleted
