"""
Pydantic schemas for webhook payloads, queued messages and API responses.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, model_validator


class WebhookMessage(BaseModel):
    """The `message` object of a webhook event."""
    model_config = ConfigDict(extra="ignore")
    
    type: str
    id: Optional[str] = None
    text: Optional[str] = None


class WebhookSource(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    
    type: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class WebhookEvent(BaseModel):
    """A single event in a webhook batch. Only the consumed fields are modelled."""
    model_config = ConfigDict(extra="ignore")
    
    type: str
    message: Optional[WebhookMessage] = None
    timestamp: Optional[int] = Field(default=None, ge=0)
    source: Optional[WebhookSource] = None
    
    @model_validator(mode="after")
    def require_text_message_fields(self) -> "WebhookEvent":
        """A text message must carry everything needed to queue it."""
        if self.is_text_message:
            if not self.message.id or self.message.text is None or self.timestamp is None:
                raise ValueError("text message events require message.id, message.text and timestamp")
        return self
    
    @property
    def is_text_message(self) -> bool:
        return (
            self.type == "message"
            and self.message is not None
            and self.message.type == "text"
        )


class WebhookPayload(BaseModel):
    """Request schema for POST /webhook."""
    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "events": [
                    {
                        "type": "message",
                        "message": {"type": "text", "id": "m1", "text": "hello"},
                        "timestamp": 1700000000000,
                        "source": {"type": "user", "userId": "u1"},
                    }
                ]
            }
        },
    )
    
    events: List[WebhookEvent]


class QueuedMessage(BaseModel):
    """A message waiting in the queue, as stored and as returned by /pull."""
    model_config = ConfigDict(populate_by_name=True)
    
    message_id: str = Field(alias="messageId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    text: str
    received_at: int = Field(alias="receivedAt")
    created_at: int = Field(alias="createdAt")


class PullResponse(BaseModel):
    """Response schema for GET /pull."""
    messages: List[QueuedMessage]


class AckRequest(BaseModel):
    """Request schema for POST /ack."""
    model_config = ConfigDict(populate_by_name=True)
    
    message_ids: List[StrictStr] = Field(alias="messageIds")


class AckResponse(BaseModel):
    """Response schema for POST /ack."""
    deleted: int


class HealthResponse(BaseModel):
    """Response schema for health endpoints."""
    status: str
    checks: Optional[Dict[str, str]] = None


class ErrorResponse(BaseModel):
    """Standard error response schema."""
    detail: str
