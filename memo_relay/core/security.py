"""
Webhook signature verification and bearer-token access control.
"""
import base64
import hashlib
import hmac
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request

from memo_relay.core.config import Settings, get_settings
from memo_relay.core.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Signature"


def compute_signature(secret: str, body: bytes) -> str:
    """
    Compute the webhook signature for the given body.
    
    Args:
        secret: The channel secret shared with the platform
        body: Raw request body bytes
        
    Returns:
        Base64-encoded HMAC-SHA256 digest
    """
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """
    Check a claimed signature against the body.
    
    A missing or empty signature is a failed verification, not an error.
    """
    if not signature:
        return False
    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))


async def get_validated_body(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> bytes:
    """
    Validate the X-Signature header against the raw request body.
    
    Returns:
        The raw request body bytes if valid
        
    Raises:
        HTTPException: 401 if the signature is missing or invalid
    """
    signature = request.headers.get(SIGNATURE_HEADER)
    
    if not signature:
        logger.warning(f"Webhook request missing {SIGNATURE_HEADER} header")
        raise HTTPException(status_code=401, detail="invalid signature")
    
    if not settings.is_channel_secret_configured:
        logger.error("CHANNEL_SECRET environment variable not configured")
        raise HTTPException(status_code=401, detail="invalid signature")
    
    body = await request.body()
    
    if not verify_signature(settings.channel_secret, body, signature):
        logger.warning(
            "Webhook signature verification failed",
            extra={
                "extra_data": {
                    "received_signature": signature[:16] + "...",  # Log partial for debugging
                }
            }
        )
        raise HTTPException(status_code=401, detail="invalid signature")
    
    logger.debug("Webhook signature verified successfully")
    return body


def require_api_token(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Gate the consumer endpoints on `Authorization: Bearer <API_TOKEN>`."""
    authorization = request.headers.get("Authorization")
    
    if not settings.is_api_token_configured or authorization != f"Bearer {settings.api_token}":
        logger.warning(
            "Consumer request rejected",
            extra={"extra_data": {"path": request.url.path, "has_authorization": authorization is not None}}
        )
        raise HTTPException(status_code=401, detail="unauthorized")
